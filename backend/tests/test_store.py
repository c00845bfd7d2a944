"""Tests for the in-memory relationship store."""

import pytest

from conftest import make_doc
from docgraph.core.exceptions import DocumentNotFoundError
from docgraph.core.store import RelationshipStore


class TestBasicOperations:
    def test_get_missing_raises(self, store: RelationshipStore):
        with pytest.raises(DocumentNotFoundError) as exc_info:
            store.get("nope")
        assert exc_info.value.document_id == "nope"

    def test_find_missing_returns_none(self, store: RelationshipStore):
        assert store.find("nope") is None

    def test_upsert_replaces_by_id(self, store: RelationshipStore):
        store.upsert(make_doc("A", title="first"))
        store.upsert(make_doc("A", title="second"))
        assert len(store) == 1
        assert store.get("A").title == "second"

    def test_remove_reports_whether_anything_was_removed(self, store: RelationshipStore):
        store.upsert(make_doc("A"))
        assert store.remove("A") is True
        assert store.remove("A") is False
        assert "A" not in store

    def test_returned_documents_are_copies(self, store: RelationshipStore):
        store.upsert(make_doc("A"))
        doc = store.get("A")
        doc.links["B"] = "related"
        doc.is_current_version = False
        assert store.get("A").links == {}
        assert store.get("A").is_current_version is True
        assert store.incoming_ids("B") == set()

    def test_all_is_a_snapshot(self, store: RelationshipStore):
        store.upsert(make_doc("A"))
        snapshot = store.all()
        store.upsert(make_doc("B"))
        assert [d.id for d in snapshot] == ["A"]


class TestIndexes:
    def test_group_index_follows_regrouping(self, store: RelationshipStore):
        store.upsert(make_doc("A"))
        store.upsert(make_doc("B", version_group_id="A", version_number=2))
        assert sorted(d.id for d in store.members_of("A")) == ["A", "B"]

        store.upsert(make_doc("B", version_group_id="B"))
        assert [d.id for d in store.members_of("A")] == ["A"]
        assert [d.id for d in store.members_of("B")] == ["B"]

    def test_incoming_index_follows_link_changes(self, store: RelationshipStore):
        store.upsert(make_doc("X", links={"Y": "related"}))
        store.upsert(make_doc("Z", links={"Y": "cites"}))
        assert store.incoming_ids("Y") == {"X", "Z"}

        store.upsert(make_doc("X"))
        assert store.incoming_ids("Y") == {"Z"}

        store.remove("Z")
        assert store.incoming_ids("Y") == set()

    def test_members_of_unknown_group(self, store: RelationshipStore):
        assert store.members_of("nothing") == []

    def test_find_by_hash(self, store: RelationshipStore):
        store.upsert(make_doc("A", content_hash="abc"))
        store.upsert(make_doc("B", content_hash="def"))
        assert [d.id for d in store.find_by_hash("abc")] == ["A"]


class TestSnapshotRestore:
    def test_restore_undoes_updates_and_inserts(self, store: RelationshipStore):
        store.upsert(make_doc("A", title="before"))
        snap = store.snapshot(["A", "B"])

        store.upsert(make_doc("A", title="after"))
        store.upsert(make_doc("B"))
        store.restore(snap)

        assert store.get("A").title == "before"
        assert "B" not in store

    def test_restore_brings_back_removed_document(self, store: RelationshipStore):
        store.upsert(make_doc("A", links={"B": "related"}))
        snap = store.snapshot(["A"])

        store.remove("A")
        store.restore(snap)

        assert store.get("A").links == {"B": "related"}
        assert store.incoming_ids("B") == {"A"}

    def test_clear(self, store: RelationshipStore):
        store.upsert(make_doc("A", links={"B": "related"}))
        store.clear()
        assert len(store) == 0
        assert store.incoming_ids("B") == set()
