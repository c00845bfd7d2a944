"""Tests for document parsing and store hydration."""

from conftest import make_doc
from docgraph.core.normalize import hydrate_store, normalize_neighborhood, parse_document
from docgraph.models.document import Document


# -------------------------------------------------------------------
# Document model: legacy payloads
# -------------------------------------------------------------------


class TestDocumentPayloads:
    def test_ungrouped_document_is_its_own_current_group(self):
        doc = Document.model_validate({"id": "A", "title": "Invoice"})
        assert (doc.version_group_id, doc.version_number, doc.is_current_version) == ("A", 1, True)

    def test_camel_case_backend_fields(self):
        doc = Document.model_validate({
            "id": "B",
            "versionGroupId": "A",
            "versionNumber": 3,
            "isCurrentVersion": True,
            "supersedesId": "A",
            "folderPath": ["Finance", "2024"],
            "contentHash": "abc",
        })
        assert doc.version_group_id == "A"
        assert doc.version_number == 3
        assert doc.is_current_version is True
        assert doc.folder_path == ["Finance", "2024"]

    def test_grouped_document_without_flag_is_not_current(self):
        doc = Document.model_validate({"id": "B", "versionGroupId": "A", "versionNumber": 2})
        assert doc.is_current_version is False

    def test_legacy_version_and_linked_ids(self):
        doc = Document.model_validate({
            "id": "A",
            "version": 2,
            "linkedDocumentIds": ["C", "B", "A"],
            "folder": "Finance/2024",
        })
        assert doc.version_number == 2
        assert doc.links == {"B": "related", "C": "related"}
        assert doc.linked_document_ids == ["B", "C"]
        assert doc.folder_path == ["Finance", "2024"]

    def test_explicit_nulls_fall_back_to_defaults(self):
        doc = Document.model_validate({
            "id": "A",
            "versionGroupId": None,
            "versionNumber": None,
            "isCurrentVersion": None,
            "linkedDocumentIds": None,
        })
        assert (doc.version_group_id, doc.version_number, doc.is_current_version) == ("A", 1, True)

    def test_parse_document_skips_garbage(self):
        assert parse_document({"title": "no id"}) is None
        assert parse_document({"id": "A", "versionNumber": 0}) is None
        assert parse_document({"id": "A"}).id == "A"


# -------------------------------------------------------------------
# Neighborhood normalization
# -------------------------------------------------------------------


class TestNormalizeNeighborhood:
    def test_canonical_payload(self):
        docs = normalize_neighborhood(
            {"id": "X", "linkedDocumentIds": ["stale"]},
            {
                "linked": [],
                "outgoing": [{"id": "Y", "linkType": "cites"}],
                "incoming": [{"id": "Z", "linkType": "replies-to"}],
                "versions": [{"id": "X2", "versionGroupId": "X", "versionNumber": 2, "isCurrentVersion": True}],
            },
        )
        by_id = {d.id: d for d in docs}

        assert docs[0].id == "X"
        assert by_id["X"].links == {"Y": "cites"}
        assert by_id["Z"].links == {"X": "replies-to"}
        assert by_id["X2"].version_number == 2

    def test_legacy_flat_list_is_treated_as_outgoing(self):
        docs = normalize_neighborhood({"id": "X"}, [{"id": "Y"}, {"id": "X"}, {"bad": True}])
        assert [d.id for d in docs] == ["X", "Y"]
        assert docs[0].links == {"Y": "related"}

    def test_missing_relationships_keeps_legacy_ids(self):
        docs = normalize_neighborhood({"id": "X", "linkedDocumentIds": ["Y"]}, None)
        assert [d.id for d in docs] == ["X"]
        assert docs[0].links == {"Y": "related"}


class TestHydrateStore:
    def test_neighbor_without_links_keeps_known_links(self, store):
        store.upsert(make_doc("Y", links={"W": "related"}))

        docs = normalize_neighborhood({"id": "X"}, {"outgoing": [{"id": "Y"}]})
        hydrate_store(store, docs)

        assert store.get("Y").links == {"W": "related"}
        assert store.get("X").links == {"Y": "related"}

    def test_authoritative_outgoing_replaces_subject_links(self, store):
        store.upsert(make_doc("X", links={"old": "related"}))

        docs = normalize_neighborhood({"id": "X"}, {"outgoing": [], "incoming": []})
        hydrate_store(store, docs)

        assert store.get("X").links == {}
