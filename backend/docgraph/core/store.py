"""In-memory relationship store.

Holds the session's Document entities keyed by id and keeps two derived
indexes up to date on every write:

  group index:    version_group_id -> member ids
  incoming index: target id -> ids of documents linking to it

Entities go in and come out as copies, so nothing outside the store can
change indexed fields behind its back. The store enforces no cross-entity
invariants; that is the mutation layer's job.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from docgraph.core.exceptions import DocumentNotFoundError
from docgraph.models.document import Document

logger = logging.getLogger(__name__)


@dataclass
class StoreSnapshot:
    """Saved state of a set of ids. ``None`` records that the id was absent."""

    entries: dict[str, Document | None] = field(default_factory=dict)

    @property
    def document_ids(self) -> tuple[str, ...]:
        return tuple(self.entries)


class RelationshipStore:
    """Authoritative in-memory set of documents for one session."""

    def __init__(self, documents: Iterable[Document] = ()) -> None:
        self._documents: dict[str, Document] = {}
        self._groups: dict[str, set[str]] = defaultdict(set)
        self._incoming: dict[str, set[str]] = defaultdict(set)
        for doc in documents:
            self.upsert(doc)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    # ------------------------------------------------------------------
    # Basic operations
    # ------------------------------------------------------------------

    def get(self, doc_id: str) -> Document:
        """Return a copy of the document. Raises DocumentNotFoundError."""
        doc = self._documents.get(doc_id)
        if doc is None:
            raise DocumentNotFoundError(doc_id)
        return doc.model_copy(deep=True)

    def find(self, doc_id: str) -> Document | None:
        doc = self._documents.get(doc_id)
        return doc.model_copy(deep=True) if doc is not None else None

    def all(self) -> list[Document]:
        return [doc.model_copy(deep=True) for doc in self._documents.values()]

    def upsert(self, doc: Document) -> None:
        """Insert or replace by id."""
        self._unindex(doc.id)
        stored = doc.model_copy(deep=True)
        self._documents[stored.id] = stored
        self._groups[stored.version_group_id].add(stored.id)
        for target_id in stored.links:
            self._incoming[target_id].add(stored.id)

    def remove(self, doc_id: str) -> bool:
        """Delete by id. Returns True if anything was removed."""
        if doc_id not in self._documents:
            return False
        self._unindex(doc_id)
        del self._documents[doc_id]
        return True

    def clear(self) -> None:
        self._documents.clear()
        self._groups.clear()
        self._incoming.clear()

    # ------------------------------------------------------------------
    # Index queries
    # ------------------------------------------------------------------

    def members_of(self, group_id: str) -> list[Document]:
        """All documents sharing *group_id*, unordered."""
        return [self._documents[i].model_copy(deep=True) for i in self._groups.get(group_id, ())]

    def incoming_ids(self, doc_id: str) -> set[str]:
        """Ids of documents whose link set references *doc_id*."""
        return set(self._incoming.get(doc_id, ()))

    def find_by_hash(self, content_hash: str) -> list[Document]:
        return [
            doc.model_copy(deep=True)
            for doc in self._documents.values()
            if doc.content_hash == content_hash
        ]

    # ------------------------------------------------------------------
    # Snapshot / restore (used for optimistic rollback)
    # ------------------------------------------------------------------

    def snapshot(self, doc_ids: Iterable[str]) -> StoreSnapshot:
        return StoreSnapshot({doc_id: self.find(doc_id) for doc_id in doc_ids})

    def restore(self, snapshot: StoreSnapshot) -> None:
        """Put every id in *snapshot* back to its saved state."""
        for doc_id, saved in snapshot.entries.items():
            if saved is None:
                self.remove(doc_id)
            else:
                self.upsert(saved)
        logger.debug("Restored %d document(s) from snapshot", len(snapshot.entries))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _unindex(self, doc_id: str) -> None:
        old = self._documents.get(doc_id)
        if old is None:
            return
        members = self._groups.get(old.version_group_id)
        if members is not None:
            members.discard(doc_id)
            if not members:
                del self._groups[old.version_group_id]
        for target_id in old.links:
            sources = self._incoming.get(target_id)
            if sources is not None:
                sources.discard(doc_id)
                if not sources:
                    del self._incoming[target_id]
