"""Link mutation API: the only writer of relationship-affecting fields.

Every operation validates first, computes the full set of entity writes,
then commits them to the store in one step. A rejected call leaves the
store untouched. A committed call returns a MutationResult that carries
the pre-mutation snapshot, so the sync layer can undo it atomically.

Invariants held after every call:
  - a non-empty version group has exactly one current version
  - version numbers are unique within a group (gaps allowed)
"""

import logging
from dataclasses import dataclass, field

from docgraph.core import resolver
from docgraph.core.exceptions import DocumentNotFoundError, InvalidArgumentError
from docgraph.core.notifier import ChangeNotifier
from docgraph.core.store import RelationshipStore, StoreSnapshot
from docgraph.models.document import DEFAULT_LINK_TYPE, Document
from docgraph.models.events import ChangeEvent, MutationKind

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    """Outcome of a committed mutation."""

    kind: MutationKind
    subject_id: str
    documents: list[Document] = field(default_factory=list)
    removed_ids: tuple[str, ...] = ()
    previous: StoreSnapshot = field(default_factory=StoreSnapshot)

    @property
    def document_ids(self) -> tuple[str, ...]:
        return tuple(d.id for d in self.documents) + self.removed_ids

    @property
    def changed(self) -> bool:
        return bool(self.previous.entries)

    @property
    def applied(self) -> dict[str, Document | None]:
        """State this mutation wrote, by id. ``None`` marks a removal."""
        state: dict[str, Document | None] = {d.id: d for d in self.documents}
        state.update(dict.fromkeys(self.removed_ids))
        return state

    def document(self, doc_id: str) -> Document:
        for doc in self.documents:
            if doc.id == doc_id:
                return doc
        raise DocumentNotFoundError(doc_id)


class RelationshipMutator:
    """Applies relationship mutations to a store and announces them."""

    def __init__(self, store: RelationshipStore, notifier: ChangeNotifier | None = None) -> None:
        self.store = store
        self.notifier = notifier or ChangeNotifier()

    # ------------------------------------------------------------------
    # Versioning
    # ------------------------------------------------------------------

    def link_as_new_version(self, base_id: str, new_doc: Document) -> MutationResult:
        """Insert *new_doc* as the next (and current) version of *base_id*'s group."""
        base = self.store.get(base_id)
        if new_doc.id in self.store:
            raise InvalidArgumentError(f"Document {new_doc.id} already exists")

        group_id = base.version_group_id
        previous_current = resolver.current_of(self.store, group_id).document
        writes: dict[str, Document] = {}
        for member in self.store.members_of(group_id):
            if member.is_current_version:
                member.is_current_version = False
                writes[member.id] = member

        writes[new_doc.id] = new_doc.model_copy(
            deep=True,
            update={
                "version_group_id": group_id,
                "version_number": resolver.next_version_number(self.store, group_id),
                "is_current_version": True,
                "supersedes_id": previous_current.id if previous_current else base.id,
            },
        )
        logger.info(
            "Linking %s as v%d of group %s",
            new_doc.id, writes[new_doc.id].version_number, group_id,
        )
        return self._commit(MutationKind.LINK_AS_NEW_VERSION, new_doc.id, writes)

    def set_current_version(self, doc_id: str) -> MutationResult:
        """Make *doc_id* the current version of its group. Idempotent."""
        doc = self.store.get(doc_id)
        writes: dict[str, Document] = {}
        for member in self.store.members_of(doc.version_group_id):
            should_be_current = member.id == doc_id
            if member.is_current_version != should_be_current:
                member.is_current_version = should_be_current
                writes[member.id] = member
        return self._commit(MutationKind.SET_CURRENT_VERSION, doc_id, writes)

    def unlink_from_version_group(self, doc_id: str) -> MutationResult:
        """Detach *doc_id* into its own singleton group.

        If it was current, the remaining member with the highest version
        number takes over. When the detached document's id is the group's
        id, the remaining members are re-keyed to the id of their
        lowest-numbered member so the singleton gets a group of its own.
        """
        doc = self.store.get(doc_id)
        old_group = doc.version_group_id
        remaining = [m for m in resolver.versions_of(self.store, doc) if m.id != doc_id]

        writes: dict[str, Document] = {}
        if remaining:
            new_group = remaining[0].id if old_group == doc_id else old_group
            if doc.is_current_version or not any(m.is_current_version for m in remaining):
                heir = max(remaining, key=lambda m: m.version_number)
            else:
                heir = None
            for member in remaining:
                dirty = False
                if member.version_group_id != new_group:
                    member.version_group_id = new_group
                    dirty = True
                if heir is not None and member.is_current_version != (member.id == heir.id):
                    member.is_current_version = member.id == heir.id
                    dirty = True
                if member.supersedes_id == doc_id:
                    member.supersedes_id = doc.supersedes_id
                    dirty = True
                if dirty:
                    writes[member.id] = member

        if (doc.version_group_id, doc.version_number, doc.is_current_version) != (doc_id, 1, True) \
                or doc.supersedes_id is not None:
            doc.version_group_id = doc_id
            doc.version_number = 1
            doc.is_current_version = True
            doc.supersedes_id = None
            writes[doc_id] = doc
        return self._commit(MutationKind.UNLINK_FROM_VERSION_GROUP, doc_id, writes)

    def move_version(self, doc_id: str, target_version_number: int) -> MutationResult:
        """Swap version numbers with the sibling holding *target_version_number*.

        Current-version flags stay with their documents.
        """
        doc = self.store.get(doc_id)
        if target_version_number == doc.version_number:
            return self._commit(MutationKind.MOVE_VERSION, doc_id, {})

        holder = next(
            (
                m for m in self.store.members_of(doc.version_group_id)
                if m.version_number == target_version_number and m.id != doc_id
            ),
            None,
        )
        if holder is None:
            raise InvalidArgumentError(
                f"No version {target_version_number} in group {doc.version_group_id}"
            )

        holder.version_number, doc.version_number = doc.version_number, target_version_number
        return self._commit(MutationKind.MOVE_VERSION, doc_id, {doc.id: doc, holder.id: holder})

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def add_link(self, from_id: str, to_id: str, link_type: str = DEFAULT_LINK_TYPE) -> MutationResult:
        """Record a directed link. Re-adding updates the label; same label is a no-op."""
        if from_id == to_id:
            raise InvalidArgumentError("A document cannot link to itself")
        if not link_type:
            raise InvalidArgumentError("link_type must not be empty")
        source = self.store.get(from_id)

        writes: dict[str, Document] = {}
        if source.links.get(to_id) != link_type:
            source.links[to_id] = link_type
            writes[from_id] = source
        if to_id not in self.store:
            logger.warning("Link %s -> %s targets an unknown document", from_id, to_id)
        return self._commit(MutationKind.ADD_LINK, from_id, writes)

    def remove_link(self, from_id: str, to_id: str) -> MutationResult:
        """Drop *to_id* from *from_id*'s outgoing links; no-op if absent."""
        source = self.store.get(from_id)
        writes: dict[str, Document] = {}
        if source.links.pop(to_id, None) is not None:
            writes[from_id] = source
        return self._commit(MutationKind.REMOVE_LINK, from_id, writes)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def add_document(self, doc: Document) -> MutationResult:
        """Insert a freshly uploaded document as its own singleton group."""
        if doc.id in self.store:
            raise InvalidArgumentError(f"Document {doc.id} already exists")
        new_doc = doc.model_copy(
            deep=True,
            update={
                "version_group_id": doc.id,
                "version_number": 1,
                "is_current_version": True,
                "supersedes_id": None,
            },
        )
        return self._commit(MutationKind.ADD_DOCUMENT, doc.id, {doc.id: new_doc})

    def delete_document(self, doc_id: str) -> MutationResult:
        """Permanently remove a document.

        Links pointing at it are left in place and resolve as broken. If it
        was the current version, the highest remaining version takes over.
        """
        doc = self.store.get(doc_id)
        writes: dict[str, Document] = {}
        if doc.is_current_version:
            remaining = [m for m in self.store.members_of(doc.version_group_id) if m.id != doc_id]
            if remaining:
                heir = max(remaining, key=lambda m: m.version_number)
                heir.is_current_version = True
                writes[heir.id] = heir
        return self._commit(MutationKind.DELETE_DOCUMENT, doc_id, writes, removals=(doc_id,))

    # ------------------------------------------------------------------
    # Undo
    # ------------------------------------------------------------------

    def revert(self, result: MutationResult) -> list[str]:
        """Undo the writes of *result* that no later mutation has replaced.

        A field goes back to its pre-mutation value only while it still
        holds the value *result* wrote; link entries are compared per
        target. Documents the mutation created are removed, documents it
        deleted come back if still absent. Afterwards every touched group
        is left with exactly one current version, preferring a flag set
        by a later mutation over one this undo brought back.

        Returns the ids written, in order. Publishes nothing.
        """
        applied = result.applied
        touched: list[str] = []
        restored_flags: set[str] = set()
        groups: set[str] = set()

        for doc_id, before in result.previous.entries.items():
            after = applied.get(doc_id)
            now = self.store.find(doc_id)
            for doc in (before, after, now):
                if doc is not None:
                    groups.add(doc.version_group_id)

            if before is None:
                if now is not None and self.store.remove(doc_id):
                    touched.append(doc_id)
                continue
            if now is None:
                if after is None:
                    self.store.upsert(before)
                    touched.append(doc_id)
                continue
            if after is None:
                # Deleted by this mutation, then recreated by a later one
                continue

            reverted = _undo_fields(before, after, now)
            if reverted is not None:
                if reverted.is_current_version and not now.is_current_version:
                    restored_flags.add(doc_id)
                self.store.upsert(reverted)
                touched.append(doc_id)

        for group_id in sorted(groups):
            for doc_id in self._repair_current(group_id, restored_flags):
                if doc_id not in touched:
                    touched.append(doc_id)
            for warning in resolver.check_group_integrity(self.store, group_id):
                logger.warning("Integrity warning after undoing %s: %s", result.kind.value, warning.message)

        logger.debug("Reverted %s on %s: %d document(s) written", result.kind.value, result.subject_id, len(touched))
        return touched

    def _repair_current(self, group_id: str, restored_flags: set[str]) -> list[str]:
        members = self.store.members_of(group_id)
        flagged = [m for m in members if m.is_current_version]
        if not members or len(flagged) == 1:
            return []

        if flagged:
            kept = [m for m in flagged if m.id not in restored_flags] or flagged
        else:
            kept = members
        keep = max(kept, key=lambda m: m.version_number)

        written: list[str] = []
        for member in members:
            should_be_current = member.id == keep.id
            if member.is_current_version != should_be_current:
                member.is_current_version = should_be_current
                self.store.upsert(member)
                written.append(member.id)
        logger.warning("Group %s had %d current versions after undo; kept %s", group_id, len(flagged), keep.id)
        return written

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _commit(
        self,
        kind: MutationKind,
        subject_id: str,
        writes: dict[str, Document],
        removals: tuple[str, ...] = (),
    ) -> MutationResult:
        previous = self.store.snapshot([*writes, *removals])
        for doc in writes.values():
            self.store.upsert(doc)
        for doc_id in removals:
            self.store.remove(doc_id)

        documents = [self.store.get(i) for i in writes]
        if subject_id not in writes and subject_id not in removals and subject_id in self.store:
            documents.insert(0, self.store.get(subject_id))

        result = MutationResult(
            kind=kind,
            subject_id=subject_id,
            documents=documents,
            removed_ids=removals,
            previous=previous,
        )
        if result.changed:
            self.notifier.publish(ChangeEvent(kind=kind, document_ids=result.document_ids))
        else:
            logger.debug("%s on %s changed nothing", kind.value, subject_id)
        return result


def _undo_fields(before: Document, after: Document, now: Document) -> Document | None:
    """*now* with every field *after* changed, and *now* still holds, put back to *before*."""
    updates: dict[str, object] = {}
    for name in Document.model_fields:
        if name == "links":
            continue
        old, new = getattr(before, name), getattr(after, name)
        if old != new and getattr(now, name) == new:
            updates[name] = old

    links = dict(now.links)
    for target_id in before.links.keys() | after.links.keys():
        old, new = before.links.get(target_id), after.links.get(target_id)
        if old == new or links.get(target_id) != new:
            continue
        if old is None:
            del links[target_id]
        else:
            links[target_id] = old
    if links != now.links:
        updates["links"] = links

    if not updates:
        return None
    return now.model_copy(deep=True, update=updates)
