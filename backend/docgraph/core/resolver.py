"""Version group resolution: pure queries over a RelationshipStore."""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

from docgraph.core.exceptions import IntegrityWarning
from docgraph.core.store import RelationshipStore
from docgraph.models.document import Document, RelationshipEntry, Relationships

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentVersion:
    """Result of current_of: the resolved document plus any integrity warning."""

    document: Document | None
    warning: IntegrityWarning | None = None


_UNDATED = datetime.min.replace(tzinfo=timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    # Naive timestamps are taken to be UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _version_sort_key(doc: Document) -> tuple[int, int, datetime, str]:
    # Missing upload timestamps sort after dated ones
    uploaded = doc.uploaded_at
    return (
        doc.version_number,
        0 if uploaded is not None else 1,
        _as_utc(uploaded) if uploaded is not None else _UNDATED,
        doc.id,
    )


def versions_of(store: RelationshipStore, doc: Document | str) -> list[Document]:
    """All members of *doc*'s version group, ascending by version number."""
    if isinstance(doc, str):
        doc = store.get(doc)
    return sorted(store.members_of(doc.version_group_id), key=_version_sort_key)


def current_of(store: RelationshipStore, group_id: str) -> CurrentVersion:
    """Resolve the current version of a group.

    Exactly one flagged member is the normal case. Zero or several flagged
    members is corrupted state: the highest version number wins and the
    condition is returned (and logged) as an IntegrityWarning.
    """
    members = store.members_of(group_id)
    if not members:
        return CurrentVersion(None)

    flagged = [d for d in members if d.is_current_version]
    if len(flagged) == 1:
        return CurrentVersion(flagged[0])

    pool = flagged or members
    chosen = max(pool, key=_version_sort_key)
    warning = IntegrityWarning(
        group_id=group_id,
        message=f"{len(flagged)} current versions flagged; using v{chosen.version_number}",
        document_ids=tuple(sorted(d.id for d in flagged)),
    )
    logger.warning("Integrity warning in group %s: %s", group_id, warning.message)
    return CurrentVersion(chosen, warning)


def next_version_number(store: RelationshipStore, group_id: str) -> int:
    """max(existing version numbers) + 1, or 1 for an empty group."""
    members = store.members_of(group_id)
    if not members:
        return 1
    return max(d.version_number for d in members) + 1


def check_group_integrity(store: RelationshipStore, group_id: str) -> list[IntegrityWarning]:
    """Report every invariant violation found in one version group."""
    members = store.members_of(group_id)
    if not members:
        return []

    warnings: list[IntegrityWarning] = []
    flagged = [d.id for d in members if d.is_current_version]
    if len(flagged) != 1:
        warnings.append(IntegrityWarning(
            group_id=group_id,
            message=f"expected exactly one current version, found {len(flagged)}",
            document_ids=tuple(sorted(flagged)),
        ))

    counts = Counter(d.version_number for d in members)
    for number, count in sorted(counts.items()):
        if count > 1:
            holders = sorted(d.id for d in members if d.version_number == number)
            warnings.append(IntegrityWarning(
                group_id=group_id,
                message=f"version number {number} held by {count} documents",
                document_ids=tuple(holders),
            ))
    return warnings


def relationships_of(store: RelationshipStore, doc_id: str) -> Relationships:
    """Classify everything related to *doc_id* into the canonical shape.

    Link targets that no longer exist come back with ``document=None``.
    """
    doc = store.get(doc_id)

    outgoing = [
        RelationshipEntry(document_id=target_id, document=store.find(target_id), link_type=link_type)
        for target_id, link_type in sorted(doc.links.items())
    ]
    incoming: list[RelationshipEntry] = []
    for source_id in sorted(store.incoming_ids(doc_id)):
        source = store.find(source_id)
        if source is None:
            continue
        incoming.append(RelationshipEntry(
            document_id=source_id, document=source, link_type=source.links.get(doc_id),
        ))

    seen: set[str] = set()
    linked: list[RelationshipEntry] = []
    for entry in outgoing + incoming:
        if entry.document_id not in seen:
            seen.add(entry.document_id)
            linked.append(entry)

    versions = [v for v in versions_of(store, doc) if v.id != doc_id]
    return Relationships(linked=linked, versions=versions, incoming=incoming, outgoing=outgoing)
