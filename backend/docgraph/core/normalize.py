"""Store hydration: turn backend payloads into canonical Documents.

The backend answers relationship queries in two shapes:

  canonical: {"linked": [...], "versions": [...], "incoming": [...], "outgoing": [...]}
  legacy:    a flat list of linked documents, or nothing at all, with the
              subject carrying ``linkedDocumentIds``

Both are folded into plain Document entities here, before anything reaches
the store, so the mutation layer only ever sees the canonical form.
"""

import logging
from typing import Any

from pydantic import ValidationError

from docgraph.core.store import RelationshipStore
from docgraph.models.document import DEFAULT_LINK_TYPE, Document

logger = logging.getLogger(__name__)

_RELATIONSHIP_KEYS = ("linked", "versions", "incoming", "outgoing")


def parse_document(raw: dict[str, Any]) -> Document | None:
    """Validate one backend document dict. Returns None for unusable entries."""
    if not isinstance(raw, dict) or not raw.get("id"):
        logger.warning("Skipping relationship entry without an id: %r", raw)
        return None
    try:
        return Document.model_validate(raw)
    except ValidationError as e:
        logger.warning("Skipping malformed document %s: %s", raw.get("id"), e)
        return None


def _link_type_of(raw: dict[str, Any]) -> str:
    return raw.get("linkType") or raw.get("link_type") or DEFAULT_LINK_TYPE


def normalize_neighborhood(
    subject_raw: dict[str, Any],
    relationships: dict[str, Any] | list[Any] | None,
) -> list[Document]:
    """Return the subject document followed by every neighbor it mentions.

    Link direction is recorded on the owning document: outgoing entries end
    up in the subject's ``links``, incoming entries get the subject added to
    their own ``links``.
    """
    subject = parse_document(subject_raw)
    if subject is None:
        raise ValueError("subject document payload has no id")

    if isinstance(relationships, list):
        relationships = {"linked": relationships}
    relationships = relationships or {}
    unknown = set(relationships) - set(_RELATIONSHIP_KEYS)
    if unknown:
        logger.debug("Ignoring unknown relationship keys: %s", sorted(unknown))

    neighbors: dict[str, Document] = {}

    outgoing = relationships.get("outgoing") or []
    incoming = relationships.get("incoming") or []
    # The legacy 'linked' list is only direction-free data; treat it as outgoing
    if not outgoing and not incoming:
        outgoing = relationships.get("linked") or []

    outgoing_links: dict[str, str] = {}
    for raw in outgoing:
        doc = parse_document(raw)
        if doc is None or doc.id == subject.id:
            continue
        outgoing_links[doc.id] = _link_type_of(raw)
        neighbors[doc.id] = doc
    if "outgoing" in relationships:
        # Canonical payload: the backend's outgoing list is authoritative
        subject.links = outgoing_links
    elif outgoing_links:
        subject.links = {**subject.links, **outgoing_links}

    for raw in incoming:
        doc = parse_document(raw)
        if doc is None or doc.id == subject.id:
            continue
        doc.links.setdefault(subject.id, _link_type_of(raw))
        neighbors[doc.id] = doc

    for raw in relationships.get("versions") or []:
        doc = parse_document(raw)
        if doc is None or doc.id == subject.id:
            continue
        if doc.version_group_id != subject.version_group_id:
            logger.warning(
                "Version %s reports group %s, subject %s is in %s",
                doc.id, doc.version_group_id, subject.id, subject.version_group_id,
            )
        if doc.id in neighbors:
            neighbors[doc.id].version_group_id = doc.version_group_id
            neighbors[doc.id].version_number = doc.version_number
            neighbors[doc.id].is_current_version = doc.is_current_version
        else:
            neighbors[doc.id] = doc

    return [subject, *neighbors.values()]


def hydrate_store(store: RelationshipStore, documents: list[Document]) -> list[str]:
    """Upsert freshly fetched documents, keeping link sets the payload omitted.

    A neighbor fetched as part of someone else's relationship list usually
    arrives without its own links; those are merged from what the store
    already knows rather than wiped.
    """
    for doc in documents:
        existing = store.find(doc.id)
        if existing is not None and "links" not in doc.model_fields_set:
            doc.links = {**existing.links, **doc.links}
        store.upsert(doc)
    return [doc.id for doc in documents]
