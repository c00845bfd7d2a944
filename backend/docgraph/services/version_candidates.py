"""Version-candidate and duplicate detection for uploads."""

import logging
import re

from docgraph.core.store import RelationshipStore
from docgraph.models.document import Document

logger = logging.getLogger(__name__)

# Upload names often end in a date stamp ("report 2024-05-01 final.pdf")
_DATE_SUFFIX_RE = re.compile(r"\d{4}-\d{2}-\d{2}.*")
_WHITESPACE_RE = re.compile(r"\s+")


def base_name(filename: str) -> str:
    """Lower-cased name with whitespace collapsed and any date suffix removed."""
    name = _WHITESPACE_RE.sub(" ", filename.lower())
    return _DATE_SUFFIX_RE.sub("", name).strip()


def find_duplicates(store: RelationshipStore, content_hash: str | None) -> list[Document]:
    """Documents whose content hash matches exactly."""
    if not content_hash:
        return []
    return sorted(store.find_by_hash(content_hash), key=lambda d: d.id)


def find_version_candidates(
    store: RelationshipStore,
    filename: str,
    content_hash: str | None = None,
    folder_path: list[str] | None = None,
) -> list[Document]:
    """Existing documents an upload is likely a new version of.

    Same content hash wins outright. Otherwise, documents in the same
    folder whose filename (or title) contains the upload's base name.
    Only current versions are returned, so the upload extends the head
    of each group.
    """
    by_hash = find_duplicates(store, content_hash)
    if by_hash:
        return by_hash

    stem = base_name(filename)
    if not stem:
        return []
    folder = list(folder_path or [])

    candidates = [
        doc for doc in store.all()
        if doc.folder_path == folder
        and doc.is_current_version
        and stem in (doc.filename or doc.title or "").lower()
    ]
    logger.debug("Found %d version candidate(s) for %r in /%s", len(candidates), filename, "/".join(folder))
    return sorted(candidates, key=lambda d: d.id)
