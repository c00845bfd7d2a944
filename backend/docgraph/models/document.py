"""Document entity and relationship schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_LINK_TYPE = "related"


class _CamelModel(BaseModel):
    """Accepts both snake_case field names and the backend's camelCase keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ---------------------------------------------------------------------------
# Document entity
# ---------------------------------------------------------------------------

class Document(_CamelModel):
    """A document as held by the relationship store."""

    id: str
    title: str = "Untitled"
    filename: str | None = None
    uploaded_at: datetime | None = None
    version_group_id: str = ""
    version_number: int = Field(default=1, ge=1)
    is_current_version: bool = True
    supersedes_id: str | None = None
    links: dict[str, str] = {}  # target id -> link type
    folder_path: list[str] = []
    content_hash: str | None = None
    sender: str | None = None
    subject: str | None = None

    @model_validator(mode="before")
    @classmethod
    def remap_legacy_fields(cls, data: dict) -> dict:
        """Fold the legacy flat fields into the canonical shape."""
        if not isinstance(data, dict):
            return data
        # Backend sends explicit nulls for unset fields
        data = {key: value for key, value in data.items() if value is not None}
        # Legacy 'version' -> 'versionNumber'
        if "version" in data:
            legacy_version = data.pop("version")
            if "versionNumber" not in data and "version_number" not in data:
                data["version_number"] = legacy_version or 1
        # Legacy 'linkedDocumentIds' -> links
        legacy_ids = data.pop("linkedDocumentIds", None) or data.pop("linked_document_ids", None)
        if legacy_ids and not data.get("links"):
            data["links"] = {target: DEFAULT_LINK_TYPE for target in legacy_ids}
        # Legacy single-folder label
        folder = data.pop("folder", None)
        if folder and not data.get("folderPath") and not data.get("folder_path"):
            data["folder_path"] = [part for part in str(folder).split("/") if part]
        return data

    @model_validator(mode="after")
    def _default_group(self) -> "Document":
        self.links.pop(self.id, None)
        if not self.version_group_id:
            self.version_group_id = self.id
        elif "is_current_version" not in self.model_fields_set and self.version_group_id != self.id:
            # A grouped document with no explicit flag is not assumed current
            self.is_current_version = False
        return self

    @property
    def linked_document_ids(self) -> list[str]:
        """Flat view of the outgoing link set."""
        return sorted(self.links)

    @property
    def is_grouped(self) -> bool:
        return self.version_group_id != self.id


# ---------------------------------------------------------------------------
# Relationship views
# ---------------------------------------------------------------------------

class RelationshipEntry(_CamelModel):
    """One row in a relationship projection.

    ``document`` is None when the link target no longer exists (a broken link).
    """

    document_id: str
    document: Document | None = None
    link_type: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def broken(self) -> bool:
        return self.document is None


class Relationships(_CamelModel):
    """Canonical relationship shape for one document."""

    linked: list[RelationshipEntry] = []
    versions: list[Document] = []
    incoming: list[RelationshipEntry] = []
    outgoing: list[RelationshipEntry] = []


# ---------------------------------------------------------------------------
# Backend wire bodies
# ---------------------------------------------------------------------------

class LinkRequest(_CamelModel):
    """Body of ``POST /documents/{id}/link``."""

    linked_id: str
    link_type: str = DEFAULT_LINK_TYPE


class MoveVersionRequest(_CamelModel):
    """Body of ``POST /documents/{id}/move-version``."""

    from_version: int
    to_version: int


class LinkSuggestion(_CamelModel):
    """A link candidate proposed by the backend."""

    id: str
    title: str = "Untitled"
    type: str | None = None
    reasons: list[str] = []


# ---------------------------------------------------------------------------
# Panel API bodies
# ---------------------------------------------------------------------------

class MoveVersionBody(_CamelModel):
    target_version_number: int = Field(ge=1)


class AddLinkBody(_CamelModel):
    target_id: str
    link_type: str = DEFAULT_LINK_TYPE


class VersionCandidateQuery(_CamelModel):
    """Find existing documents an upload could be a new version of."""

    filename: str
    content_hash: str | None = None
    content: str | None = None  # hashed when content_hash is not supplied
    folder_path: list[str] = []
