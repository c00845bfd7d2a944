"""Relationship-graph exceptions for docgraph."""

from dataclasses import dataclass


class DocGraphError(Exception):
    """Base exception for relationship operations."""

    code = "DOCGRAPH_ERROR"


class DocumentNotFoundError(DocGraphError):
    """Raised when a referenced document id is not in the store."""

    code = "NOT_FOUND"

    def __init__(self, document_id: str):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class InvalidArgumentError(DocGraphError):
    """Raised when a mutation request is malformed (self-link, missing target version)."""

    code = "INVALID_ARGUMENT"


class BackendError(DocGraphError):
    """Raised by the backend client when a request cannot be completed."""

    code = "BACKEND_ERROR"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConflictOnSyncError(DocGraphError):
    """Raised when an optimistic mutation was rolled back.

    Carries enough context for the caller to offer a retry.
    """

    code = "CONFLICT_ON_SYNC"

    def __init__(self, kind: str, document_ids: tuple[str, ...], reason: str):
        super().__init__(f"{kind} on {', '.join(document_ids)} was rolled back: {reason}")
        self.kind = kind
        self.document_ids = document_ids
        self.reason = reason
        self.retryable = True


@dataclass(frozen=True)
class IntegrityWarning:
    """Non-fatal record of a violated invariant. Logged, never raised."""

    group_id: str
    message: str
    document_ids: tuple[str, ...] = ()
