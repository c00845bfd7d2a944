"""Relationship panel endpoints: versions, links, hydration and suggestions."""

import logging

from fastapi import APIRouter, Query, Request, Response, status

from docgraph.api.dependencies import Session
from docgraph.core.mutations import MutationResult
from docgraph.models.document import AddLinkBody, Document, MoveVersionBody, VersionCandidateQuery
from docgraph.models.envelope import success_response
from docgraph.services.document_session import PendingMutation
from docgraph.utils.hashing import compute_content_hash

logger = logging.getLogger(__name__)

router = APIRouter()


def _dump(doc: Document) -> dict:
    return doc.model_dump(mode="json", by_alias=True)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _mutation_data(result: MutationResult) -> dict:
    return {
        "kind": result.kind.value,
        "documents": [_dump(d) for d in result.documents],
        "removedIds": list(result.removed_ids),
    }


async def _settle(pending: PendingMutation, wait: bool, request: Request, response: Response) -> dict:
    """Await backend confirmation, or answer 202 with the optimistic state."""
    if not wait and not pending.done():
        response.status_code = status.HTTP_202_ACCEPTED
        return success_response(
            _mutation_data(pending.result), confirmed=False, request_id=_request_id(request),
        )
    result = await pending
    return success_response(_mutation_data(result), confirmed=True, request_id=_request_id(request))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@router.get("/{doc_id}/relationships")
async def get_relationships(doc_id: str, session: Session, request: Request) -> dict:
    """Linked, version, incoming and outgoing documents for one document."""
    relationships = session.relationships_of(doc_id)
    return success_response(relationships.model_dump(mode="json", by_alias=True), request_id=_request_id(request))


@router.get("/{doc_id}/versions")
async def get_versions(doc_id: str, session: Session, request: Request) -> dict:
    """Version timeline, oldest first."""
    versions = session.versions_of(doc_id)
    return success_response([_dump(v) for v in versions], count=len(versions), request_id=_request_id(request))


@router.get("/{doc_id}/current")
async def get_current_version(doc_id: str, session: Session, request: Request) -> dict:
    """The current version of *doc_id*'s group, plus any integrity warning."""
    current = session.current_of(doc_id)
    warning = current.warning.message if current.warning else None
    data = _dump(current.document) if current.document else None
    return success_response(data, integrity_warning=warning, request_id=_request_id(request))


@router.post("/{doc_id}/hydrate")
async def hydrate(doc_id: str, session: Session, request: Request) -> dict:
    """Pull the document's neighborhood from the backend into the store."""
    relationships = await session.hydrate(doc_id)
    return success_response(relationships.model_dump(mode="json", by_alias=True), request_id=_request_id(request))


@router.get("/{doc_id}/suggest-links")
async def suggest_links(
    doc_id: str,
    session: Session,
    request: Request,
    by: str = Query("sender", pattern="^(sender|subject)$"),
) -> dict:
    suggestions = await session.suggest_links(doc_id, by)
    return success_response(
        [s.model_dump(by_alias=True) for s in suggestions], by=by, request_id=_request_id(request),
    )


@router.post("/version-candidates")
async def version_candidates(body: VersionCandidateQuery, session: Session, request: Request) -> dict:
    """Existing documents an upload could be filed under as a new version."""
    content_hash = body.content_hash
    if content_hash is None and body.content is not None:
        content_hash = compute_content_hash(body.content)
    candidates = session.version_candidates(body.filename, content_hash, body.folder_path)
    return success_response(
        [_dump(c) for c in candidates], content_hash=content_hash, request_id=_request_id(request),
    )


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_document(
    body: Document,
    session: Session,
    request: Request,
    response: Response,
    base_id: str | None = Query(None, alias="version"),
    wait: bool = True,
) -> dict:
    """Register an uploaded document; ``?version=<id>`` files it as a new version."""
    pending = session.upload_document(body, base_id=base_id)
    return await _settle(pending, wait, request, response)


@router.post("/{doc_id}/versions", status_code=status.HTTP_201_CREATED)
async def link_as_new_version(
    doc_id: str, body: Document, session: Session, request: Request, response: Response, wait: bool = True,
) -> dict:
    pending = session.link_as_new_version(doc_id, body)
    return await _settle(pending, wait, request, response)


@router.post("/{doc_id}/set-current")
async def set_current_version(
    doc_id: str, session: Session, request: Request, response: Response, wait: bool = True,
) -> dict:
    pending = session.set_current_version(doc_id)
    return await _settle(pending, wait, request, response)


@router.post("/{doc_id}/unlink-version")
async def unlink_from_version_group(
    doc_id: str, session: Session, request: Request, response: Response, wait: bool = True,
) -> dict:
    pending = session.unlink_from_version_group(doc_id)
    return await _settle(pending, wait, request, response)


@router.post("/{doc_id}/move-version")
async def move_version(
    doc_id: str,
    body: MoveVersionBody,
    session: Session,
    request: Request,
    response: Response,
    wait: bool = True,
) -> dict:
    pending = session.move_version(doc_id, body.target_version_number)
    return await _settle(pending, wait, request, response)


@router.post("/{doc_id}/link")
async def add_link(
    doc_id: str, body: AddLinkBody, session: Session, request: Request, response: Response, wait: bool = True,
) -> dict:
    pending = session.add_link(doc_id, body.target_id, body.link_type)
    return await _settle(pending, wait, request, response)


@router.delete("/{doc_id}/link/{target_id}")
async def remove_link(
    doc_id: str, target_id: str, session: Session, request: Request, response: Response, wait: bool = True,
) -> dict:
    pending = session.remove_link(doc_id, target_id)
    return await _settle(pending, wait, request, response)


@router.delete("/{doc_id}")
async def delete_document(
    doc_id: str, session: Session, request: Request, response: Response, wait: bool = True,
) -> dict:
    """Permanently delete a document. Links to it become broken links."""
    pending = session.delete_document(doc_id)
    return await _settle(pending, wait, request, response)
