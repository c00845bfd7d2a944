"""HTTP client for the document-management backend.

All endpoints are org-scoped (``/orgs/{org_id}/documents/...``). Connection
errors are retried with exponential backoff; repeated transport failures
trip a circuit breaker so a dead backend fails fast instead of stalling
every optimistic confirmation.
"""

import logging
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from docgraph.config import settings
from docgraph.core.circuit_breaker import CircuitBreaker
from docgraph.core.exceptions import BackendError
from docgraph.models.document import Document, LinkRequest, LinkSuggestion, MoveVersionRequest

logger = logging.getLogger(__name__)

SUGGEST_MODES = ("sender", "subject")


def document_payload(doc: Document) -> dict[str, Any]:
    """Serialize a document for create/update calls.

    ``linkedDocumentIds`` is sent alongside ``links`` for backends that
    still read the flat legacy field.
    """
    payload = doc.model_dump(mode="json", by_alias=True)
    payload["linkedDocumentIds"] = doc.linked_document_ids
    return payload


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("detail", "message", "error"):
            if body.get(key):
                return str(body[key])
    return response.reason_phrase


class DocumentApiClient:
    """Async client for the relationship endpoints of the backend."""

    def __init__(
        self,
        base_url: str | None = None,
        org_id: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.org_id = org_id or settings.org_id
        self.token = token if token is not None else settings.api_token
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._transport = transport
        self.breaker = breaker or CircuitBreaker(
            "document_backend",
            failure_threshold=settings.circuit_breaker_failure_threshold,
            cooldown_seconds=settings.circuit_breaker_cooldown_seconds,
            failure_types=(httpx.TransportError,),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_document(self, doc_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/documents/{doc_id}")

    async def list_documents(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/documents")
        if isinstance(data, dict):
            data = data.get("documents", [])
        return list(data or [])

    async def get_relationships(self, doc_id: str) -> dict[str, Any] | list[Any]:
        """Bulk relationship fetch for one document's neighborhood."""
        return await self._request("GET", f"/documents/{doc_id}/relationships") or {}

    async def suggest_links(self, doc_id: str, by: str = "sender") -> list[LinkSuggestion]:
        if by not in SUGGEST_MODES:
            raise ValueError(f"by must be one of {SUGGEST_MODES}, got {by!r}")
        data = await self._request("GET", f"/documents/{doc_id}/suggest-links", params={"by": by})
        raw = data.get("suggestions", []) if isinstance(data, dict) else []
        return [LinkSuggestion.model_validate(s) for s in raw if isinstance(s, dict) and s.get("id")]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_document(self, doc: Document) -> Any:
        return await self._request("POST", "/documents", json=document_payload(doc))

    async def update_document(self, doc: Document) -> Any:
        return await self._request("PATCH", f"/documents/{doc.id}", json=document_payload(doc))

    async def delete_document(self, doc_id: str) -> Any:
        return await self._request("DELETE", f"/documents/{doc_id}")

    async def add_link(self, doc_id: str, linked_id: str, link_type: str) -> Any:
        body = LinkRequest(linked_id=linked_id, link_type=link_type)
        return await self._request("POST", f"/documents/{doc_id}/link", json=body.model_dump(by_alias=True))

    async def remove_link(self, doc_id: str, target_id: str) -> Any:
        return await self._request("DELETE", f"/documents/{doc_id}/link/{target_id}")

    async def set_current(self, doc_id: str) -> Any:
        return await self._request("POST", f"/documents/{doc_id}/set-current")

    async def move_version(self, doc_id: str, from_version: int, to_version: int) -> Any:
        body = MoveVersionRequest(from_version=from_version, to_version=to_version)
        return await self._request(
            "POST", f"/documents/{doc_id}/move-version", json=body.model_dump(by_alias=True),
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        try:
            return await self.breaker.call(self._send, method, path, json=json, params=params)
        except httpx.TransportError as e:
            logger.error("Backend unreachable on %s %s: %s", method, path, e)
            raise BackendError(f"Backend unreachable: {e.__class__.__name__}") from e

    @retry(
        stop=stop_after_attempt(settings.retry_attempts),
        wait=wait_exponential(min=settings.retry_wait_min_seconds, max=settings.retry_wait_max_seconds),
        retry=retry_if_exception_type((httpx.ConnectError,)),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self._transport,
        ) as client:
            response = await client.request(method, f"/orgs/{self.org_id}{path}", json=json, params=params)

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning("Backend %s %s -> %d: %s", method, path, response.status_code, message)
            raise BackendError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning("Backend %s %s -> %d with a non-JSON body", method, path, response.status_code)
            raise BackendError("Backend returned a non-JSON response", status_code=response.status_code) from e
