"""Optimistic document session.

Each mutation runs in two phases:

  1. apply:   the mutation is committed to the local store synchronously
              and listeners are told (phase ``applied``)
  2. confirm: a background task persists it to the backend; success
              publishes ``confirmed``, failure or timeout restores the
              pre-mutation snapshot and publishes ``rolled_back``

Callers get a PendingMutation back immediately and may await it to learn
the outcome. Mutations are applied in call order, so a second mutation on
the same document sees the first one's optimistic state. Rolling back the
first undoes only the fields it wrote that still hold its values, so a
later mutation's changes survive and each touched group keeps exactly one
current version.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Generator
from typing import Any

from docgraph.config import settings
from docgraph.core import resolver
from docgraph.core.exceptions import BackendError, ConflictOnSyncError, DocumentNotFoundError
from docgraph.core.mutations import MutationResult, RelationshipMutator
from docgraph.core.normalize import hydrate_store, normalize_neighborhood, parse_document
from docgraph.core.notifier import ChangeNotifier
from docgraph.core.resolver import CurrentVersion
from docgraph.core.store import RelationshipStore
from docgraph.models.document import DEFAULT_LINK_TYPE, Document, LinkSuggestion, Relationships
from docgraph.models.events import ChangeEvent, ChangePhase, MutationKind
from docgraph.services.api_client import DocumentApiClient
from docgraph.services.version_candidates import find_version_candidates

logger = logging.getLogger(__name__)

Persist = Callable[[], Awaitable[Any]]


class PendingMutation:
    """Handle on an optimistically applied mutation.

    ``await pending`` returns the MutationResult once the backend confirms,
    or raises ConflictOnSyncError after the local change was rolled back.
    """

    def __init__(
        self,
        result: MutationResult,
        task: "asyncio.Task[MutationResult] | None",
        reissue: Callable[[], "PendingMutation"],
    ) -> None:
        self.result = result
        self._task = task
        self._reissue = reissue

    def __await__(self) -> Generator[Any, None, MutationResult]:
        if self._task is None:
            return self._resolved().__await__()
        return self._task.__await__()

    async def _resolved(self) -> MutationResult:
        return self.result

    def done(self) -> bool:
        return self._task is None or self._task.done()

    def retry(self) -> "PendingMutation":
        """Issue the same mutation again against the current local state."""
        return self._reissue()


class DocumentSession:
    """One user's view of the relationship graph, synced to the backend."""

    def __init__(
        self,
        client: DocumentApiClient,
        store: RelationshipStore | None = None,
        notifier: ChangeNotifier | None = None,
        confirm_timeout: float | None = None,
    ) -> None:
        self.client = client
        self.store = store if store is not None else RelationshipStore()
        self.notifier = notifier or ChangeNotifier()
        self.mutator = RelationshipMutator(self.store, self.notifier)
        if confirm_timeout is None:
            confirm_timeout = settings.confirm_timeout_seconds
        self.confirm_timeout = confirm_timeout
        self._in_flight: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def versions_of(self, doc_id: str) -> list[Document]:
        return resolver.versions_of(self.store, doc_id)

    def current_of(self, doc_id: str) -> CurrentVersion:
        """Current version of the group *doc_id* belongs to."""
        return resolver.current_of(self.store, self.store.get(doc_id).version_group_id)

    def relationships_of(self, doc_id: str) -> Relationships:
        return resolver.relationships_of(self.store, doc_id)

    def version_candidates(
        self, filename: str, content_hash: str | None = None, folder_path: list[str] | None = None,
    ) -> list[Document]:
        return find_version_candidates(self.store, filename, content_hash, folder_path or [])

    async def suggest_links(self, doc_id: str, by: str = "sender") -> list[LinkSuggestion]:
        """Backend link suggestions, minus documents already linked."""
        self.store.get(doc_id)  # NotFound before any network call
        suggestions = await self._backend_read(self.client.suggest_links(doc_id, by), doc_id)
        already = set(self.store.get(doc_id).links) | self.store.incoming_ids(doc_id) | {doc_id}
        return [s for s in suggestions if s.id not in already]

    # ------------------------------------------------------------------
    # Hydration (pull-based)
    # ------------------------------------------------------------------

    async def hydrate(self, doc_id: str) -> Relationships:
        """Fetch one document's neighborhood and load it into the store."""
        subject_raw, relationships = await asyncio.gather(
            self._backend_read(self.client.get_document(doc_id), doc_id),
            self._backend_read(self.client.get_relationships(doc_id), doc_id),
        )
        documents = normalize_neighborhood(subject_raw, relationships)
        ids = hydrate_store(self.store, documents)
        for group_id in {d.version_group_id for d in documents}:
            for warning in resolver.check_group_integrity(self.store, group_id):
                logger.warning("Integrity warning after hydrating %s: %s", doc_id, warning.message)
        logger.info("Hydrated %s with %d neighbor(s)", doc_id, len(ids) - 1)
        self.notifier.publish(ChangeEvent(MutationKind.HYDRATE, tuple(ids), ChangePhase.CONFIRMED))
        return resolver.relationships_of(self.store, doc_id)

    async def refresh(self) -> int:
        """Replace the whole store with the backend's document list."""
        raw_documents = await self.client.list_documents()
        documents = [d for d in (parse_document(raw) for raw in raw_documents) if d is not None]
        self.store.clear()
        ids = hydrate_store(self.store, documents)
        self.notifier.publish(ChangeEvent(MutationKind.HYDRATE, tuple(ids), ChangePhase.CONFIRMED))
        return len(ids)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upload_document(self, doc: Document, base_id: str | None = None) -> PendingMutation:
        """Register an uploaded document, optionally as a new version of *base_id*."""
        if base_id is not None:
            return self.link_as_new_version(base_id, doc)
        result = self.mutator.add_document(doc)
        created = result.document(doc.id)
        return self._confirm(
            result, lambda: self.client.create_document(created), lambda: self.upload_document(doc),
        )

    def link_as_new_version(self, base_id: str, new_doc: Document) -> PendingMutation:
        result = self.mutator.link_as_new_version(base_id, new_doc)

        async def persist() -> None:
            await self.client.create_document(result.document(new_doc.id))
            try:
                for doc in result.documents:
                    if doc.id != new_doc.id:
                        await self.client.update_document(doc)
            except BackendError:
                # A timeout cancels persist() before this runs; that case is left to refresh()
                logger.warning("Deleting %s from the backend after a failed sibling update", new_doc.id)
                await self.client.delete_document(new_doc.id)
                raise

        return self._confirm(result, persist, lambda: self.link_as_new_version(base_id, new_doc))

    def set_current_version(self, doc_id: str) -> PendingMutation:
        result = self.mutator.set_current_version(doc_id)
        return self._confirm(
            result, lambda: self.client.set_current(doc_id), lambda: self.set_current_version(doc_id),
        )

    def unlink_from_version_group(self, doc_id: str) -> PendingMutation:
        result = self.mutator.unlink_from_version_group(doc_id)

        async def persist() -> None:
            for doc in result.documents:
                await self.client.update_document(doc)

        return self._confirm(result, persist, lambda: self.unlink_from_version_group(doc_id))

    def move_version(self, doc_id: str, target_version_number: int) -> PendingMutation:
        from_version = self.store.get(doc_id).version_number
        result = self.mutator.move_version(doc_id, target_version_number)
        return self._confirm(
            result,
            lambda: self.client.move_version(doc_id, from_version, target_version_number),
            lambda: self.move_version(doc_id, target_version_number),
        )

    def add_link(self, from_id: str, to_id: str, link_type: str = DEFAULT_LINK_TYPE) -> PendingMutation:
        result = self.mutator.add_link(from_id, to_id, link_type)
        return self._confirm(
            result,
            lambda: self.client.add_link(from_id, to_id, link_type),
            lambda: self.add_link(from_id, to_id, link_type),
        )

    def remove_link(self, from_id: str, to_id: str) -> PendingMutation:
        result = self.mutator.remove_link(from_id, to_id)
        return self._confirm(
            result, lambda: self.client.remove_link(from_id, to_id), lambda: self.remove_link(from_id, to_id),
        )

    def delete_document(self, doc_id: str) -> PendingMutation:
        result = self.mutator.delete_document(doc_id)

        async def persist() -> None:
            await self.client.delete_document(doc_id)
            for doc in result.documents:
                await self.client.update_document(doc)

        return self._confirm(result, persist, lambda: self.delete_document(doc_id))

    async def drain(self) -> None:
        """Wait for every in-flight confirmation to settle."""
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _confirm(
        self,
        result: MutationResult,
        persist: Persist,
        reissue: Callable[[], PendingMutation],
    ) -> PendingMutation:
        if not result.changed:
            return PendingMutation(result, None, reissue)
        task = asyncio.create_task(self._run_confirmation(result, persist))
        self._in_flight.add(task)
        task.add_done_callback(self._on_settled)
        return PendingMutation(result, task, reissue)

    async def _run_confirmation(self, result: MutationResult, persist: Persist) -> MutationResult:
        try:
            await asyncio.wait_for(persist(), timeout=self.confirm_timeout)
        except (BackendError, asyncio.TimeoutError) as e:
            reason = "confirmation timed out" if isinstance(e, asyncio.TimeoutError) else str(e)
            self._rollback(result)
            logger.warning(
                "Rolled back %s on %s: %s", result.kind.value, ", ".join(result.document_ids), reason,
            )
            raise ConflictOnSyncError(result.kind.value, result.document_ids, reason) from e
        except Exception as e:
            self._rollback(result)
            logger.exception("Rolled back %s after an unexpected error", result.kind.value)
            raise ConflictOnSyncError(
                result.kind.value, result.document_ids, f"{e.__class__.__name__}: {e}",
            ) from e

        self.notifier.publish(ChangeEvent(result.kind, result.document_ids, ChangePhase.CONFIRMED))
        return result

    def _rollback(self, result: MutationResult) -> None:
        self.mutator.revert(result)
        self.notifier.publish(ChangeEvent(result.kind, result.document_ids, ChangePhase.ROLLED_BACK))

    def _on_settled(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        # Mark the exception retrieved; callers that care await the PendingMutation
        task.exception()

    async def _backend_read(self, call: Awaitable[Any], doc_id: str) -> Any:
        try:
            return await call
        except BackendError as e:
            if e.status_code == 404:
                raise DocumentNotFoundError(doc_id) from e
            raise
