"""Shared test fixtures for docgraph tests."""

from unittest.mock import AsyncMock

import pytest

from docgraph.core.mutations import RelationshipMutator
from docgraph.core.notifier import ChangeNotifier
from docgraph.core.store import RelationshipStore
from docgraph.models.document import Document
from docgraph.services.api_client import DocumentApiClient
from docgraph.services.document_session import DocumentSession


def make_doc(doc_id: str, **fields) -> Document:
    """Build a Document with sensible defaults for tests."""
    fields.setdefault("title", f"Document {doc_id}")
    return Document(id=doc_id, **fields)


def make_group(group_id: str, *members: tuple[str, int, bool]) -> list[Document]:
    """Build a version group from (id, version_number, is_current) tuples."""
    return [
        make_doc(doc_id, version_group_id=group_id, version_number=number, is_current_version=current)
        for doc_id, number, current in members
    ]


def current_ids(store: RelationshipStore, group_id: str) -> list[str]:
    return sorted(d.id for d in store.members_of(group_id) if d.is_current_version)


@pytest.fixture
def store() -> RelationshipStore:
    return RelationshipStore()


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture
def events(notifier: ChangeNotifier) -> list:
    """Every event published on the shared notifier, in order."""
    received: list = []
    notifier.subscribe(received.append)
    return received


@pytest.fixture
def mutator(store: RelationshipStore, notifier: ChangeNotifier) -> RelationshipMutator:
    return RelationshipMutator(store, notifier)


@pytest.fixture
def fake_client() -> AsyncMock:
    """A backend client whose every call succeeds with no body."""
    client = AsyncMock(spec=DocumentApiClient)
    client.breaker = AsyncMock()
    return client


@pytest.fixture
def session(fake_client: AsyncMock, store: RelationshipStore, notifier: ChangeNotifier) -> DocumentSession:
    return DocumentSession(fake_client, store=store, notifier=notifier, confirm_timeout=0.5)
