"""API dependencies: the per-process document session."""

from typing import Annotated

from fastapi import Depends, Request

from docgraph.services.api_client import DocumentApiClient
from docgraph.services.document_session import DocumentSession


def build_session() -> DocumentSession:
    """Create a session wired to the configured backend."""
    return DocumentSession(DocumentApiClient())


def get_session(request: Request) -> DocumentSession:
    """Return the session created at startup, creating it on first use."""
    session = getattr(request.app.state, "session", None)
    if session is None:
        session = build_session()
        request.app.state.session = session
    return session


Session = Annotated[DocumentSession, Depends(get_session)]
