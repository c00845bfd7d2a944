"""FastAPI application entry point for the relationship panel API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docgraph.api.dependencies import build_session, get_session
from docgraph.api.routes import relationships
from docgraph.config import settings
from docgraph.core.circuit_breaker import CircuitBreakerOpen
from docgraph.core.exceptions import (
    BackendError,
    ConflictOnSyncError,
    DocGraphError,
    DocumentNotFoundError,
    InvalidArgumentError,
)
from docgraph.middleware.request_id import RequestIDMiddleware
from docgraph.models.envelope import ApiError, error_response

logger = logging.getLogger(__name__)

# Configure logging format based on dev_mode
if not settings.dev_mode:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","message":"%(message)s"}',
    )
else:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the document session on startup, let confirmations settle on shutdown."""
    if getattr(app.state, "session", None) is None:
        app.state.session = build_session()
    logger.info("Document session ready (backend=%s, org=%s)", settings.backend_url, settings.org_id)
    yield
    await app.state.session.drain()


app = FastAPI(
    title="docgraph",
    description="Document version and link relationships for the document-management UI",
    version="0.1.0",
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs" if settings.dev_mode else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(RequestIDMiddleware)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR: list[tuple[type[DocGraphError], int]] = [
    (DocumentNotFoundError, 404),
    (InvalidArgumentError, 400),
    (ConflictOnSyncError, 409),
    (CircuitBreakerOpen, 503),
    (BackendError, 502),
]


@app.exception_handler(DocGraphError)
async def _docgraph_error_handler(request: Request, exc: DocGraphError) -> JSONResponse:
    status_code = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    error = ApiError(
        code=exc.code,
        message=str(exc),
        retryable=isinstance(exc, (ConflictOnSyncError, BackendError)),
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response([error], request_id=getattr(request.state, "request_id", None)),
    )


@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=True)
    detail = str(exc) if settings.dev_mode else "Internal server error"
    return JSONResponse(
        status_code=500,
        content=error_response([ApiError(code="INTERNAL_ERROR", message=detail)]),
    )


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)


# ---------------------------------------------------------------------------
# Routers: all under /api/v1/
# ---------------------------------------------------------------------------

app.include_router(relationships.router, prefix="/api/v1/documents", tags=["relationships"])


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Liveness check plus backend circuit state and local store size."""
    session = get_session(request)
    return {
        "status": "healthy",
        "services": {
            "backend": session.client.breaker.state.value,
        },
        "store": {"documents": len(session.store)},
    }
