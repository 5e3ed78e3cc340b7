"""
Memories Backend: FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers and
       returns the app; uvicorn serves `memories.main:app`.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware (outermost first):                           │
    │   RequestID → RateLimit → Logging → GZip → CORS          │
    │                                                          │
    │  Routers:                                                │
    │   /api/pages…   /api/letters   /api/layout   /health     │
    │                                                          │
    │  Every route drives a PageController (canvas core) or a  │
    │  pure canvas function; services sit behind it.           │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, storage + template directories
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Callable, Dict, Optional, Type

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from memories import __version__
from memories.config import settings
from memories.database import dispose_engine
from memories.exceptions import (
    DatabaseError,
    DecodeError,
    FileStorageError,
    FlattenError,
    MemoriesError,
    NotFoundError,
    RateLimitExceededError,
    SessionClosedError,
    TransmissionError,
    ValidationError,
)
from memories.middleware.logging import RequestLoggingMiddleware
from memories.middleware.rate_limit import RateLimitMiddleware
from memories.middleware.request_id import RequestIDMiddleware, request_id_var
from memories.routes import health, layout, letters, pages

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole application.

    Format: 2026-01-01T12:00:00 [INFO] memories.canvas.controller: message
    Handlers write to stdout, which Docker collects.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Chatty third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("Memories backend %s starting up", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving so /health can report the problem.
        logger.error("Configuration error: %s", e)

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    (storage / settings.templates_dir).mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)

    yield

    logger.info("Memories backend shutting down")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

# exception type → (status, error code, user message override)
ERROR_RESPONSES: Dict[Type[MemoriesError], tuple] = {
    ValidationError: (400, "validation_error", None),
    DecodeError: (400, "decode_error", None),
    NotFoundError: (404, "not_found", None),
    SessionClosedError: (409, "session_closed", None),
    FlattenError: (422, "flatten_error", None),
    RateLimitExceededError: (429, "rate_limit_exceeded", None),
    TransmissionError: (503, "transmission_error", None),
    DatabaseError: (500, "server_error", "An internal error occurred. Please try again later."),
    FileStorageError: (500, "server_error", None),
    MemoriesError: (500, "server_error", None),
}

# Context keys that are safe to return to clients.
PUBLIC_DETAILS: Dict[Type[MemoriesError], tuple] = {
    ValidationError: ("field",),
    RateLimitExceededError: ("retry_after",),
    TransmissionError: ("retryable",),
}


def _error_response(exc: MemoriesError, status: int, code: str, message: Optional[str]) -> JSONResponse:
    rid = request_id_var.get("")
    content = {"error": code, "message": message or exc.message, "request_id": rid}

    public_keys = PUBLIC_DETAILS.get(type(exc), ())
    details = {k: exc.context[k] for k in public_keys if k in exc.context}
    if details:
        content["details"] = details

    headers = {}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=status, content=content, headers=headers)


def _handler_for(status: int, code: str, message: Optional[str]) -> Callable:
    async def handle(request: Request, exc: MemoriesError) -> JSONResponse:
        rid = request_id_var.get("")
        if status >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        return _error_response(exc, status, code, message)

    return handle


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions to JSON error responses.

    Body: {"error": code, "message": ..., "details": {...}?, "request_id": ...}
    Context is logged server-side; only whitelisted keys reach the client.
    """
    for exc_type, (status, code, message) in ERROR_RESPONSES.items():
        app.add_exception_handler(exc_type, _handler_for(status, code, message))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Memories API",
        description=(
            "Page editor backend for memory books and letters: place photos, "
            "write styled text, pick a background and flatten pages to JPEG."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RequestID wraps everything.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(pages.router)
    app.include_router(letters.router)
    app.include_router(layout.router)
    app.include_router(health.router)

    return app


app = create_app()
