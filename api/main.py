"""
api/main.py -- FastAPI application entry point for the Inkpress auth core.

Run with:      uvicorn asgi:app --reload

This module is the HTTP boundary. It is the only place that:
  - reads configuration (get_settings(), once, in lifespan),
  - touches cookies and headers,
  - maps auth.errors kinds to status codes.

Middleware stack (outermost to innermost):
  1. CORSMiddleware  -- adds CORS headers for allowed browser origins
  2. log_requests    -- method, path, status and latency for every request

Lifespan builds the store and the service graph on startup and runs the
housekeeping task that purges expired denylist rows and stale sessions.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.password import router as password_router
from api.routes.v1.sessions import router as sessions_router
from auth.errors import AuthenticationError, AuthError, StoreError, ValidationError
from auth.orchestrator import AuthOrchestrator
from auth.store import AuthStore
from core.config import get_settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("inkpress.api")

# ---------------------------------------------------------------------------
# Background housekeeping task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Purge expired revoked tokens and stale sessions every interval.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly. The purge itself is
    blocking SQL, so it runs in a worker thread. A StoreError (e.g. a locked
    SQLite file) is logged and retried on the next tick.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        auth: AuthOrchestrator = app.state.auth
        for purge in (auth.revocations.purge_expired, auth.sessions.purge_expired):
            try:
                await asyncio.to_thread(purge)
            except StoreError:
                logger.exception("Housekeeping purge failed; retrying in %ds", interval_seconds)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build long-lived resources on startup; release them on shutdown.

    Settings are read exactly once here and passed down. Nothing below this
    layer reads configuration on its own.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info("Inkpress auth API starting up")
    app.state.settings = settings
    app.state.store = AuthStore(settings.database_url)
    app.state.auth = AuthOrchestrator.from_settings(settings, app.state.store)
    logger.info("Auth store initialized")
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.revocation_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    app.state.store.close()
    logger.info("Inkpress auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Inkpress Auth API",
    description="Authentication and session lifecycle for the Inkpress publishing platform.",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(password_router, prefix="/api/v1", tags=["Password"])
app.include_router(sessions_router, prefix="/api/v1", tags=["Sessions"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map the auth.errors hierarchy onto HTTP.

    401 InvalidCredentials / InvalidToken / WrongCurrentPassword / NotFoundError
    403 Forbidden
    409 SamePassword / EmailTaken
    400 WeakPassword (every violated rule listed in `errors`)
    500 StoreError -- logged with traceback, body stays generic
    """
    if exc.status_code >= 500:
        logger.exception("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
        detail = ErrorDetail(code="internal_error", message="An unexpected error occurred.")
    else:
        detail = ErrorDetail(
            code=exc.code,
            message=exc.message,
            errors=exc.errors if isinstance(exc, ValidationError) else [],
        )
    response = JSONResponse(status_code=exc.status_code, content=ErrorResponse(error=detail).model_dump())
    if isinstance(exc, AuthenticationError):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured error for HTTPException; dict details are used as the error field directly."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=API_VERSION)
