"""
api/main.py -- FastAPI application entry point for AuthGate.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware  -- credentials-enabled CORS for the configured frontend
  2. log_requests    -- one access-log line per request with latency

Lifespan builds the object graph once (Settings -> UserStore, TokenService,
TotpService, SmtpNotifier -> AuthService) and hangs it on app.state. Route
dependencies read app.state.auth_service; nothing calls get_settings() after
startup.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, FieldErrorOut, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError
from auth.notify import SmtpNotifier
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from auth.totp import TotpService
from core.config import Settings, get_settings

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authgate.api")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_auth_service(settings: Settings, store: UserStore, notifier=None) -> AuthService:
    """Assemble AuthService from one Settings instance.

    notifier defaults to SmtpNotifier(settings); tests pass a recording fake.
    """
    return AuthService(
        store=store,
        tokens=TokenService(settings),
        totp=TotpService(issuer=settings.app_name),
        notifier=notifier if notifier is not None else SmtpNotifier(settings),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the store and services on startup; dispose of the engine on shutdown."""
    settings = get_settings()
    logger.info("AuthGate API starting up (environment=%s)", settings.environment)
    store = UserStore(settings.database_url)
    app.state.settings = settings
    app.state.user_store = store
    app.state.auth_service = build_auth_service(settings, store)
    logger.info("Auth initialized")

    yield

    app.state.user_store.close()
    logger.info("AuthGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AuthGate API",
    description="Signup with email verification, password login, TOTP two-factor auth, and role gating.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


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


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, detail: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=detail).model_dump(exclude_none=True),
        headers={"Cache-Control": "no-store"},
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render a domain failure raised anywhere in the auth layer.

    5xx AuthErrors (email delivery) are logged with their cause; the client
    only ever sees the generic message.
    """
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %r", exc.code, request.method, request.url.path, exc.__cause__)
    fields = [FieldErrorOut(**e) for e in exc.errors] or None
    return _error(exc.status_code, ErrorDetail(code=exc.code, message=exc.message, fields=fields))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies (e.g. a JSON array where an object belongs) get the same 400 as field errors."""
    fields = [
        FieldErrorOut(field=".".join(str(p) for p in err.get("loc", ())[1:]) or "body", message=err.get("msg", ""))
        for err in exc.errors()
    ]
    return _error(400, ErrorDetail(code="validation_error", message="Validation failed.", fields=fields))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing-level errors (404 unknown path, 405 wrong method) in the standard envelope."""
    return _error(exc.status_code, ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, ErrorDetail(code="internal_error", message="Something went wrong."))


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, current version and database reachability."""
    try:
        request.app.state.user_store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
