"""
api/main.py -- FastAPI application entry point for the scout portal.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan loads settings first. A ConfigurationError (e.g. missing SECRET_KEY)
propagates out of startup, so the server never begins serving traffic with
an unusable signing key.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.errors import Forbidden, Unauthenticated, UserNotFound
from auth.presence import PresenceTracker
from auth.store import UserStore
from auth.tokens import TokenAuthenticator
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("scoutportal.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build settings, store, and authenticator on startup; dispose on shutdown.

    Startup order matters:
      1. Settings -- raises ConfigurationError before anything else is built.
      2. User store -- the authenticator's presence sink writes through it.
      3. Authenticator -- receives the secret explicitly, never reads env.
    """
    settings = get_settings()
    app.state.settings = settings
    logger.info("Scout portal API starting up")

    app.state.user_store = UserStore(settings.database_url)
    presence = PresenceTracker(
        app.state.user_store.touch_presence,
        interval_seconds=settings.presence_interval_seconds,
    )
    app.state.authenticator = TokenAuthenticator.from_settings(settings, presence=presence)
    logger.info(
        "Auth initialized (token_ttl=%ds, presence_interval=%ds, demo_login=%s)",
        settings.token_ttl_seconds,
        settings.presence_interval_seconds,
        settings.demo_login_enabled,
    )

    yield

    app.state.user_store.close()
    logger.info("Scout portal API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Scout Portal API",
    description="Membership portal for parents, group leaders, and executives.",
    version=VERSION,
    lifespan=lifespan,
)


def _configure_middleware(app: FastAPI) -> None:
    """Register host/CORS/rate-limit middleware from settings.

    Settings are read at import time here because Starlette freezes the
    middleware stack on first request. A missing SECRET_KEY therefore fails
    the import, which is the earliest possible point.
    """
    settings = get_settings()
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )
    app.add_middleware(SlowAPIMiddleware)
    # SlowAPIMiddleware locates the limiter via app.state.limiter by convention.
    app.state.limiter = limiter


_configure_middleware(app)


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
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope. Auth failures are
# deliberately collapsed: malformed, forged, expired and unknown-subject
# credentials all produce the same 401 body.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(Unauthenticated)
@app.exception_handler(UserNotFound)
async def unauthenticated_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.info("Auth failed on %s %s: %s", request.method, request.url.path, type(exc).__name__)
    response = _error(401, "unauthorized", "Authentication failed.")
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(Forbidden)
async def forbidden_handler(request: Request, exc: Forbidden) -> JSONResponse:
    return _error(403, "forbidden", "Access denied.")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured dict details are used as-is; anything else is wrapped."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all. The traceback goes to the log, never to the response body."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint -- no auth, no rate limit
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
