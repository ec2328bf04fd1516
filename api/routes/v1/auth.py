"""
api/routes/v1/auth.py -- Login, logout, and credential introspection endpoints.

Routes:
  POST /api/v1/auth/login      -- email+password login; returns a bearer credential
  POST /api/v1/auth/logout     -- marks the user offline (credential stays valid)
  GET  /api/v1/auth/user       -- current user profile (requires auth)
  GET  /api/v1/auth/validate   -- {"valid": bool} for the supplied credential
  POST /api/v1/demo-login      -- log in as the first parent (DEMO_LOGIN_ENABLED only)

Security:
  POST /auth/login and POST /demo-login are rate-limited per IP (LOGIN_RATE_LIMIT).
  @router.post must sit ABOVE @limiter.limit. slowapi checks per-route limits
  only inside the wrapper limiter.limit returns; SlowAPIMiddleware skips them.
  FastAPI therefore has to register that wrapper, not the bare function.
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on every response that carries a credential.
  Logout does NOT revoke the credential. There is no revocation list; a
  credential is valid until exp regardless of logout.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    DemoLoginResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    UserResponse,
    ValidateResponse,
    to_user_response,
)
from auth.dependencies import bearer_token, get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenAuthenticator, authenticate_user
from core.config import get_settings

logger = logging.getLogger("scoutportal.api.auth")

# Auth policy:
# - POST /api/v1/auth/login:     public, rate-limited
# - POST /api/v1/auth/logout:    requires auth (get_current_user)
# - GET  /api/v1/auth/user:      requires auth (get_current_user)
# - GET  /api/v1/auth/validate:  public -- answers for whatever credential is sent
# - POST /api/v1/demo-login:     public, rate-limited, disabled unless DEMO_LOGIN_ENABLED
router = APIRouter()


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


def _issue_login(request: Request, user: User, response_cls=LoginResponse, **extra) -> JSONResponse:
    """Issue a credential for `user`, mark them online, and build a no-store response."""
    authenticator: TokenAuthenticator = request.app.state.authenticator
    token = authenticator.issue(user.id)
    if authenticator.presence is not None:
        authenticator.presence.heartbeat(user.id)
    body = response_cls(
        user=to_user_response(user),
        token=token,
        expires_in=request.app.state.settings.token_ttl_seconds,
        **extra,
    )
    resp = JSONResponse(status_code=200, content=body.model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a 24h bearer credential.

    Returns the same generic error for unknown email and wrong password
    ("bad_credentials") so the response does not reveal which accounts exist.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    logger.info("Login succeeded for user %s", user.id)
    return _issue_login(request, user)


@router.get("/auth/validate", response_model=ValidateResponse)
def validate(request: Request) -> JSONResponse:
    """Report whether the Authorization header carries a valid, unexpired credential.

    Only checks the credential itself -- the subject is not looked up.
    """
    token = bearer_token(request)
    authenticator: TokenAuthenticator = request.app.state.authenticator
    if token is None or not authenticator.verify(token).valid:
        return JSONResponse(status_code=401, content=ValidateResponse(valid=False).model_dump())
    return JSONResponse(status_code=200, content=ValidateResponse(valid=True).model_dump())


@router.post("/demo-login", response_model=DemoLoginResponse)
@limiter.limit(_login_rate_limit)
def demo_login(request: Request) -> JSONResponse:
    """Log in as the first parent account without a password.

    For demos and seeded staging databases only. Answers 404 unless
    DEMO_LOGIN_ENABLED=true.
    """
    if not request.app.state.settings.demo_login_enabled:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "Not found."})

    user_store: UserStore = request.app.state.user_store
    parent = user_store.first_parent()
    if parent is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "no_parent_users", "message": "No parent users found."},
        )

    logger.warning("Demo login issued a credential for user %s", parent.id)
    return _issue_login(request, parent, response_cls=DemoLoginResponse)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request, current_user: User = Depends(get_current_user)) -> LogoutResponse:
    """Mark the current user offline.

    The credential itself remains valid until it expires -- clients must
    discard it. See DESIGN.md (revocation open question).
    """
    authenticator: TokenAuthenticator = request.app.state.authenticator
    if authenticator.presence is not None:
        authenticator.presence.mark_offline(current_user.id)
    return LogoutResponse(success=True)


@router.get("/auth/user", response_model=UserResponse)
def current_user_profile(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the profile of the user the credential belongs to."""
    return to_user_response(current_user)
