"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Credentials arrive only as `Authorization: Bearer <credential>`. A missing
header or a non-Bearer scheme is rejected before any signature work.

get_current_user() authenticates without a role gate.
require_role("leader") builds a dependency that also applies the role gate.

Both raise auth.errors exceptions; api/main.py maps them to generic 401/403
responses so the client never learns which check failed.

Layer rule: may import fastapi (this module is part of the DI system), never api/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.errors import MalformedCredential
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenAuthenticator

_BEARER_PREFIX = "Bearer "


def bearer_token(request: Request) -> str | None:
    """Return the raw credential from the Authorization header, or None."""
    header = request.headers.get("Authorization", "")
    if not header.startswith(_BEARER_PREFIX):
        return None
    token = header[len(_BEARER_PREFIX) :].strip()
    return token or None


def _authorize(request: Request, required_role: str | None) -> User:
    token = bearer_token(request)
    if token is None:
        raise MalformedCredential("missing bearer credential")
    authenticator: TokenAuthenticator = request.app.state.authenticator
    user_store: UserStore = request.app.state.user_store
    return authenticator.authorize(token, required_role, user_store)


def get_current_user(request: Request) -> User:
    """Require a valid credential for an existing user.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    return _authorize(request, None)


def require_role(role: str) -> Callable[[Request], User]:
    """Build a dependency that requires a valid credential AND the given role.

    Use as a FastAPI dependency:
        @router.get("/executive-only")
        def route(user: User = Depends(require_role("executive"))): ...
    """

    def dependency(request: Request) -> User:
        return _authorize(request, role)

    dependency.__name__ = f"require_{role}"
    return dependency
