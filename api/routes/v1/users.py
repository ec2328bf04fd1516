"""
api/routes/v1/users.py -- Member directory endpoints for executives.

Routes:
  GET    /api/v1/users             -- paginated member list with role and search filters
  POST   /api/v1/users             -- create a member account
  PATCH  /api/v1/users/{user_id}   -- partial update, including capability flags
  DELETE /api/v1/users/{user_id}   -- remove a member account

Every route requires the executive role (role == "executive" or is_executive).
An executive cannot delete their own account or remove their own executive
access, so the directory always keeps at least the caller's access.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import Pagination, UserCreate, UserListResponse, UserResponse, UserUpdate, to_user_response
from auth.dependencies import require_role
from auth.models import User
from auth.roles import EXECUTIVE, has_role
from auth.store import UserStore
from auth.tokens import hash_password

logger = logging.getLogger("scoutportal.api.users")

router = APIRouter()

require_executive = require_role(EXECUTIVE)


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found."})


def _email_conflict() -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"code": "conflict", "message": "A user with that email already exists."},
    )


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    role: Optional[str] = Query(default=None, max_length=30),
    search: Optional[str] = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(require_executive),
) -> UserListResponse:
    """List members. `role` matches the capability flag for the four built-in roles."""
    user_store: UserStore = request.app.state.user_store
    users, total = user_store.list_users(role=role, search=search, page=page, limit=limit)
    return UserListResponse(
        users=[to_user_response(u) for u in users],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_executive),
) -> UserResponse:
    """Create a member account. The primary role's own flag is always set."""
    user_store: UserStore = request.app.state.user_store

    flags = {
        "is_parent": body.is_parent,
        "is_leader": body.is_leader,
        "is_executive": body.is_executive,
        "is_support": body.is_support,
    }
    flags[f"is_{body.role}"] = True

    new_user = User(
        email=body.email,
        name=body.name,
        role=body.role,
        avatar=body.avatar,
        hashed_password=hash_password(body.password),
        **flags,
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise _email_conflict() from exc

    created = user_store.get_by_id(user_id)
    if created is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    logger.info("User %s created by %s", user_id, current_user.id)
    return to_user_response(created)


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserUpdate,
    current_user: User = Depends(require_executive),
) -> UserResponse:
    """Update any subset of a member's profile, password, role and flags.

    Setting `role` also sets that role's own flag, as on create. Explicit
    nulls are treated the same as omitted fields.
    """
    user_store: UserStore = request.app.state.user_store

    target = user_store.get_by_id(user_id)
    if target is None:
        raise _not_found()

    updates = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if "password" in updates:
        updates["hashed_password"] = hash_password(updates.pop("password"))
    if "role" in updates:
        updates[f"is_{updates['role']}"] = True

    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    if target.id == current_user.id:
        after = dataclasses.replace(target, **updates)
        if not has_role(after, EXECUTIVE):
            raise HTTPException(
                status_code=400,
                detail={"code": "self_demotion", "message": "You cannot remove your own executive access."},
            )

    try:
        updated_rows = user_store.update_user(user_id, **updates)
    except IntegrityError as exc:
        raise _email_conflict() from exc
    if not updated_rows:
        raise _not_found()

    logger.info("User %s updated by %s (%s)", user_id, current_user.id, ", ".join(sorted(updates)))
    return to_user_response(user_store.get_by_id(user_id))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: str,
    current_user: User = Depends(require_executive),
) -> Response:
    """Delete a member account. Credentials issued to it stop authorizing immediately."""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_delete", "message": "You cannot delete your own account."},
        )

    user_store: UserStore = request.app.state.user_store
    if not user_store.delete_user(user_id):
        raise _not_found()

    logger.info("User %s deleted by %s", user_id, current_user.id)
    return Response(status_code=204)
