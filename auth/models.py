"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these classes only own the shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A portal member: parent, group leader, executive, or support staff.

    role is the primary role shown in the UI. The is_* flags are secondary
    capabilities -- a parent who also runs a group has role="parent" and
    is_leader=True. The role gate in auth/roles.py accepts either.

    is_online / last_seen are presence telemetry for display only. They are
    never consulted for access decisions.
    """

    email: str
    name: str
    role: str  # "parent", "leader", "executive", "support"
    id: str | None = None
    hashed_password: str | None = None
    avatar: str | None = None
    is_parent: bool = False
    is_leader: bool = False
    is_executive: bool = False
    is_support: bool = False
    is_online: bool = False
    last_seen: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class TokenCheck:
    """Outcome of TokenAuthenticator.verify(). subject is set only when valid."""

    valid: bool
    subject: str | None = None
