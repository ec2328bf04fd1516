"""
auth/roles.py -- Role gate for the union-of-roles policy.

A user holds one primary role plus boolean capability flags. Access to a
role-gated route is granted if EITHER matches. Executives additionally pass
the leader gate: they administer every group.
"""

from __future__ import annotations

from auth.models import User

PARENT = "parent"
LEADER = "leader"
EXECUTIVE = "executive"
SUPPORT = "support"

ROLES = (PARENT, LEADER, EXECUTIVE, SUPPORT)


def has_role(user: User, required: str) -> bool:
    """Return True if the user's role or capability flags satisfy `required`.

    Unknown role names fall back to plain equality with user.role.
    """
    if required == PARENT:
        return user.role == PARENT or user.is_parent
    if required == LEADER:
        return user.role == LEADER or user.is_leader or has_role(user, EXECUTIVE)
    if required == EXECUTIVE:
        return user.role == EXECUTIVE or user.is_executive
    if required == SUPPORT:
        return user.role == SUPPORT or user.is_support
    return user.role == required
