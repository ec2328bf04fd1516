"""
auth/store.py -- SQLAlchemy Core persistence layer for portal users.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and dependency code never touches SQL directly.

UserStore satisfies the two collaborator calls the authenticator needs:
get_by_id() for subject lookup and touch_presence() as the PresenceTracker
sink. Everything else backs the login and user-management routes.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are stored lower-cased so lookups and the UNIQUE constraint are
  case-insensitive.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event, func, or_, select
from sqlalchemy.engine import Engine

from auth.models import User
from auth.roles import EXECUTIVE, LEADER, PARENT, SUPPORT

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text),
    Column("role", String(30), nullable=False, server_default=PARENT),
    Column("avatar", Text),
    Column("is_parent", Boolean, nullable=False, server_default="0"),
    Column("is_leader", Boolean, nullable=False, server_default="0"),
    Column("is_executive", Boolean, nullable=False, server_default="0"),
    Column("is_support", Boolean, nullable=False, server_default="0"),
    Column("is_online", Boolean, nullable=False, server_default="0"),
    Column("last_seen", String(32)),
    Column("created_at", String(32), nullable=False),
)

# Role filter -> capability flag column, mirroring auth.roles.has_role.
_ROLE_FLAGS = {
    PARENT: _users.c.is_parent,
    LEADER: _users.c.is_leader,
    EXECUTIVE: _users.c.is_executive,
    SUPPORT: _users.c.is_support,
}


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so presence writes do not block readers."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(email="a@b.org", name="A", role="parent", is_parent=True))
        user = store.get_by_id(uid)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        user_id = user.id or uuid.uuid4().hex
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email.strip().lower(),
                    name=user.name,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    avatar=user.avatar,
                    is_parent=user.is_parent,
                    is_leader=user.is_leader,
                    is_executive=user.is_executive,
                    is_support=user.is_support,
                    is_online=False,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, case-insensitively. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def first_parent(self) -> User | None:
        """Return the earliest-created user with the parent flag (demo login target)."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select()
                .where(_users.c.is_parent.is_(True))
                .order_by(_users.c.created_at, _users.c.id)
                .limit(1)
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(
        self,
        role: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[User], int]:
        """Return one page of users ordered by name, plus the unpaginated total.

        role: parent/leader/executive/support filter on the capability flag;
            any other value matches the primary role exactly.
        search: case-insensitive substring of name or email.
        """
        conditions = []
        if role:
            flag = _ROLE_FLAGS.get(role)
            conditions.append(flag.is_(True) if flag is not None else _users.c.role == role)
        if search:
            # autoescape keeps % and _ in the search text literal.
            conditions.append(
                or_(
                    _users.c.name.icontains(search, autoescape=True),
                    _users.c.email.icontains(search, autoescape=True),
                )
            )

        count_q = select(func.count()).select_from(_users)
        page_q = _users.select().order_by(_users.c.name, _users.c.id)
        for cond in conditions:
            count_q = count_q.where(cond)
            page_q = page_q.where(cond)
        page_q = page_q.limit(limit).offset((max(page, 1) - 1) * limit)

        with self.engine.connect() as conn:
            total = conn.execute(count_q).scalar() or 0
            rows = conn.execute(page_q).fetchall()
        return [_row_to_user(r) for r in rows], total

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepts any subset of: email, name, hashed_password, role, avatar,
        is_parent, is_leader, is_executive, is_support. The email is
        lower-cased before writing.

        Returns True if a row was updated, False if user_id was not found.
        Raises sqlalchemy.exc.IntegrityError if the new email is taken.
        """
        if "email" in fields:
            fields["email"] = fields["email"].strip().lower()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user. Returns True if deleted, False if not found.

        Credentials already issued to the user stop authorizing on the next
        request because the subject no longer resolves.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def touch_presence(self, user_id: str, online: bool, last_seen: str) -> None:
        """Write the presence flag and timestamp. Unknown ids are a silent no-op."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(is_online=online, last_seen=last_seen))
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=row.role,
        avatar=row.avatar,
        is_parent=bool(row.is_parent),
        is_leader=bool(row.is_leader),
        is_executive=bool(row.is_executive),
        is_support=bool(row.is_support),
        is_online=bool(row.is_online),
        last_seen=row.last_seen,
        created_at=row.created_at,
    )
