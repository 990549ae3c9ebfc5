"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper. UserStore and SessionStore are the
repositories; _row_to_user / _row_to_session are the mappers. Services and
route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Timestamps:
  Stored as ISO 8601 UTC strings with fixed microsecond precision
  ("2026-01-01T00:00:00.000000+00:00"). Every value has the same width and
  offset, so string comparison in SQL is chronological comparison. _to_iso()
  is the only writer; never store a timestamp any other way.

Session ordering:
  sessions.seq is an autoincrement insertion counter. find_active_by_user
  orders by created_at DESC, seq DESC, so two sessions created in the same
  microsecond still come back in a reproducible order.

DB path: motorghar_auth.db at the repository root unless DATABASE_URL is set.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import DeviceInfo, Role, Session, SessionCreate, User
from core.config import get_settings

logger = logging.getLogger("motorghar.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("name", String(255), nullable=False),
    Column("phone", String(32)),
    Column("role", String(10), nullable=False, server_default=Role.OWNER.value),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login_at", String(32)),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(36), nullable=False, unique=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("refresh_token", Text, nullable=False, unique=True),
    Column("device_info", Text, nullable=False),  # JSON object
    Column("ip_address", String(64), nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
    Column("last_activity_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("revoked_at", String(32)),
)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _build_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(email="a@b.c", name="A", password_hash=hash_password("pw", 12)))
        user = store.find_by_email("a@b.c")
        store.close()
    """

    _UPDATABLE_FIELDS = {"role", "is_active", "name", "phone"}

    def __init__(self, db_url: str | None = None, clock: Callable[[], datetime] = _utcnow) -> None:
        self.engine: Engine = _build_engine(db_url or get_settings().database_url)
        self._clock = clock

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            count = conn.execute(select(func.count()).select_from(_users)).scalar()
        return bool(count)

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the email is already taken.
        """
        user_id = user.id or str(uuid.uuid4())
        now = _to_iso(self._clock())
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    password_hash=user.password_hash,
                    name=user.name,
                    phone=user.phone,
                    role=Role(user.role).value,
                    is_active=1 if user.is_active else 0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        logger.info("Created user %s (role=%s)", user_id, Role(user.role).value)
        return user_id

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: role, is_active, name, phone. Unknown keys raise
        ValueError rather than being silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        fields["updated_at"] = _to_iso(self._clock())
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: str, timestamp: datetime) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login_at=_to_iso(timestamp)))
            conn.commit()

    def update_password(self, user_id: str, password_hash: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(password_hash=password_hash, updated_at=_to_iso(self._clock()))
            )
            conn.commit()

    def is_active(self, user_id: str) -> bool:
        """True only if the user exists and is not deactivated."""
        with self.engine.connect() as conn:
            value = conn.execute(select(_users.c.is_active).where(_users.c.id == user_id)).scalar()
        return bool(value)

    def get_role(self, user_id: str) -> Role | None:
        with self.engine.connect() as conn:
            value = conn.execute(select(_users.c.role).where(_users.c.id == user_id)).scalar()
        return Role(value) if value is not None else None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for Session entities.

    clock is injectable so tests can control "now" for the active predicate
    and the reaper without sleeping.
    """

    def __init__(self, db_url: str | None = None, clock: Callable[[], datetime] = _utcnow) -> None:
        self.engine: Engine = _build_engine(db_url or get_settings().database_url)
        self._clock = clock

    def create(self, session: SessionCreate) -> Session:
        """Insert a session row. Raises IntegrityError on a duplicate refresh token."""
        session_id = str(uuid.uuid4())
        created_at = self._clock()
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session_id,
                    user_id=session.user_id,
                    refresh_token=session.refresh_token,
                    device_info=json.dumps(session.device_info.to_dict()),
                    ip_address=session.ip_address,
                    expires_at=_to_iso(session.expires_at),
                    last_activity_at=_to_iso(session.last_activity_at),
                    created_at=_to_iso(created_at),
                )
            )
            conn.commit()
        return Session(
            id=session_id,
            user_id=session.user_id,
            refresh_token=session.refresh_token,
            device_info=session.device_info,
            ip_address=session.ip_address,
            expires_at=_from_iso(_to_iso(session.expires_at)),
            last_activity_at=_from_iso(_to_iso(session.last_activity_at)),
            created_at=_from_iso(_to_iso(created_at)),
        )

    def find_by_refresh_token(self, token: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.refresh_token == token)).fetchone()
        return _row_to_session(row) if row is not None else None

    def find_by_id(self, session_id: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def find_active_by_user(self, user_id: str) -> list[Session]:
        """Return non-revoked, non-expired sessions for user_id, newest first."""
        now = _to_iso(self._clock())
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select()
                .where(
                    (_sessions.c.user_id == user_id)
                    & (_sessions.c.revoked_at.is_(None))
                    & (_sessions.c.expires_at > now)
                )
                .order_by(_sessions.c.created_at.desc(), _sessions.c.seq.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def revoke(self, session_id: str) -> None:
        """Stamp revoked_at. A session that is already revoked keeps its original stamp."""
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.update()
                .where((_sessions.c.id == session_id) & (_sessions.c.revoked_at.is_(None)))
                .values(revoked_at=_to_iso(self._clock()))
            )
            conn.commit()

    def revoke_all_for_user(self, user_id: str) -> int:
        """Revoke every not-yet-revoked session of user_id. Returns rows changed."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.user_id == user_id) & (_sessions.c.revoked_at.is_(None)))
                .values(revoked_at=_to_iso(self._clock()))
            )
            conn.commit()
        return result.rowcount

    def update_last_activity(self, session_id: str, timestamp: datetime) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.update().where(_sessions.c.id == session_id).values(last_activity_at=_to_iso(timestamp))
            )
            conn.commit()

    def cleanup_expired(self) -> int:
        """Delete sessions whose expires_at has passed, revoked or not."""
        now = _to_iso(self._clock())
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at < now))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        name=row.name,
        phone=row.phone,
        role=Role(row.role),
        is_active=bool(row.is_active),
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
        last_login_at=_from_iso(row.last_login_at),
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        refresh_token=row.refresh_token,
        device_info=DeviceInfo.from_dict(json.loads(row.device_info)),
        ip_address=row.ip_address,
        expires_at=_from_iso(row.expires_at),
        last_activity_at=_from_iso(row.last_activity_at),
        created_at=_from_iso(row.created_at),
        revoked_at=_from_iso(row.revoked_at),
    )
