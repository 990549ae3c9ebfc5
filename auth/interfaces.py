"""
auth/interfaces.py -- Storage contracts consumed by the session engine.

The services in this package depend on these Protocols, never on a concrete
backend. auth/store.py (SQLAlchemy) and auth/revocation.py (Redis or
in-process) provide the implementations; tests may substitute their own.

Contract notes:
  SessionRepository.find_active_by_user must return only sessions with
  revoked_at unset and expires_at in the future, newest created first.
  revoke() and revoke_all_for_user() must be idempotent.

  TokenBlacklist entries must become visible to every process sharing the
  backend as soon as add() returns, and must disappear on their own once the
  TTL elapses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from auth.models import Role, Session, SessionCreate, User


class UserRepository(Protocol):
    def find_by_email(self, email: str) -> User | None: ...

    def find_by_id(self, user_id: str) -> User | None: ...

    def update_last_login(self, user_id: str, timestamp: datetime) -> None: ...

    def update_password(self, user_id: str, password_hash: str) -> None: ...

    def is_active(self, user_id: str) -> bool: ...

    def get_role(self, user_id: str) -> Role | None: ...


class SessionRepository(Protocol):
    def create(self, session: SessionCreate) -> Session: ...

    def find_by_refresh_token(self, token: str) -> Session | None: ...

    def find_active_by_user(self, user_id: str) -> list[Session]: ...

    def revoke(self, session_id: str) -> None: ...

    def revoke_all_for_user(self, user_id: str) -> int: ...

    def update_last_activity(self, session_id: str, timestamp: datetime) -> None: ...

    def cleanup_expired(self) -> int: ...


class TokenBlacklist(Protocol):
    def add(self, token: str, ttl_seconds: int) -> None: ...

    def is_blacklisted(self, token: str) -> bool: ...

    def remove(self, token: str) -> None: ...
