"""
auth/sessions.py -- Session lifecycle: creation with a per-user cap,
validation, revocation, activity tracking, and reaping.

Cap enforcement (create):
  Before a new session row is inserted, the user's active sessions are
  counted. When a positive cap is configured and the count has reached it,
  the oldest sessions are revoked until cap - 1 remain, so the count after
  insertion never exceeds the cap. A cap of 0 (or below) disables the check.

  Eviction order is ascending created_at. The repository returns sessions
  newest first with ties in reverse insertion order; reversing that list and
  stable-sorting on created_at evicts same-instant sessions in insertion
  order, identically on every run.

  The count-then-insert sequence is not atomic. Two concurrent logins for one
  user may both see the same snapshot and leave the user one session over
  the cap until the next login's eviction pass. That is accepted.

Expiry:
  A session is active while revoked_at is None and expires_at > now.
  expires_at is fixed at creation; touch() only moves last_activity_at.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.interfaces import SessionRepository
from auth.models import DeviceInfo, Session, SessionCreate

logger = logging.getLogger("motorghar.sessions")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    def __init__(
        self,
        session_repo: SessionRepository,
        max_sessions_per_user: int,
        session_ttl_seconds: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = session_repo
        self.max_sessions_per_user = max_sessions_per_user
        self.session_ttl = timedelta(seconds=session_ttl_seconds)
        self._clock = clock

    # ------------------------------------------------------------------
    # Create / validate
    # ------------------------------------------------------------------

    def create(self, user_id: str, refresh_token: str, device_info: DeviceInfo, ip_address: str) -> Session:
        """Open a session for user_id, evicting the oldest ones if over the cap."""
        self._enforce_cap(user_id)
        now = self._clock()
        session = self._repo.create(
            SessionCreate(
                user_id=user_id,
                refresh_token=refresh_token,
                device_info=device_info,
                ip_address=ip_address,
                expires_at=now + self.session_ttl,
                last_activity_at=now,
            )
        )
        logger.info(
            "Session %s created for user %s (device=%s)", session.id, user_id, device_info.device_type.value
        )
        return session

    def _enforce_cap(self, user_id: str) -> None:
        cap = self.max_sessions_per_user
        if cap <= 0:
            return
        active = self._repo.find_active_by_user(user_id)
        if len(active) < cap:
            return
        oldest_first = sorted(reversed(active), key=lambda s: s.created_at)
        excess = len(active) - (cap - 1)
        for session in oldest_first[:excess]:
            self._repo.revoke(session.id)
            logger.info("Session %s evicted for user %s (cap=%d)", session.id, user_id, cap)

    def validate(self, refresh_token: str) -> Session | None:
        """Return the session for refresh_token if it exists and is active, else None."""
        session = self._repo.find_by_refresh_token(refresh_token)
        if session is None or not session.is_active(self._clock()):
            return None
        return session

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_refresh_token(self, refresh_token: str) -> Session | None:
        """Raw lookup, active or not. AuthService needs to tell revoked from expired."""
        return self._repo.find_by_refresh_token(refresh_token)

    def list_active(self, user_id: str) -> list[Session]:
        return self._repo.find_active_by_user(user_id)

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def revoke(self, session_id: str) -> None:
        self._repo.revoke(session_id)
        logger.info("Session %s revoked", session_id)

    def revoke_all(self, user_id: str) -> int:
        count = self._repo.revoke_all_for_user(user_id)
        logger.info("Revoked %d session(s) for user %s", count, user_id)
        return count

    def touch(self, session_id: str) -> None:
        self._repo.update_last_activity(session_id, self._clock())

    def reap_expired(self) -> int:
        """Delete every session past its expires_at. Returns the number deleted."""
        count = self._repo.cleanup_expired()
        if count:
            logger.info("Reaped %d expired session(s)", count)
        return count
