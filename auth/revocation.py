"""
auth/revocation.py -- Access-token blacklist backends.

A blacklisted access token is rejected by AuthService.verify_access_token()
even though its signature and exp still verify. Entries carry a TTL equal to
the token's configured lifetime and disappear on their own; remove() is the
only way to lift one early (operator CLI `unblacklist`).

Backends:
  RedisTokenBlacklist   Shared across workers and processes. Required for any
                        deployment running more than one worker.
  MemoryTokenBlacklist  Process-local dict guarded by a lock. Tests and
                        single-worker development only.

Security:
  Redis keys hold sha256(token), never the token itself, so a Redis dump does
  not contain replayable bearer credentials. Redis rejects EX <= 0, so TTLs
  are clamped to at least one second.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from redis import Redis

from core.config import Settings

logger = logging.getLogger("motorghar.revocation")

KEY_PREFIX = "auth:blacklist:token:"


def _token_key(token: str) -> str:
    return KEY_PREFIX + hashlib.sha256(token.encode("utf-8")).hexdigest()


def _clamp_ttl(ttl_seconds: int) -> int:
    return max(1, int(ttl_seconds))


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisTokenBlacklist:
    """Blacklist stored as expiring Redis keys.

    Pass either a URL (a client is created with decode_responses=True) or an
    existing redis.Redis client to share a connection pool.
    """

    def __init__(self, redis_url: str | None = None, client: Redis | None = None) -> None:
        if client is None:
            if not redis_url:
                raise ValueError("RedisTokenBlacklist needs a redis_url or a client")
            client = Redis.from_url(redis_url, decode_responses=True)
        self.client = client

    def add(self, token: str, ttl_seconds: int) -> None:
        self.client.set(_token_key(token), "1", ex=_clamp_ttl(ttl_seconds))

    def is_blacklisted(self, token: str) -> bool:
        return bool(self.client.exists(_token_key(token)))

    def remove(self, token: str) -> None:
        self.client.delete(_token_key(token))

    def ping(self) -> bool:
        return bool(self.client.ping())

    def close(self) -> None:
        self.client.close()


# ---------------------------------------------------------------------------
# In-process
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryTokenBlacklist:
    """Process-local blacklist with lazy expiry.

    Expired entries are dropped when looked up and swept on every add(), so
    the dict never grows past the number of tokens live within one TTL window.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._entries: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def add(self, token: str, ttl_seconds: int) -> None:
        now = self._clock()
        expires_at = now + timedelta(seconds=_clamp_ttl(ttl_seconds))
        with self._lock:
            self._sweep(now)
            self._entries[_token_key(token)] = expires_at

    def is_blacklisted(self, token: str) -> bool:
        key = _token_key(token)
        with self._lock:
            expires_at = self._entries.get(key)
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del self._entries[key]
                return False
            return True

    def remove(self, token: str) -> None:
        with self._lock:
            self._entries.pop(_token_key(token), None)

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._sweep(self._clock())
            return len(self._entries)

    def _sweep(self, now: datetime) -> None:
        expired = [key for key, expires_at in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_blacklist(settings: Settings) -> RedisTokenBlacklist | MemoryTokenBlacklist:
    """Pick the blacklist backend for this process from settings.redis_url."""
    if settings.redis_url:
        logger.info("Token blacklist backend: redis")
        return RedisTokenBlacklist(settings.redis_url)
    logger.warning("REDIS_URL not set; using in-process token blacklist (single worker only)")
    return MemoryTokenBlacklist()
