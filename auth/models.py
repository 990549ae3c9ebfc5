"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; stores and services do the work.

Timestamps are timezone-aware UTC datetimes everywhere in the domain. The
SQLite store serializes them to ISO 8601 strings and parses them back.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Closed set of privilege levels. A user holds exactly one."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"


class DeviceType(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


@dataclass
class User:
    """An admin-console identity.

    email is matched exactly (case-sensitive) against the stored value.
    password_hash is a bcrypt hash and must never leave the core -- use
    PublicUser for anything that crosses the API boundary.
    """

    email: str
    password_hash: str
    name: str
    role: Role = Role.OWNER
    id: str | None = None
    phone: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login_at: datetime | None = None


@dataclass(frozen=True)
class PublicUser:
    """The user projection returned from login. No password hash."""

    id: str
    email: str
    name: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> PublicUser:
        return cls(id=user.id or "", email=user.email, name=user.name, role=user.role)


@dataclass(frozen=True)
class DeviceInfo:
    """Coarse description of the client that opened a session."""

    user_agent: str
    device_type: DeviceType = DeviceType.UNKNOWN
    os: str | None = None
    browser: str | None = None

    def to_dict(self) -> dict:
        data = {"user_agent": self.user_agent, "device_type": self.device_type.value}
        if self.os is not None:
            data["os"] = self.os
        if self.browser is not None:
            data["browser"] = self.browser
        return data

    @classmethod
    def from_dict(cls, data: dict) -> DeviceInfo:
        return cls(
            user_agent=str(data.get("user_agent", "unknown")),
            device_type=DeviceType(data.get("device_type", DeviceType.UNKNOWN.value)),
            os=data.get("os"),
            browser=data.get("browser"),
        )


@dataclass
class SessionCreate:
    """Everything the session store needs to insert a row.

    id, created_at, and revoked_at are assigned by the store.
    """

    user_id: str
    refresh_token: str
    device_info: DeviceInfo
    ip_address: str
    expires_at: datetime
    last_activity_at: datetime


@dataclass
class Session:
    """One authenticated device binding, keyed by its refresh token."""

    id: str
    user_id: str
    refresh_token: str
    device_info: DeviceInfo
    ip_address: str
    expires_at: datetime
    last_activity_at: datetime
    created_at: datetime
    revoked_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return self.revoked_at is None and self.expires_at > now


@dataclass(frozen=True)
class TokenPayload:
    """Identity claims carried by both access and refresh tokens.

    role is informational only -- authorization always re-reads the live role.
    """

    user_id: str
    email: str
    role: Role


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    expires_in: int  # access-token lifetime in whole seconds
    user: PublicUser


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    expires_in: int
