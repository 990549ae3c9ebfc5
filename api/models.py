"""
API request and response models for the MotorGhar admin auth endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
Nothing here ever carries a password hash.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import DeviceType, Role
from auth.passwords import MAX_PASSWORD_BYTES, password_too_long

# A character cap for the schema; the real bcrypt limit is checked in bytes below.
_PASSWORD_MAX = MAX_PASSWORD_BYTES


def _check_password_bytes(value: str) -> str:
    if password_too_long(value):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/admin/auth/login."""

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX, json_schema_extra={"format": "password"})

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    """Request body for POST /api/v1/admin/auth/logout.

    refresh_token is optional: without it only the access token is blacklisted.
    """

    refresh_token: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    new_password: str = Field(min_length=8, max_length=_PASSWORD_MAX)

    @field_validator("current_password", "new_password")
    @classmethod
    def passwords_fit_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class PublicUserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: Role


class LoginResponse(BaseModel):
    """Response for a successful login. expires_in is the access-token lifetime in seconds."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: PublicUserResponse


class RefreshResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LogoutAllResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    revoked: int


class DeviceInfoResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_agent: str
    device_type: DeviceType
    os: Optional[str] = None
    browser: Optional[str] = None


class SessionResponse(BaseModel):
    """One row of GET /api/v1/admin/auth/sessions. The refresh token is never echoed."""

    model_config = ConfigDict(frozen=True)

    id: str
    device_info: DeviceInfoResponse
    ip_address: str
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class ProfileResponse(BaseModel):
    """Identity claims of the caller, as carried by the verified access token."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: Role


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    phone: Optional[str] = None
    role: Role
    is_active: bool
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/admin/users/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class ReportsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    role: Role


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
