"""
auth/errors.py -- Error taxonomy for the authentication and session core.

Every failure the core surfaces is an AuthError subclass carrying an HTTP
status code and a stable machine-readable code. The API layer maps them to
responses with one exception handler; the CLI prints the message.

Enumeration resistance:
  InvalidCredentialsError is raised for both "no such email" and "wrong
  password" with the exact same message. InvalidTokenError likewise covers
  expired, badly-signed, and malformed tokens. Callers must not add detail
  that would tell an attacker which check failed.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

from core.config import ConfigurationError

__all__ = [
    "AccountInactiveError",
    "AuthError",
    "ConfigurationError",
    "InsufficientRoleError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "MalformedPayloadError",
    "PasswordTooLongError",
    "SessionExpiredError",
    "SessionNotFoundError",
    "SessionRevokedError",
    "TokenRevokedError",
]


class AuthError(Exception):
    """Base class for all authentication and authorization failures."""

    status_code: int = 401
    code: str = "auth_error"
    default_message: str = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# Authentication


class InvalidCredentialsError(AuthError):
    code = "invalid_credentials"
    default_message = "Invalid email or password"

    def __init__(self) -> None:
        # No message override: both failure causes must read the same.
        super().__init__()


class PasswordTooLongError(AuthError):
    """bcrypt reads at most 72 bytes of UTF-8; longer input is refused, not truncated."""

    status_code = 422
    code = "password_too_long"
    default_message = "Password must be at most 72 bytes"


class AccountInactiveError(AuthError):
    status_code = 403
    code = "account_inactive"
    default_message = "User account is inactive"


# Tokens


class InvalidTokenError(AuthError):
    code = "invalid_token"
    default_message = "Invalid or expired token"


class MalformedPayloadError(InvalidTokenError):
    """Signature checked out but the claims do not form a TokenPayload."""

    code = "malformed_payload"
    default_message = "Invalid token payload"


class TokenRevokedError(AuthError):
    code = "token_revoked"
    default_message = "Token has been revoked"


# Sessions


class SessionNotFoundError(AuthError):
    code = "session_not_found"
    default_message = "Session not found"


class SessionRevokedError(AuthError):
    code = "session_revoked"
    default_message = "Session has been revoked"


class SessionExpiredError(AuthError):
    code = "session_expired"
    default_message = "Session has expired"


# Authorization


class InsufficientRoleError(AuthError):
    """Role names are not secret, so the message states what was required."""

    status_code = 403
    code = "forbidden"

    def __init__(self, *required_roles: str) -> None:
        self.required_roles = tuple(getattr(role, "value", role) for role in required_roles)
        if len(self.required_roles) == 1:
            message = f"{self.required_roles[0]} role required"
        else:
            message = f"One of [{', '.join(self.required_roles)}] roles required"
        super().__init__(message)
