"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and roles.

Every protected route authenticates the same way:
  Authorization: Bearer <access token>  ->  AuthService.verify_access_token()

verify_access_token() checks the blacklist first, then the signature, expiry,
issuer, audience, and token type. The user must also still be active. On
success the TokenPayload is attached to request.state.auth so logging and
later dependencies can read it.

get_current_payload() raises the AuthError so the API exception handler
turns it into a 401 (or 403 for an inactive account) envelope.
require_role() / require_any_role() build dependencies that additionally
check the *live* role through RBACService and raise InsufficientRoleError
(403).

The services are looked up on request.app.state (auth_service, rbac), which
the lifespan in api/main.py populates.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.errors import AccountInactiveError, InvalidTokenError
from auth.models import Role, TokenPayload
from auth.rbac import RBACService
from auth.service import AuthService
from auth.tokens import extract_bearer


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_rbac(request: Request) -> RBACService:
    return request.app.state.rbac


def get_bearer_token(request: Request) -> str:
    """Return the bearer token or raise InvalidTokenError (401)."""
    token = extract_bearer(request.headers.get("Authorization"))
    if token is None:
        raise InvalidTokenError("Authentication required")
    return token


def get_current_payload(request: Request, token: str = Depends(get_bearer_token)) -> TokenPayload:
    """Require a valid access token held by an active user.

    Raises TokenRevokedError or InvalidTokenError (401), AccountInactiveError (403).

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(payload: TokenPayload = Depends(get_current_payload)): ...
    """
    payload = get_auth_service(request).verify_access_token(token)
    if not get_rbac(request).is_user_active(payload.user_id):
        raise AccountInactiveError()
    request.state.auth = payload
    return payload


def require_role(role: Role) -> Callable[..., TokenPayload]:
    """Build a dependency that admits only users whose live role is role."""

    def dependency(request: Request, payload: TokenPayload = Depends(get_current_payload)) -> TokenPayload:
        get_rbac(request).require_role(payload.user_id, role)
        return payload

    return dependency


def require_any_role(*roles: Role) -> Callable[..., TokenPayload]:
    """Build a dependency that admits users whose live role is any of roles."""

    def dependency(request: Request, payload: TokenPayload = Depends(get_current_payload)) -> TokenPayload:
        get_rbac(request).require_any_role(payload.user_id, roles)
        return payload

    return dependency


require_admin = require_role(Role.ADMIN)
