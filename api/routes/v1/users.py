"""
api/routes/v1/users.py -- Admin-console user endpoints.

Routes:
  GET   /api/v1/admin/users/profile   -- caller's identity (requires auth)
  GET   /api/v1/admin/users/reports   -- ADMIN or OWNER
  GET   /api/v1/admin/users           -- list all users (ADMIN only)
  PATCH /api/v1/admin/users/{id}      -- update name/role/is_active (ADMIN only)

Role checks always use the live role from the user store (RBACService), not
the role claim inside the access token.

Security:
  [M4] PATCH blocks self-deactivation, self-demotion, and removing the last
       active ADMIN (no recovery path without DB access).
  Deactivating a user revokes all of that user's sessions.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import ProfileResponse, ReportsResponse, UserPatch, UserResponse
from auth.dependencies import get_auth_service, get_current_payload, get_rbac, require_admin, require_any_role
from auth.models import Role, TokenPayload, User
from auth.store import UserStore

# Auth policy:
# - GET   /admin/users/profile:  requires auth (get_current_payload)
# - GET   /admin/users/reports:  requires ADMIN or OWNER (require_any_role)
# - GET   /admin/users:          requires ADMIN (require_admin)
# - PATCH /admin/users/{id}:     requires ADMIN (require_admin)
router = APIRouter(prefix="/admin/users")


@router.get("/profile", response_model=ProfileResponse)
def profile(request: Request, payload: TokenPayload = Depends(get_current_payload)) -> ProfileResponse:
    """Return the caller's identity with the live role, not the role claim in the token."""
    live_role = get_rbac(request).get_user_role(payload.user_id)
    return ProfileResponse(id=payload.user_id, email=payload.email, role=live_role or payload.role)


@router.get("/reports", response_model=ReportsResponse)
def reports(
    request: Request,
    payload: TokenPayload = Depends(require_any_role(Role.ADMIN, Role.OWNER)),
) -> ReportsResponse:
    live_role = get_rbac(request).get_user_role(payload.user_id)
    return ReportsResponse(message="Reports are available", role=live_role)


@router.get("", response_model=list[UserResponse])
def list_users(
    request: Request,
    payload: TokenPayload = Depends(require_admin),
) -> list[UserResponse]:
    """List all user accounts. Admin only."""
    user_store: UserStore = request.app.state.user_store
    return [_user_to_response(u) for u in user_store.list_users()]


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserPatch,
    payload: TokenPayload = Depends(require_admin),
) -> UserResponse:
    """Update a user's name, role, or active status. Admin only [M4]."""
    user_store: UserStore = request.app.state.user_store

    target = user_store.find_by_id(user_id)
    if target is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )

    updates: dict = {}
    if body.name is not None:
        updates["name"] = body.name
    if body.role is not None:
        if body.role != Role.ADMIN and target.id == payload.user_id:
            raise HTTPException(
                status_code=400,
                detail={"code": "self_demotion", "message": "You cannot remove your own ADMIN role."},
            )
        if body.role != Role.ADMIN and target.role == Role.ADMIN and _active_admin_count(user_store) <= 1:
            raise HTTPException(
                status_code=400,
                detail={"code": "last_admin", "message": "Cannot demote the last active admin account."},
            )
        updates["role"] = body.role
    if body.is_active is not None:
        if not body.is_active and target.id == payload.user_id:
            raise HTTPException(
                status_code=400,
                detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
            )
        if not body.is_active and target.role == Role.ADMIN and _active_admin_count(user_store) <= 1:
            raise HTTPException(
                status_code=400,
                detail={"code": "last_admin", "message": "Cannot deactivate the last active admin account."},
            )
        updates["is_active"] = body.is_active

    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    user_store.update_user(user_id, **updates)
    if updates.get("is_active") is False:
        get_auth_service(request).logout_all(user_id)
    return _user_to_response(user_store.find_by_id(user_id))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _active_admin_count(user_store: UserStore) -> int:
    return sum(1 for u in user_store.list_users() if u.role == Role.ADMIN and u.is_active)


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        phone=user.phone,
        role=user.role,
        is_active=user.is_active,
        created_at=user.created_at,
        last_login_at=user.last_login_at,
    )
