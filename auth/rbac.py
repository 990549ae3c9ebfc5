"""
auth/rbac.py -- Role and activity checks against the live user record.

RBACService trusts the TokenPayload it is handed (AuthService has already
verified it) but never trusts payload.role: every check re-reads the role
from the UserRepository, because a role changed after login would otherwise
stay in force until the access token expires.

A user holds exactly one role, so has_all_roles() can only be satisfied by a
single-element list. Longer lists return False rather than raising, and a
role name outside the Role enum is simply not held.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.errors import InsufficientRoleError
from auth.interfaces import UserRepository
from auth.models import Role

logger = logging.getLogger("motorghar.rbac")


def _as_role(value: Role | str) -> Role | None:
    """Role for value, or None when no user can hold it."""
    try:
        return Role(value)
    except ValueError:
        return None


class RBACService:
    def __init__(self, user_repo: UserRepository) -> None:
        self._users = user_repo

    def get_user_role(self, user_id: str) -> Role | None:
        return self._users.get_role(user_id)

    def has_role(self, user_id: str, role: Role | str) -> bool:
        wanted = _as_role(role)
        if wanted is None:
            return False
        return self.get_user_role(user_id) == wanted

    def has_any_role(self, user_id: str, roles: Iterable[Role | str]) -> bool:
        wanted = {r for r in map(_as_role, roles) if r is not None}
        if not wanted:
            return False
        return self.get_user_role(user_id) in wanted

    def has_all_roles(self, user_id: str, roles: Iterable[Role | str]) -> bool:
        roles = list(roles)
        if len(roles) != 1:
            return False
        return self.has_role(user_id, roles[0])

    def is_admin(self, user_id: str) -> bool:
        return self.has_role(user_id, Role.ADMIN)

    def is_owner(self, user_id: str) -> bool:
        return self.has_role(user_id, Role.OWNER)

    def is_user_active(self, user_id: str) -> bool:
        return self._users.is_active(user_id)

    # ------------------------------------------------------------------
    # Enforcing variants
    # ------------------------------------------------------------------

    def require_role(self, user_id: str, role: Role | str) -> None:
        """Raise InsufficientRoleError unless user_id currently holds role."""
        if not self.has_role(user_id, role):
            name = getattr(role, "value", role)
            logger.warning("User %s denied: %s role required", user_id, name)
            raise InsufficientRoleError(name)

    def require_any_role(self, user_id: str, roles: Iterable[Role | str]) -> None:
        roles = list(roles)
        if not self.has_any_role(user_id, roles):
            names = [getattr(r, "value", r) for r in roles]
            logger.warning("User %s denied: one of %s required", user_id, names)
            raise InsufficientRoleError(*names)
