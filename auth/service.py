"""
auth/service.py -- Login, refresh, logout, and access-token verification.

AuthService is the only component that combines passwords, tokens, users,
sessions, and the blacklist. Everything it needs is injected, so the same
class serves the FastAPI app (stores built in the lifespan), the operator
CLI, and the tests (in-memory SQLite plus MemoryTokenBlacklist).

Security design decisions:
  [C1] Unknown email and wrong password raise the same InvalidCredentialsError
       with the same message, and both pay one bcrypt verification, so
       neither the response body nor its timing reveals which was wrong.

  [C2] verify_access_token() collapses every codec failure (bad signature,
       expiry, issuer/audience, malformed claims, refresh token presented as
       an access token) into one generic InvalidTokenError.

  [C3] Logout blacklists the presented access token for its full configured
       lifetime whether or not the refresh token matched a session, and even
       when the session lookup itself fails.

  [C4] Session expiry is checked on refresh independently of the refresh
       JWT's own exp claim. Both must hold.

  Token role is informational. Authorization re-reads the live role through
  RBACService; AuthService never trusts payload.role for access decisions.

  Refresh tokens are not rotated: refresh() mints a new access token and the
  refresh token stays valid until its session expires or is revoked.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from auth.errors import (
    AccountInactiveError,
    InvalidCredentialsError,
    InvalidTokenError,
    SessionExpiredError,
    SessionNotFoundError,
    SessionRevokedError,
    TokenRevokedError,
)
from auth.interfaces import TokenBlacklist, UserRepository
from auth.models import DeviceInfo, LoginResult, PublicUser, RefreshResult, Session, TokenPayload
from auth.passwords import equalize_timing, hash_password, verify_password
from auth.sessions import SessionManager
from auth.tokens import ACCESS, REFRESH, issue_token, verify_token
from core.config import Settings, parse_duration

logger = logging.getLogger("motorghar.auth")


class AuthService:
    """Credential lifecycle engine.

    Args:
        user_repo:       UserRepository implementation.
        session_manager: SessionManager wrapping a SessionRepository.
        blacklist:       TokenBlacklist implementation.
        settings:        Secrets, TTL literals, issuer/audience.
        password_rounds: bcrypt cost for new hashes and timing equalization.
                         Defaults to settings.bcrypt_rounds.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        session_manager: SessionManager,
        blacklist: TokenBlacklist,
        settings: Settings,
        password_rounds: int | None = None,
    ) -> None:
        self._users = user_repo
        self._sessions = session_manager
        self._blacklist = blacklist
        self._access_secret = settings.jwt_secret
        self._refresh_secret = settings.refresh_secret
        self._issuer = settings.jwt_issuer or None
        self._audience = settings.jwt_audience or None
        self._access_ttl = parse_duration(settings.jwt_access_expiry)
        self._refresh_ttl = parse_duration(settings.jwt_refresh_expiry)
        self._rounds = password_rounds if password_rounds is not None else settings.bcrypt_rounds

    @property
    def access_ttl_seconds(self) -> int:
        return self._access_ttl

    @property
    def refresh_ttl_seconds(self) -> int:
        return self._refresh_ttl

    # ------------------------------------------------------------------
    # Login / refresh
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, device_info: DeviceInfo, ip_address: str) -> LoginResult:
        """Authenticate by email and password and open a new session.

        Raises:
            InvalidCredentialsError: unknown email or wrong password [C1].
            AccountInactiveError:    correct password, deactivated account.
        """
        user = self._users.find_by_email(email)
        if user is None:
            equalize_timing(password, self._rounds)
            logger.warning("Login failed: unknown email")
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            logger.warning("Login failed: bad password for user %s", user.id)
            raise InvalidCredentialsError()
        if not self._users.is_active(user.id):
            logger.warning("Login refused: user %s is inactive", user.id)
            raise AccountInactiveError()

        payload = TokenPayload(user_id=user.id, email=user.email, role=user.role)
        access_token = self._issue_access(payload)
        refresh_token = issue_token(
            payload,
            self._refresh_secret,
            self._refresh_ttl,
            issuer=self._issuer,
            audience=self._audience,
            token_type=REFRESH,
        )
        self._sessions.create(user.id, refresh_token, device_info, ip_address)

        try:
            self._users.update_last_login(user.id, self._sessions.now())
        except Exception:
            logger.warning("Could not record last login for user %s", user.id, exc_info=True)

        logger.info("Login succeeded for user %s", user.id)
        return LoginResult(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._access_ttl,
            user=PublicUser.from_user(user),
        )

    def refresh(self, refresh_token: str) -> RefreshResult:
        """Mint a new access token from a live session's refresh token.

        Raises:
            InvalidTokenError:    refresh JWT fails verification, for any reason [C2].
            SessionNotFoundError: no session holds this refresh token.
            SessionRevokedError:  the session was revoked.
            SessionExpiredError:  the session is past expires_at [C4].
            AccountInactiveError: the user was deactivated since login.
        """
        try:
            payload = verify_token(
                refresh_token,
                self._refresh_secret,
                issuer=self._issuer,
                audience=self._audience,
                token_type=REFRESH,
            )
        except InvalidTokenError:
            raise InvalidTokenError() from None
        session = self._sessions.find_by_refresh_token(refresh_token)
        if session is None:
            raise SessionNotFoundError()
        if session.revoked_at is not None:
            raise SessionRevokedError()
        if session.expires_at <= self._sessions.now():
            raise SessionExpiredError()
        if not self._users.is_active(payload.user_id):
            raise AccountInactiveError()

        access_token = self._issue_access(payload)
        self._sessions.touch(session.id)
        return RefreshResult(access_token=access_token, expires_in=self._access_ttl)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, user_id: str, access_token: str, refresh_token: str | None) -> None:
        """Revoke the caller's session (if it is theirs) and blacklist the access token [C3].

        A refresh token that matches no session, or a session owned by another
        user, is skipped silently.
        """
        try:
            if refresh_token:
                session = self._sessions.find_by_refresh_token(refresh_token)
                if session is not None and session.user_id == user_id:
                    self._sessions.revoke(session.id)
                elif session is not None:
                    logger.warning("User %s presented a refresh token owned by another user", user_id)
        finally:
            self._blacklist.add(access_token, self._access_ttl)
            logger.info("Logout for user %s", user_id)

    def logout_all(self, user_id: str) -> int:
        """Revoke every active session of user_id. Outstanding access tokens are not blacklisted."""
        return self._sessions.revoke_all(user_id)

    def blacklist_access_token(self, access_token: str) -> None:
        self._blacklist.add(access_token, self._access_ttl)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_access_token(self, token: str) -> TokenPayload:
        """Return the payload of a valid, non-blacklisted access token.

        Raises:
            TokenRevokedError: the token is on the blacklist.
            InvalidTokenError: any other failure [C2].
        """
        if self._blacklist.is_blacklisted(token):
            raise TokenRevokedError()
        try:
            return self._verify_access(token)
        except InvalidTokenError:
            raise InvalidTokenError() from None

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------

    def get_active_sessions(self, user_id: str) -> list[Session]:
        return self._sessions.list_active(user_id)

    def revoke_session(self, user_id: str, session_id: str) -> None:
        """Revoke one of user_id's own active sessions.

        Raises SessionNotFoundError when session_id is not an active session
        of this user, including sessions that belong to someone else.
        """
        owned = {s.id for s in self._sessions.list_active(user_id)}
        if session_id not in owned:
            raise SessionNotFoundError()
        self._sessions.revoke(session_id)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> int:
        """Replace the password hash and sign the user out everywhere.

        Returns the number of sessions revoked.
        Raises InvalidCredentialsError if the user is unknown or the current
        password does not match.
        """
        user = self._users.find_by_id(user_id)
        if user is None:
            equalize_timing(current_password, self._rounds)
            raise InvalidCredentialsError()
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError()
        self._users.update_password(user_id, hash_password(new_password, self._rounds))
        revoked = self._sessions.revoke_all(user_id)
        logger.info("Password changed for user %s", user_id)
        return revoked

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _issue_access(self, payload: TokenPayload) -> str:
        return issue_token(
            payload,
            self._access_secret,
            self._access_ttl,
            issuer=self._issuer,
            audience=self._audience,
            token_type=ACCESS,
        )

    def _verify_access(self, token: str) -> TokenPayload:
        return verify_token(
            token,
            self._access_secret,
            issuer=self._issuer,
            audience=self._audience,
            token_type=ACCESS,
        )
