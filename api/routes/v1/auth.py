"""
api/routes/v1/auth.py -- Admin authentication and session REST endpoints.

Routes:
  POST   /api/v1/admin/auth/login           -- email/password login; returns tokens
  POST   /api/v1/admin/auth/refresh         -- new access token from a refresh token
  POST   /api/v1/admin/auth/logout          -- revoke own session; blacklist access token
  POST   /api/v1/admin/auth/logout-all      -- revoke all own sessions (requires auth)
  GET    /api/v1/admin/auth/sessions        -- list own active sessions (requires auth)
  DELETE /api/v1/admin/auth/sessions/{id}   -- revoke one own session (requires auth)
  POST   /api/v1/admin/auth/password        -- change password, sign out everywhere

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  [C1] AuthService.login() equalizes timing for unknown emails -- never inline
       find_by_email() + verify_password() here.
  [M5] Cache-Control: no-store on every response that carries a token.
  IDOR guard: DELETE /sessions/{id} only revokes sessions owned by the caller.

Handlers are plain `def`: bcrypt and the stores block, so Starlette runs
them in its threadpool instead of on the event loop.

AuthError subclasses raised by the services propagate to the handler in
api/main.py, which renders the ErrorResponse envelope.
"""

# No `from __future__ import annotations` here: FastAPI would resolve the
# string annotations of the rate-limited login wrapper in slowapi's globals.
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_RATE_LIMIT, limiter
from api.models import (
    DeviceInfoResponse,
    LoginRequest,
    LoginResponse,
    LogoutAllResponse,
    LogoutRequest,
    MessageResponse,
    PasswordChangeRequest,
    PublicUserResponse,
    RefreshRequest,
    RefreshResponse,
    SessionResponse,
)
from auth.dependencies import get_auth_service, get_bearer_token, get_current_payload
from auth.models import DeviceInfo, DeviceType, Session, TokenPayload

# Auth policy:
# - POST   /admin/auth/login:          public -- login endpoint must be unauthenticated
# - POST   /admin/auth/refresh:        public -- the refresh token is the credential
# - POST   /admin/auth/logout:         requires auth (get_current_payload)
# - POST   /admin/auth/logout-all:     requires auth (get_current_payload)
# - GET    /admin/auth/sessions:       requires auth (get_current_payload)
# - DELETE /admin/auth/sessions/{id}:  requires auth + ownership check in AuthService
# - POST   /admin/auth/password:       requires auth (get_current_payload)
router = APIRouter(prefix="/admin/auth")


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/login", response_model=LoginResponse)
@limiter.limit(LOGIN_RATE_LIMIT)  # [H2] must sit BELOW @router so the registered endpoint is the limited wrapper
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password and open a session.

    Wrong email and wrong password produce the same 401 body [C1]. A correct
    password for a deactivated account produces 403.
    """
    auth_service = get_auth_service(request)
    result = auth_service.login(
        body.email,
        body.password,
        parse_device_info(request.headers.get("User-Agent")),
        client_ip(request),
    )
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=result.expires_in,
            user=PublicUserResponse(
                id=result.user.id,
                email=result.user.email,
                name=result.user.name,
                role=result.user.role,
            ),
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/refresh", response_model=RefreshResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new access token. The refresh token is not rotated."""
    result = get_auth_service(request).refresh(body.refresh_token)
    resp = JSONResponse(
        content=RefreshResponse(access_token=result.access_token, expires_in=result.expires_in).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    body: LogoutRequest | None = None,
    token: str = Depends(get_bearer_token),
    payload: TokenPayload = Depends(get_current_payload),
) -> MessageResponse:
    """Revoke the caller's session and blacklist the presented access token.

    A refresh token that belongs to nobody, or to someone else, gets the same
    success response; only the access token is blacklisted in that case.
    """
    refresh_token = body.refresh_token if body is not None else None
    get_auth_service(request).logout(payload.user_id, token, refresh_token)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=LogoutAllResponse)
def logout_all(
    request: Request,
    token: str = Depends(get_bearer_token),
    payload: TokenPayload = Depends(get_current_payload),
) -> LogoutAllResponse:
    """Revoke every session of the caller and blacklist the caller's access token."""
    auth_service = get_auth_service(request)
    revoked = auth_service.logout_all(payload.user_id)
    auth_service.blacklist_access_token(token)
    return LogoutAllResponse(message="Logged out from all devices", revoked=revoked)


@router.get("/sessions", response_model=list[SessionResponse])
def list_sessions(
    request: Request,
    payload: TokenPayload = Depends(get_current_payload),
) -> list[SessionResponse]:
    """List the caller's active sessions, newest first."""
    sessions = get_auth_service(request).get_active_sessions(payload.user_id)
    return [_session_to_response(s) for s in sessions]


@router.delete("/sessions/{session_id}", status_code=204)
def revoke_session(
    request: Request,
    session_id: str,
    payload: TokenPayload = Depends(get_current_payload),
) -> Response:
    """Revoke one of the caller's sessions. Someone else's session id yields 401 session_not_found."""
    get_auth_service(request).revoke_session(payload.user_id, session_id)
    return Response(status_code=204)


@router.post("/password", response_model=LogoutAllResponse)
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    token: str = Depends(get_bearer_token),
    payload: TokenPayload = Depends(get_current_payload),
) -> LogoutAllResponse:
    """Change the caller's password. All sessions are revoked and the access token is blacklisted."""
    auth_service = get_auth_service(request)
    revoked = auth_service.change_password(payload.user_id, body.current_password, body.new_password)
    auth_service.blacklist_access_token(token)
    return LogoutAllResponse(message="Password changed; please log in again", revoked=revoked)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def parse_device_info(user_agent: str | None) -> DeviceInfo:
    """Coarse device classification from a User-Agent string."""
    ua = user_agent or "unknown"

    if "Mobile" in ua:
        device_type = DeviceType.MOBILE
    elif "Tablet" in ua or "iPad" in ua:
        device_type = DeviceType.TABLET
    elif "Mozilla" in ua:
        device_type = DeviceType.DESKTOP
    else:
        device_type = DeviceType.UNKNOWN

    return DeviceInfo(user_agent=ua, device_type=device_type, os=_sniff_os(ua), browser=_sniff_browser(ua))


# Order matters: iOS UAs contain "Mac OS X", Android UAs contain "Linux".
_OS_MARKERS = (
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Android", "Android"),
    ("Windows", "Windows"),
    ("Macintosh", "macOS"),
    ("Linux", "Linux"),
)

# Edge and Opera UAs also contain "Chrome/"; Chrome UAs also contain "Safari/".
_BROWSER_MARKERS = (
    ("Edg/", "Edge"),
    ("OPR/", "Opera"),
    ("Firefox/", "Firefox"),
    ("Chrome/", "Chrome"),
    ("Safari/", "Safari"),
)


def _sniff_os(ua: str) -> str | None:
    for marker, name in _OS_MARKERS:
        if marker in ua:
            return name
    return None


def _sniff_browser(ua: str) -> str | None:
    for marker, name in _BROWSER_MARKERS:
        if marker in ua:
            return name
    return None


def _session_to_response(session: Session) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        device_info=DeviceInfoResponse(
            user_agent=session.device_info.user_agent,
            device_type=session.device_info.device_type,
            os=session.device_info.os,
            browser=session.device_info.browser,
        ),
        ip_address=session.ip_address,
        created_at=session.created_at,
        last_activity_at=session.last_activity_at,
        expires_at=session.expires_at,
    )
