"""
tests/test_api_auth.py -- HTTP tests for /api/v1/admin/auth/*.

Uses the module-scoped api_client fixture (session cap 3, in-memory
blacklist). Tests that count sessions revoke the user's sessions first so
earlier tests in the module do not leak into the count. The login limiter is
reset before every test.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from api.limiter import limiter
from api.routes.v1.auth import client_ip, parse_device_info
from auth.models import DeviceType, Role, User
from auth.passwords import hash_password
from tests.conftest import TEST_PASSWORD, TEST_ROUNDS

LOGIN = "/api/v1/admin/auth/login"
REFRESH = "/api/v1/admin/auth/refresh"
LOGOUT = "/api/v1/admin/auth/logout"
LOGOUT_ALL = "/api/v1/admin/auth/logout-all"
SESSIONS = "/api/v1/admin/auth/sessions"
PASSWORD = "/api/v1/admin/auth/password"
PROFILE = "/api/v1/admin/users/profile"

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


@pytest.fixture(autouse=True)
def _reset_limiter():
    limiter.reset()
    yield


def _login(client, email: str, password: str = TEST_PASSWORD, user_agent: str | None = None):
    headers = {"User-Agent": user_agent} if user_agent else {}
    return client.post(LOGIN, json={"email": email, "password": password}, headers=headers)


def _tokens(client, email: str, **kwargs) -> dict:
    resp = _login(client, email, **kwargs)
    assert resp.status_code == 200, resp.text
    return resp.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _make_user(api_client, email: str, password: str = TEST_PASSWORD, **fields) -> str:
    return api_client.user_store.create_user(
        User(
            email=email,
            name=fields.pop("name", "Extra"),
            password_hash=hash_password(password, TEST_ROUNDS),
            **fields,
        )
    )


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def test_login_success(api_client):
    resp = _login(api_client.client, "admin@motorghar.com")
    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "no-store"
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 900
    assert body["access_token"]
    assert body["refresh_token"]
    assert body["user"] == {
        "id": api_client.admin_id,
        "email": "admin@motorghar.com",
        "name": "Admin",
        "role": "ADMIN",
    }
    assert "password_hash" not in resp.text


def test_login_records_last_login(api_client):
    _tokens(api_client.client, "owner@motorghar.com")
    assert api_client.user_store.find_by_id(api_client.owner_id).last_login_at is not None


def test_wrong_password_and_unknown_email_look_identical(api_client):
    wrong = _login(api_client.client, "admin@motorghar.com", password="not-the-password")
    unknown = _login(api_client.client, "nobody@motorghar.com", password="not-the-password")
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()
    assert wrong.json()["error"]["code"] == "invalid_credentials"
    assert wrong.headers["WWW-Authenticate"] == "Bearer"


def test_login_inactive_account_is_forbidden(api_client):
    _make_user(api_client, "inactive@motorghar.com", is_active=False)
    resp = _login(api_client.client, "inactive@motorghar.com")
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "account_inactive"


def test_login_validation_error(api_client):
    resp = api_client.client.post(LOGIN, json={"email": "admin@motorghar.com"})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


def test_login_is_rate_limited(api_client):
    for _ in range(10):
        assert _login(api_client.client, "nobody@motorghar.com", password="x").status_code == 401
    resp = _login(api_client.client, "nobody@motorghar.com", password="x")
    assert resp.status_code == 429
    assert resp.json()["error"]["code"] == "rate_limited"
    assert "Retry-After" in resp.headers


# ---------------------------------------------------------------------------
# Bearer authentication
# ---------------------------------------------------------------------------


def test_missing_token_is_unauthorized(api_client):
    resp = api_client.client.get(PROFILE)
    assert resp.status_code == 401
    assert resp.json()["error"] == {
        "code": "invalid_token",
        "message": "Authentication required",
        "detail": None,
    }
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_non_bearer_scheme_is_unauthorized(api_client):
    resp = api_client.client.get(PROFILE, headers={"Authorization": "Basic YWRtaW46cGFzcw=="})
    assert resp.status_code == 401


def test_garbage_token_is_unauthorized(api_client):
    resp = api_client.client.get(PROFILE, headers=_bearer("not.a.jwt"))
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "invalid_token"


def test_refresh_token_is_not_an_access_token(api_client):
    tokens = _tokens(api_client.client, "owner@motorghar.com")
    resp = api_client.client.get(PROFILE, headers=_bearer(tokens["refresh_token"]))
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "invalid_token"


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


def test_refresh_issues_working_access_token(api_client):
    tokens = _tokens(api_client.client, "owner@motorghar.com")
    resp = api_client.client.post(REFRESH, json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "no-store"
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 900
    assert body["access_token"] != tokens["access_token"]

    profile = api_client.client.get(PROFILE, headers=_bearer(body["access_token"]))
    assert profile.status_code == 200
    assert profile.json()["email"] == "owner@motorghar.com"


def test_refresh_rejects_access_token(api_client):
    tokens = _tokens(api_client.client, "owner@motorghar.com")
    resp = api_client.client.post(REFRESH, json={"refresh_token": tokens["access_token"]})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "invalid_token"


def test_refresh_rejects_garbage(api_client):
    resp = api_client.client.post(REFRESH, json={"refresh_token": "garbage"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "invalid_token"


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


def test_logout_revokes_session_and_blacklists_token(api_client):
    tokens = _tokens(api_client.client, "admin@motorghar.com")
    resp = api_client.client.post(
        LOGOUT,
        json={"refresh_token": tokens["refresh_token"]},
        headers=_bearer(tokens["access_token"]),
    )
    assert resp.status_code == 200
    assert resp.json() == {"message": "Logged out successfully"}

    profile = api_client.client.get(PROFILE, headers=_bearer(tokens["access_token"]))
    assert profile.status_code == 401
    assert profile.json()["error"]["code"] == "token_revoked"

    refreshed = api_client.client.post(REFRESH, json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 401
    assert refreshed.json()["error"]["code"] == "session_revoked"


def test_logout_without_body_only_blacklists(api_client):
    tokens = _tokens(api_client.client, "admin@motorghar.com")
    resp = api_client.client.post(LOGOUT, headers=_bearer(tokens["access_token"]))
    assert resp.status_code == 200
    assert api_client.client.get(PROFILE, headers=_bearer(tokens["access_token"])).status_code == 401
    refreshed = api_client.client.post(REFRESH, json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200


def test_logout_with_someone_elses_refresh_token_leaves_it_alone(api_client):
    owner = _tokens(api_client.client, "owner@motorghar.com")
    admin = _tokens(api_client.client, "admin@motorghar.com")
    resp = api_client.client.post(
        LOGOUT,
        json={"refresh_token": owner["refresh_token"]},
        headers=_bearer(admin["access_token"]),
    )
    assert resp.status_code == 200
    refreshed = api_client.client.post(REFRESH, json={"refresh_token": owner["refresh_token"]})
    assert refreshed.status_code == 200


def test_logout_requires_auth(api_client):
    assert api_client.client.post(LOGOUT).status_code == 401


def test_logout_all(api_client):
    api_client.session_manager.revoke_all(api_client.owner_id)
    first = _tokens(api_client.client, "owner@motorghar.com")
    second = _tokens(api_client.client, "owner@motorghar.com")

    resp = api_client.client.post(LOGOUT_ALL, headers=_bearer(second["access_token"]))
    assert resp.status_code == 200
    assert resp.json()["revoked"] == 2

    assert api_client.client.get(PROFILE, headers=_bearer(second["access_token"])).status_code == 401
    for tokens in (first, second):
        refreshed = api_client.client.post(REFRESH, json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.json()["error"]["code"] == "session_revoked"


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def test_list_sessions_newest_first_with_device_info(api_client):
    api_client.session_manager.revoke_all(api_client.admin_id)
    _tokens(api_client.client, "admin@motorghar.com", user_agent=DESKTOP_UA)
    latest = _tokens(api_client.client, "admin@motorghar.com", user_agent=IPHONE_UA)

    resp = api_client.client.get(SESSIONS, headers=_bearer(latest["access_token"]))
    assert resp.status_code == 200
    sessions = resp.json()
    assert len(sessions) == 2
    assert sessions[0]["device_info"]["device_type"] == "mobile"
    assert sessions[0]["device_info"]["os"] == "iOS"
    assert sessions[1]["device_info"]["device_type"] == "desktop"
    assert sessions[1]["device_info"]["browser"] == "Chrome"
    assert sessions[0]["ip_address"] == "testclient"
    assert "refresh_token" not in sessions[0]


def test_session_cap_keeps_newest_three(api_client):
    api_client.session_manager.revoke_all(api_client.owner_id)
    issued = [_tokens(api_client.client, "owner@motorghar.com") for _ in range(4)]

    sessions = api_client.client.get(SESSIONS, headers=_bearer(issued[-1]["access_token"])).json()
    assert len(sessions) == 3

    oldest = api_client.client.post(REFRESH, json={"refresh_token": issued[0]["refresh_token"]})
    assert oldest.status_code == 401
    assert oldest.json()["error"]["code"] == "session_revoked"


def test_revoke_own_session(api_client):
    api_client.session_manager.revoke_all(api_client.admin_id)
    keep = _tokens(api_client.client, "admin@motorghar.com")
    drop = _tokens(api_client.client, "admin@motorghar.com")
    drop_id = api_client.session_store.find_by_refresh_token(drop["refresh_token"]).id

    resp = api_client.client.delete(f"{SESSIONS}/{drop_id}", headers=_bearer(keep["access_token"]))
    assert resp.status_code == 204

    remaining = api_client.client.get(SESSIONS, headers=_bearer(keep["access_token"])).json()
    assert [s["id"] for s in remaining] == [api_client.session_store.find_by_refresh_token(keep["refresh_token"]).id]

    again = api_client.client.delete(f"{SESSIONS}/{drop_id}", headers=_bearer(keep["access_token"]))
    assert again.status_code == 401
    assert again.json()["error"]["code"] == "session_not_found"


def test_cannot_revoke_someone_elses_session(api_client):
    owner = _tokens(api_client.client, "owner@motorghar.com")
    admin = _tokens(api_client.client, "admin@motorghar.com")
    owner_session = api_client.session_store.find_by_refresh_token(owner["refresh_token"])

    resp = api_client.client.delete(f"{SESSIONS}/{owner_session.id}", headers=_bearer(admin["access_token"]))
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "session_not_found"
    assert api_client.session_store.find_by_id(owner_session.id).revoked_at is None


# ---------------------------------------------------------------------------
# Password change
# ---------------------------------------------------------------------------


def test_change_password(api_client):
    _make_user(api_client, "pw@motorghar.com", role=Role.OWNER)
    tokens = _tokens(api_client.client, "pw@motorghar.com")

    wrong = api_client.client.post(
        PASSWORD,
        json={"current_password": "not-it", "new_password": "brand-new-password"},
        headers=_bearer(tokens["access_token"]),
    )
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "invalid_credentials"

    resp = api_client.client.post(
        PASSWORD,
        json={"current_password": TEST_PASSWORD, "new_password": "brand-new-password"},
        headers=_bearer(tokens["access_token"]),
    )
    assert resp.status_code == 200
    assert resp.json()["revoked"] == 1

    assert api_client.client.get(PROFILE, headers=_bearer(tokens["access_token"])).status_code == 401
    assert _login(api_client.client, "pw@motorghar.com").status_code == 401
    assert _login(api_client.client, "pw@motorghar.com", password="brand-new-password").status_code == 200


def test_change_password_multibyte_over_byte_limit(api_client):
    tokens = _tokens(api_client.client, "owner@motorghar.com")
    resp = api_client.client.post(
        PASSWORD,
        json={"current_password": TEST_PASSWORD, "new_password": "\u00e9" * 40},
        headers=_bearer(tokens["access_token"]),
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"
    assert api_client.client.get(PROFILE, headers=_bearer(tokens["access_token"])).status_code == 200


def test_login_multibyte_over_byte_limit(api_client):
    resp = _login(api_client.client, "owner@motorghar.com", password="\u00e9" * 40)
    assert resp.status_code == 422


def test_change_password_too_short(api_client):
    tokens = _tokens(api_client.client, "owner@motorghar.com")
    resp = api_client.client.post(
        PASSWORD,
        json={"current_password": TEST_PASSWORD, "new_password": "short"},
        headers=_bearer(tokens["access_token"]),
    )
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("user_agent", "device_type"),
    [
        (IPHONE_UA, DeviceType.MOBILE),
        ("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15", DeviceType.TABLET),
        ("Mozilla/5.0 (Linux; Android 14; Tablet) AppleWebKit/537.36", DeviceType.TABLET),
        (DESKTOP_UA, DeviceType.DESKTOP),
        ("curl/8.4.0", DeviceType.UNKNOWN),
        (None, DeviceType.UNKNOWN),
    ],
)
def test_parse_device_info(user_agent, device_type):
    info = parse_device_info(user_agent)
    assert info.device_type is device_type
    assert info.user_agent == (user_agent or "unknown")


def test_parse_device_info_os_and_browser():
    info = parse_device_info(DESKTOP_UA)
    assert info.os == "Windows"
    assert info.browser == "Chrome"
    assert parse_device_info("curl/8.4.0").os is None


def _fake_request(headers: dict, host: str | None) -> SimpleNamespace:
    return SimpleNamespace(headers=headers, client=SimpleNamespace(host=host) if host else None)


@pytest.mark.parametrize(
    ("headers", "host", "expected"),
    [
        ({"X-Forwarded-For": "203.0.113.5, 10.0.0.1"}, "10.0.0.9", "203.0.113.5"),
        ({"X-Real-IP": "198.51.100.2"}, "10.0.0.9", "198.51.100.2"),
        ({"X-Forwarded-For": " ", "X-Real-IP": "198.51.100.2"}, "10.0.0.9", "198.51.100.2"),
        ({}, "10.0.0.9", "10.0.0.9"),
        ({}, None, "unknown"),
    ],
)
def test_client_ip(headers, host, expected):
    assert client_ip(_fake_request(headers, host)) == expected
