"""
auth/tokens.py -- JWT issue/verify/decode and bearer-header parsing.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the user id (sub), email, role,
       a random jti, a typ claim ("access" or "refresh"), iat/exp, and
       iss/aud when configured. Access and refresh tokens share the same
       identity payload; they differ in lifetime, secret, and typ.

  jti: every token gets uuid4 entropy. Without it two logins by the same user
       inside one second would mint byte-identical refresh tokens, and the
       session table's UNIQUE(refresh_token) would reject the second login.

  verify_token() raises rather than returning None: the session engine needs
       to tell "bad token" apart from "bad claims" internally, even though the
       public surface collapses both into InvalidTokenError.

  Issuer/audience: when configured they are both checked and *required*. A
       token minted without an aud claim is rejected by a verifier that
       expects one. When not configured, aud is not checked at all.

  decode_unsafe() skips the signature check. It exists for introspection
       (CLI, logging) only and must never gate access.

This module is stateless: every function takes its secret and lifetime from
the caller, which reads them from Settings.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from jose import JWTError, jwt

from auth.errors import InvalidTokenError, MalformedPayloadError
from auth.models import Role, TokenPayload
from core.config import parse_duration

logger = logging.getLogger("motorghar.auth")

_ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"


# ---------------------------------------------------------------------------
# Issue
# ---------------------------------------------------------------------------


def issue_token(
    payload: TokenPayload,
    secret: str,
    ttl: str | int,
    issuer: str | None = None,
    audience: str | None = None,
    token_type: str = ACCESS,
) -> str:
    """Sign a JWT for payload that expires ttl from now.

    Args:
        payload:    Identity claims (user id, email, role).
        secret:     HMAC signing secret.
        ttl:        "<int><s|m|h|d>" literal or whole seconds. A malformed
                    literal raises ConfigurationError.
        issuer:     Optional iss claim.
        audience:   Optional aud claim.
        token_type: "access" or "refresh", stored as the typ claim.
    """
    lifetime = parse_duration(ttl)
    now = int(datetime.now(timezone.utc).timestamp())
    claims: dict = {
        "sub": payload.user_id,
        "email": payload.email,
        "role": payload.role.value,
        "typ": token_type,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + lifetime,
    }
    if issuer:
        claims["iss"] = issuer
    if audience:
        claims["aud"] = audience
    return jwt.encode(claims, secret, algorithm=_ALGORITHM)


# ---------------------------------------------------------------------------
# Verify / decode
# ---------------------------------------------------------------------------


def verify_token(
    token: str,
    secret: str,
    issuer: str | None = None,
    audience: str | None = None,
    token_type: str | None = None,
) -> TokenPayload:
    """Verify signature, expiry, issuer, and audience; return the payload.

    Raises:
        InvalidTokenError:     signature, expiry, iss/aud, or typ check failed.
        MalformedPayloadError: the token verified but its claims are not a
                               valid TokenPayload.
    """
    options = {
        "verify_aud": audience is not None,
        "require_aud": audience is not None,
        "require_iss": issuer is not None,
        "require_exp": True,
    }
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[_ALGORITHM],
            audience=audience,
            issuer=issuer,
            options=options,
        )
    except JWTError as exc:
        logger.debug("JWT verification failed: %s", exc)
        raise InvalidTokenError() from exc

    if token_type is not None and claims.get("typ") != token_type:
        raise InvalidTokenError()
    return _payload_from_claims(claims)


def decode_unsafe(token: str) -> TokenPayload | None:
    """Decode claims WITHOUT checking the signature. Never use for authorization.

    Returns None if the token cannot be parsed or its claims are not a
    valid payload.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    try:
        return _payload_from_claims(claims)
    except MalformedPayloadError:
        return None


def token_expires_at(token: str) -> datetime | None:
    """Return the unverified exp claim as an aware UTC datetime, or None."""
    try:
        exp = jwt.get_unverified_claims(token).get("exp")
    except JWTError:
        return None
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


def _payload_from_claims(claims: dict) -> TokenPayload:
    user_id = claims.get("sub")
    email = claims.get("email")
    role = claims.get("role")
    if not isinstance(user_id, str) or not user_id:
        raise MalformedPayloadError()
    if not isinstance(email, str) or not email:
        raise MalformedPayloadError()
    try:
        parsed_role = Role(role)
    except ValueError as exc:
        raise MalformedPayloadError() from exc
    return TokenPayload(user_id=user_id, email=email, role=parsed_role)


# ---------------------------------------------------------------------------
# Authorization header
# ---------------------------------------------------------------------------


def extract_bearer(header_value: str | None) -> str | None:
    """Return the token from "Bearer <token>", or None for any other shape.

    Missing header, a different scheme, an empty token, or extra
    space-separated segments all yield None rather than an error.
    """
    if not header_value:
        return None
    parts = header_value.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        return None
    return parts[1] or None
