"""
auth/passwords.py -- Password hashing and verification (bcrypt).

Security design decisions:
  bcrypt directly, no passlib wrapper. passlib's wrap-bug detection builds a
  password longer than 72 bytes, which current bcrypt releases reject.

  bcrypt only reads the first 72 bytes of the UTF-8 encoding. hash_password()
  refuses anything longer with PasswordTooLongError instead of letting bcrypt
  raise (5.x) or truncate (4.x). The limit counts bytes, not characters. The
  API models and the CLI check the same limit up front.

  The cost factor is always supplied by the caller (Settings.bcrypt_rounds in
  production, a low value in tests). Nothing here hardcodes it.

  verify_password() never raises. A malformed stored hash is treated exactly
  like a wrong password so the caller has a single failure path.

  equalize_timing() runs bcrypt against a throwaway hash of the same cost.
  AuthService.login() calls it when the email is unknown so the response time
  does not reveal whether an account exists [C1].

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

from functools import lru_cache

import bcrypt

from auth.errors import PasswordTooLongError
from core.config import ConfigurationError

# bcrypt's own accepted range; Settings narrows it further for production.
_MIN_ROUNDS = 4
_MAX_ROUNDS = 31

MAX_PASSWORD_BYTES = 72


def password_too_long(plain: str) -> bool:
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(plain: str, rounds: int) -> str:
    """Return a salted bcrypt hash of plain at the given cost factor.

    Raises PasswordTooLongError when plain encodes to more than 72 bytes.
    """
    if not _MIN_ROUNDS <= rounds <= _MAX_ROUNDS:
        raise ConfigurationError(f"bcrypt rounds must be between {_MIN_ROUNDS} and {_MAX_ROUNDS}, got {rounds}")
    if password_too_long(plain):
        raise PasswordTooLongError()
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    if password_too_long(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=8)
def _dummy_hash(rounds: int) -> str:
    # One per cost factor, computed on first use.
    return hash_password("motorghar_timing_dummy", rounds)


def equalize_timing(plain: str, rounds: int) -> None:
    """Spend one bcrypt verification's worth of time and discard the result."""
    verify_password(plain, _dummy_hash(rounds))
