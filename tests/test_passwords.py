"""Unit tests for auth/passwords.py.

Covers:
- hash_password() salts (two hashes of the same input differ) and embeds the cost
- verify_password() true/false, and False (not an exception) for a corrupt hash
- hash_password() rejects cost factors bcrypt cannot use
- equalize_timing() never raises
- the 72-byte bcrypt limit is counted in UTF-8 bytes, not characters
"""

import pytest

from auth.errors import ConfigurationError
from auth.errors import PasswordTooLongError
from auth.passwords import MAX_PASSWORD_BYTES, equalize_timing, hash_password, verify_password

ROUNDS = 4


def test_hash_and_verify():
    hashed = hash_password("s3cret-pass", ROUNDS)
    assert verify_password("s3cret-pass", hashed) is True
    assert verify_password("wrong-pass", hashed) is False


def test_hash_is_salted():
    assert hash_password("same", ROUNDS) != hash_password("same", ROUNDS)


def test_hash_uses_requested_cost():
    assert hash_password("pw", 5).startswith("$2b$05$")


def test_verify_corrupt_hash_returns_false():
    assert verify_password("anything", "not-a-bcrypt-hash") is False
    assert verify_password("anything", "") is False


@pytest.mark.parametrize("rounds", [0, 3, 32])
def test_hash_rejects_out_of_range_cost(rounds):
    with pytest.raises(ConfigurationError):
        hash_password("pw", rounds)


def test_equalize_timing_returns_none():
    assert equalize_timing("whatever", ROUNDS) is None


def test_multibyte_password_at_the_byte_limit():
    plain = "é" * (MAX_PASSWORD_BYTES // 2)  # 36 chars, 72 bytes
    assert verify_password(plain, hash_password(plain, ROUNDS)) is True


def test_multibyte_password_over_the_byte_limit():
    plain = "é" * 40  # 40 chars, 80 bytes
    with pytest.raises(PasswordTooLongError):
        hash_password(plain, ROUNDS)


def test_verify_over_the_byte_limit_is_false():
    hashed = hash_password("a" * MAX_PASSWORD_BYTES, ROUNDS)
    assert verify_password("a" * (MAX_PASSWORD_BYTES + 1), hashed) is False
