"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the MotorGhar auth core happen here. No
module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.
      Every field error is collected into a single ValidationError, so a bad
      deployment reports all of its problems at once instead of one per restart.

  @model_validator(mode="after"): Cross-field validation once all fields are
      resolved. DEBUG mode generates a signing secret with a warning; production
      refuses to start without one.

Duration literals:
  Token lifetimes are configured as "<integer><s|m|h|d>" literals ("15m",
  "7d") or a plain second count. parse_duration() is the single place that
  turns either form into whole seconds. It lives here (not in auth/) because
  Settings validates the literals at startup and core/ may not import auth/.

Security notes:
  [M6] Signing secrets shorter than 32 chars are rejected outright.
  [M7] In production mode (DEBUG not set or false), a missing JWT_SECRET is a
       hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("motorghar.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'motorghar_auth.db'}"

MIN_SECRET_LENGTH = 32
BCRYPT_ROUNDS_MIN = 10
BCRYPT_ROUNDS_MAX = 15

# ---------------------------------------------------------------------------
# Duration literals
# ---------------------------------------------------------------------------

_DURATION_RE = re.compile(r"^(\d+)([smhd])$")

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 60 * 60 * 24,
}


class ConfigurationError(ValueError):
    """A configuration value could not be interpreted (e.g. a bad TTL literal).

    Subclasses ValueError so pydantic validators can let it propagate and have
    it reported as an ordinary field error.
    """

    status_code = 500
    code = "configuration_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


def parse_duration(value: str | int) -> int:
    """Convert a TTL literal or second count into whole seconds.

    Accepted forms: "30s", "15m", "2h", "7d", 900, "900". Booleans, negative
    numbers, floats, and any other string shape raise ConfigurationError.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ConfigurationError(f"Invalid duration: {value!r} (must not be negative)")
        return value
    if not isinstance(value, str):
        raise ConfigurationError(f"Invalid duration: {value!r}")

    raw = value.strip()
    if raw.isdigit():
        return int(raw)
    match = _DURATION_RE.match(raw)
    if match is None:
        raise ConfigurationError(f"Invalid duration format: {value!r} (expected e.g. '30s', '15m', '2h', '7d')")
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (with DEBUG=true for the secret).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # JWT
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    jwt_secret: str = ""
    # Empty means "sign refresh tokens with jwt_secret".
    jwt_refresh_secret: str = ""
    jwt_access_expiry: str = "15m"
    jwt_refresh_expiry: str = "7d"
    jwt_issuer: str = "motorghar"
    jwt_audience: str = "motorghar-client"

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # 0 disables the cap.
    session_max_per_user: int = Field(default=5, ge=0)
    session_ttl_seconds: int = Field(default=7 * 24 * 60 * 60, gt=0)
    session_cleanup_interval: int = Field(default=3600, gt=0)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=12, ge=BCRYPT_ROUNDS_MIN, le=BCRYPT_ROUNDS_MAX)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Empty string selects the in-process blacklist (single worker / dev only).
    redis_url: str = ""

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    cors_origins: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # Admin bootstrap (used by `python main.py bootstrap-admin`)
    # ------------------------------------------------------------------

    admin_email: str = "admin@motorghar.com"
    admin_password: str = ""
    admin_name: str = "MotorGhar Admin"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_access_expiry", "jwt_refresh_expiry")
    @classmethod
    def validate_expiry_literal(cls, value: str) -> str:
        """Reject TTL literals parse_duration() cannot read, and zero lifetimes."""
        if parse_duration(value) <= 0:
            raise ValueError(f"Token lifetime must be positive, got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value!r}")
        return level

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing-secret policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if JWT_SECRET is missing.

        Both modes: reject secrets shorter than 32 characters.
        """
        if not self.jwt_secret:
            if self.debug:
                self.jwt_secret = secrets.token_hex(32)
                logger.warning("Using auto-generated JWT_SECRET. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "JWT_SECRET is required in production mode. "
                    "Set JWT_SECRET in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.jwt_secret) < MIN_SECRET_LENGTH:
            raise ValueError(f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters.")
        if self.jwt_refresh_secret and len(self.jwt_refresh_secret) < MIN_SECRET_LENGTH:
            raise ValueError(f"JWT_REFRESH_SECRET must be at least {MIN_SECRET_LENGTH} characters.")
        return self

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def refresh_secret(self) -> str:
        return self.jwt_refresh_secret or self.jwt_secret

    @property
    def access_ttl_seconds(self) -> int:
        return parse_duration(self.jwt_access_expiry)

    @property
    def refresh_ttl_seconds(self) -> int:
        return parse_duration(self.jwt_refresh_expiry)

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
