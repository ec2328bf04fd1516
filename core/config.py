"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the portal happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  Frozen model: Settings is immutable once validated. The signing secret is
      read exactly once and then injected into the token authenticator; nothing
      downstream re-reads the environment.

Security notes:
  SECRET_KEY has no default and is never generated. A missing or short key is
  a ConfigurationError, which the API lifespan lets propagate so the process
  never starts serving traffic with a weak or throwaway signing key.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("scoutportal.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'scoutportal.db'}"

MIN_SECRET_LENGTH = 32


class ConfigurationError(RuntimeError):
    """Settings are missing or invalid. Fatal at startup, never per-request."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field except secret_key has a default. secret_key's empty-string
    default exists only so the validator can report the missing key with a
    readable message instead of pydantic's generic "field required".
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # 24 hours. Credentials are bearer tokens with no refresh flow.
    token_ttl_seconds: int = 86400
    # Minimum gap between two presence writes for the same user.
    presence_interval_seconds: int = 60
    # Off by default: demo login hands out a real credential for a real parent.
    demo_login_enabled: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Refuse to build settings without a usable signing secret.

        There is no dev-mode fallback: a process that cannot sign credentials
        with a stable key must not start.
        """
        if not self.secret_key:
            raise ValueError(
                "SECRET_KEY is required. Set SECRET_KEY in your environment or .env file."
            )
        if len(self.secret_key) < MIN_SECRET_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {MIN_SECRET_LENGTH} characters.")
        if self.token_ttl_seconds <= 0:
            raise ValueError("TOKEN_TTL_SECONDS must be positive.")
        if self.presence_interval_seconds < 0:
            raise ValueError("PRESENCE_INTERVAL_SECONDS must not be negative.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Raises ConfigurationError (wrapping pydantic's ValidationError) when the
    environment is incomplete. Failed attempts are not cached, so a corrected
    environment is picked up on the next call.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    try:
        return Settings()
    except ValidationError as exc:
        logger.critical("Configuration invalid: %s", _summarize(exc))
        raise ConfigurationError(_summarize(exc)) from exc


def _summarize(exc: ValidationError) -> str:
    return "; ".join(err["msg"] for err in exc.errors())
