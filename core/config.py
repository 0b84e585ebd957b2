"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the marketplace auth service happen here.
No module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates missing signing secrets with a warning;
      production mode refuses to start without them.

Security notes:
  Signing secrets shorter than 32 chars are rejected outright.

  Access and refresh tokens are signed with two different secrets. Reusing
  one secret for both would let an access token be replayed at the refresh
  endpoint, so equal secrets are a startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("marketplace.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'marketplace_auth.db'}"

_MIN_SECRET_LEN = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (DEBUG=true is still required for
    the secrets to be generated).
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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    access_token_expire_seconds: int = 3600
    # The refresh ledger stores expires_at with the same TTL.
    refresh_token_expire_days: int = 7

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 10

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:3000"
    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing-secret policy.

        Dev mode (DEBUG=true): generate any missing secret with a warning.
            Issued tokens will not survive a restart.

        Production mode: refuse to start if either secret is missing.

        Both modes: each secret must be at least 32 characters, and the
            access and refresh secrets must differ.
        """
        for name in ("access_token_secret", "refresh_token_secret"):
            value = getattr(self, name)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, name, value)
                logger.warning("Using auto-generated %s. Tokens will not survive a restart.", name.upper())
            if len(value) < _MIN_SECRET_LEN:
                raise ValueError(f"{name.upper()} must be at least {_MIN_SECRET_LEN} characters.")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ.")
        return self

    @model_validator(mode="after")
    def validate_ranges(self) -> "Settings":
        if not 10 <= self.bcrypt_rounds <= 15:
            raise ValueError("BCRYPT_ROUNDS must be between 10 and 15.")
        if not 60 <= self.access_token_expire_seconds <= 86400:
            raise ValueError("ACCESS_TOKEN_EXPIRE_SECONDS must be between 60 and 86400 (1 min to 1 day).")
        if not 1 <= self.refresh_token_expire_days <= 90:
            raise ValueError("REFRESH_TOKEN_EXPIRE_DAYS must be between 1 and 90.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
