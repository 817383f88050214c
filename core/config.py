"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for PlayPlanet happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_length_seconds -> SESSION_LENGTH_SECONDS).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Used to keep the session and refresh windows consistent.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("playplanet.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'playplanet.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    # Sessions
    # ------------------------------------------------------------------

    # A session is valid for one hour after issue; the refresh token may be
    # redeemed until refresh_length_seconds after issue.
    session_length_seconds: int = 3600
    refresh_length_seconds: int = 5400

    # Machine (API client) sessions are trusted service-to-service callers.
    # When False they are admitted only on routes gated by the DEFAULT permission.
    machine_sessions_bypass_permissions: bool = True

    # ------------------------------------------------------------------
    # TOTP
    # ------------------------------------------------------------------

    totp_issuer: str = "MyPlayPlanet"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_lifetimes(self) -> "Settings":
        """Reject session lifetimes that would make refresh meaningless.

        A refresh window shorter than the session itself would expire the
        refresh token before the access window, so clients could never renew.
        """
        if self.session_length_seconds <= 0 or self.refresh_length_seconds <= 0:
            raise ValueError("Session and refresh lengths must be positive.")
        if self.refresh_length_seconds < self.session_length_seconds:
            raise ValueError("REFRESH_LENGTH_SECONDS must not be shorter than SESSION_LENGTH_SECONDS.")
        if self.debug:
            logger.warning("DEBUG mode enabled -- do not run this configuration in production.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
