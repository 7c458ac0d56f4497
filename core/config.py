"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Inkpress happen here. No module should
call os.getenv() or os.environ.get() directly. The HTTP boundary calls
get_settings() once at startup and hands the resulting Settings instance to
every service constructor; services never reach for configuration on their own.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from INKPRESS_* environment
      variables and an optional .env file. Type coercion and validation are
      built in. The model is frozen -- configuration is immutable for the
      lifetime of the process.

  @model_validator(mode="after"): Cross-field validation once all fields are
      resolved. Dev mode generates missing signing secrets with a warning;
      production mode refuses to start without them.

Security notes:
  [M6] Signing secrets shorter than 32 chars are rejected outright.
  [M7] Access and refresh secrets must differ. A shared secret would let a
       refresh token verify as an access token if the kind claim were ever
       dropped, and leaking one would compromise both.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("inkpress.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings(debug=True) can be instantiated in
    test environments without a real .env file.

    Environment variable name mapping: INKPRESS_ prefix plus the uppercased
    field name. E.g. `access_token_secret` reads INKPRESS_ACCESS_TOKEN_SECRET.
    """

    model_config = SettingsConfigDict(
        env_prefix="INKPRESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "sqlite:///inkpress_auth.db"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev secret or raises, so callers never see "".
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    access_token_ttl_minutes: int = Field(default=15, gt=0)
    refresh_token_ttl_days: int = Field(default=7, gt=0)
    rotate_refresh_tokens: bool = True

    # ------------------------------------------------------------------
    # Sessions and revocation housekeeping
    # ------------------------------------------------------------------

    session_ttl_days: int = Field(default=7, gt=0)
    revocation_purge_interval_seconds: int = Field(default=3600, gt=0)
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Password hashing and policy
    # ------------------------------------------------------------------

    # bcrypt accepts 4..31. Hashes below this cost are upgraded on login.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    password_min_length: int = Field(default=8, ge=1)
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = True
    password_forbid_common: bool = True
    password_forbid_personal_info: bool = True
    password_forbid_repeats: bool = False
    password_forbid_sequences: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_signing_secrets(self) -> "Settings":
        """Enforce signing-secret policy [M6] [M7].

        Dev mode (DEBUG=true): auto-generate any missing secret with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if either secret is missing.
        """
        for name in ("access_token_secret", "refresh_token_secret"):
            if getattr(self, name):
                continue
            if not self.debug:
                raise ValueError(
                    f"{name.upper()} is required in production mode. "
                    f"Set INKPRESS_{name.upper()} in your environment or .env file. "
                    "To run in development mode, set INKPRESS_DEBUG=true."
                )
            # frozen model: bypass __setattr__ during validation
            object.__setattr__(self, name, secrets.token_hex(32))
            logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", name)
        if len(self.access_token_secret) < 32 or len(self.refresh_token_secret) < 32:
            raise ValueError("Token signing secrets must be at least 32 characters.")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("Access and refresh token secrets must be different.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Only the process entry point (api/main.py lifespan) should call this.
    Everything below the boundary receives Settings through its constructor.

    In tests: construct Settings(...) directly, or call
    get_settings.cache_clear() after changing environment variables.
    """
    return Settings()
