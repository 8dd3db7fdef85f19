"""Application configuration loaded from environment variables.

Settings for session signing, verification codes, background sweeps and the
allowed-users directory. Uses pydantic-settings for validation and .env file
support.

Rate-limit windows and quotas are not configurable here: they
are fixed per scope in ``komikai.services.rate_limiter``.
"""

from datetime import timedelta
from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Minimum length for SESSION_SECRET in production (256 bits = 32 bytes)
_MIN_SESSION_SECRET_LENGTH = 32

# Canonical session lifetime: 7 days
_DEFAULT_SESSION_TTL_HOURS = 7 * 24


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "KomiKAI"
    environment: str = "development"
    log_level: str = "INFO"

    # Session tokens
    # An empty secret is allowed outside production, but then every token
    # verification fails closed and no token can be issued.
    session_secret: SecretStr = SecretStr("")
    session_ttl_hours: int = _DEFAULT_SESSION_TTL_HOURS
    session_issuer: str = "komikai"
    session_cookie_name: str = "komikai_session"
    session_cookie_secure: bool = True
    session_cookie_samesite: Literal["lax", "strict", "none"] = "strict"

    # Verification codes
    code_ttl_minutes: int = 10

    # Background sweeps (seconds between passes)
    code_sweep_interval_seconds: int = 60
    rate_limit_sweep_interval_seconds: int = 300
    sweepers_enabled: bool = True  # Disable for testing

    # Allowed users: JSON list of emails or {email: display_name}
    allowed_users_path: str = "data/allowed-users.json"

    @property
    def session_ttl(self) -> timedelta:
        """Canonical lifetime of an issued session token."""
        return timedelta(hours=self.session_ttl_hours)

    @property
    def code_ttl(self) -> timedelta:
        """Lifetime of a pending verification code."""
        return timedelta(minutes=self.code_ttl_minutes)

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Checks:
        - Session and code lifetimes must be positive (all environments)
        - Sweep intervals must be positive (all environments)
        - SameSite=None requires the Secure flag (all environments)
        - SESSION_SECRET must be set and >= 32 chars in production
        """
        if self.session_ttl_hours <= 0:
            msg = f"SESSION_TTL_HOURS must be positive. Got: {self.session_ttl_hours}"
            raise ValueError(msg)
        if self.code_ttl_minutes <= 0:
            msg = f"CODE_TTL_MINUTES must be positive. Got: {self.code_ttl_minutes}"
            raise ValueError(msg)
        if (
            self.code_sweep_interval_seconds <= 0
            or self.rate_limit_sweep_interval_seconds <= 0
        ):
            msg = "Sweep intervals must be positive."
            raise ValueError(msg)

        if self.session_cookie_samesite == "none" and not self.session_cookie_secure:
            msg = (
                "SESSION_COOKIE_SECURE must be true when SESSION_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if self.environment == "production":
            secret_value = self.session_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "SESSION_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_SESSION_SECRET_LENGTH:
                msg = (
                    f"SESSION_SECRET must be at least {_MIN_SESSION_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
