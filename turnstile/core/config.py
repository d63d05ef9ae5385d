"""Application configuration loaded from environment variables.

Settings for the database, session issuance and the one-time token
lifecycle. Uses pydantic-settings for validation and .env file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "turnstile_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "turnstile"
    database_user: str = "turnstile_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    # Full SQLAlchemy URL; takes precedence over the individual fields
    database_url_override: str = ""

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Session issuance
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "turnstile"
    auth_audience: str = "turnstile"
    session_ttl_minutes: int = 60
    bcrypt_rounds: int = 12

    # One-time tokens
    # Password reset tokens are fixed at six digits valid for one hour
    verification_token_length: int = 6
    verification_token_ttl_minutes: int = 60
    token_sweep_interval_seconds: int = 15 * 60

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        if self.database_url_override:
            return self.database_url_override.replace("+asyncpg", "").replace(
                "+aiosqlite", ""
            )
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate token settings and production security requirements.

        Checks:
        - Verification token length must be at least one digit (all environments)
        - Token TTLs, session TTL and sweep interval must be positive
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if self.verification_token_length < 1:
            msg = (
                "VERIFICATION_TOKEN_LENGTH must be at least 1. "
                f"Got: {self.verification_token_length}"
            )
            raise ValueError(msg)

        for name in (
            "verification_token_ttl_minutes",
            "session_ttl_minutes",
            "token_sweep_interval_seconds",
        ):
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name.upper()} must be positive. Got: {value}"
                raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
