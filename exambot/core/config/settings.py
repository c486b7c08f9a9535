"""Application settings with Pydantic validation."""

from typing import Any, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from exambot.constants import Database


class BotSettings(BaseSettings):
    """Deployment settings read from environment variables and ``.env``."""

    # Telegram
    telegram_token: SecretStr = Field(
        default=SecretStr(""), description="Telegram bot token issued by @BotFather"
    )

    # Encryption
    encryption_key: Optional[SecretStr] = Field(
        default=None,
        description=(
            "Base64-encoded Fernet key used to encrypt stored account passwords. "
            'Generate with: python -c "from cryptography.fernet import Fernet; '
            'print(Fernet.generate_key().decode())"'
        ),
    )

    # Environment
    env: str = Field(
        default="production", description="Environment (production, development, testing)"
    )

    @model_validator(mode="before")
    @classmethod
    def default_env_for_pytest(cls, data: Any) -> Any:
        """Auto-detect testing environment when running under pytest."""
        import sys

        if not isinstance(data, dict):
            return data

        if ("env" not in data or not data.get("env")) and "pytest" in sys.modules:
            data["env"] = "testing"

        return data

    # Database
    database_url: str = Field(
        default=Database.DEFAULT_URL, description="PostgreSQL database connection URL"
    )
    db_pool_size: int = Field(
        default=Database.POOL_SIZE, ge=1, le=100, description="Database connection pool size"
    )
    db_connection_timeout: float = Field(
        default=Database.CONNECTION_TIMEOUT, gt=0, description="Connection acquire timeout"
    )

    # Remote browser access
    server_ip: str = Field(
        default="localhost", description="Public address used in noVNC links sent to users"
    )

    # Proxies
    use_proxies: bool = Field(default=False, description="Route browsers through PROXY_n_*")

    # Admin HTTP API
    health_check_port: int = Field(default=3001, ge=1, le=65535)
    health_check_host: str = Field(default="0.0.0.0")

    # Logging
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key_format(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        """Validate encryption key is a usable Fernet key."""
        if v is None:
            return None

        from cryptography.fernet import Fernet

        try:
            Fernet(v.get_secret_value().encode())
        except (ValueError, TypeError) as e:
            raise ValueError(
                "ENCRYPTION_KEY must be a url-safe base64-encoded 32-byte key. "
                'Generate one with: python -c "from cryptography.fernet import Fernet; '
                'print(Fernet.generate_key().decode())"'
            ) from e
        return v

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value."""
        allowed = ["production", "development", "testing", "staging"]
        if v.lower() not in allowed:
            raise ValueError(f'ENV must be one of: {", ".join(allowed)}')
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f'LOG_LEVEL must be one of: {", ".join(allowed)}')
        return v_upper

    @model_validator(mode="after")
    def ensure_encryption_key(self) -> "BotSettings":
        """
        Ensure encryption_key is set.

        In production/staging the key is required; in testing/development a
        throwaway key is generated.

        Raises:
            ValueError: If the key is missing in production/staging
        """
        from cryptography.fernet import Fernet

        if self.encryption_key is None:
            if self.env in ("testing", "development"):
                self.encryption_key = SecretStr(Fernet.generate_key().decode())
            else:
                raise ValueError(
                    "ENCRYPTION_KEY is required in production/staging. "
                    'Generate with: python -c "from cryptography.fernet import Fernet; '
                    'print(Fernet.generate_key().decode())"'
                )
        return self

    @model_validator(mode="after")
    def validate_production_requirements(self) -> "BotSettings":
        """
        Refuse insecure defaults in production.

        Raises:
            ValueError: If the database URL or Telegram token are unusable
        """
        if self.env == "production":
            if self.database_url == Database.DEFAULT_URL:
                raise ValueError(
                    "Production environment cannot use default DATABASE_URL. "
                    "Set DATABASE_URL with proper credentials in environment variables."
                )
            if not self.telegram_token.get_secret_value():
                raise ValueError("TELEGRAM_TOKEN is required in production")
        return self

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env == "production"


# Singleton instance
_settings: Optional[BotSettings] = None


def get_settings() -> BotSettings:
    """
    Get application settings singleton.

    Returns:
        BotSettings instance

    Raises:
        pydantic.ValidationError: If required settings are missing or invalid
    """
    global _settings
    if _settings is None:
        _settings = BotSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
