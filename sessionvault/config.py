"""Configuration module for sessionvault.

Implements Pydantic v2 Settings for configuration management with support for:
- Environment variables (SESSIONVAULT_* prefix)
- YAML/TOML configuration files
- Fail-fast validation at startup

Configuration priority (later overrides earlier):
1. Built-in defaults
2. Configuration file (YAML/TOML)
3. Environment variables
"""

import warnings
from pathlib import Path
from typing import Literal

from cryptography.fernet import Fernet
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 30 days, the default lifetime of a session cookie and its row
DEFAULT_SESSION_MAX_AGE = 86400 * 30


class Settings(BaseSettings):
    """Session store configuration with sensible defaults.

    Example:
        # Load from environment only
        settings = Settings()

        # Override specific values
        settings = Settings(environment="prod", session_keys=[key])
    """

    model_config = SettingsConfigDict(
        env_prefix="SESSIONVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Application Settings
    # ========================================

    environment: Literal["lab", "staging", "prod"] = Field(
        default="lab", description="Deployment environment"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    log_format: Literal["json", "text"] = Field(default="json", description="Log output format")

    # ========================================
    # Database Configuration
    # ========================================

    database_url: str = Field(
        default="sqlite+aiosqlite:///./sessions.db",
        description="Database connection URL (SQLite or PostgreSQL)",
    )

    database_pool_size: int = Field(
        default=5, ge=1, le=100, description="Database connection pool size"
    )

    database_max_overflow: int = Field(
        default=10, ge=0, le=100, description="Max overflow connections beyond pool size"
    )

    database_echo: bool = Field(
        default=False, description="Echo SQL statements to logs (debug only)"
    )

    session_table_name: str = Field(
        default="sessions",
        pattern=r"^[A-Za-z_][A-Za-z0-9_]*$",
        description="Table holding session rows",
    )

    # ========================================
    # Session Policy
    # ========================================

    session_max_age: int = Field(
        default=DEFAULT_SESSION_MAX_AGE,
        description="Default session lifetime in seconds (<= 0 deletes on save)",
    )

    session_max_length: int = Field(
        default=4096, ge=0, description="Maximum encoded cookie/payload length (0 = unlimited)"
    )

    session_keys: list[str] = Field(
        default_factory=list,
        description="Fernet keys, newest first. The first key encodes, all keys decode",
    )

    sweep_interval_seconds: float = Field(
        default=86400.0, gt=0, description="Interval between expired-session sweeps"
    )

    # ========================================
    # Cookie Attributes
    # ========================================

    cookie_path: str = Field(default="/", description="Cookie Path attribute")

    cookie_domain: str | None = Field(default=None, description="Cookie Domain attribute")

    cookie_secure: bool = Field(default=False, description="Cookie Secure attribute")

    cookie_http_only: bool = Field(default=True, description="Cookie HttpOnly attribute")

    cookie_same_site: Literal["lax", "strict", "none"] = Field(
        default="lax", description="Cookie SameSite attribute"
    )

    # ========================================
    # Validators
    # ========================================

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not (
            v.startswith("sqlite+aiosqlite://")
            or v.startswith("postgresql+asyncpg://")
            or v.startswith("postgresql+psycopg://")
        ):
            raise ValueError(
                "database_url must use an async driver: sqlite+aiosqlite:// or "
                "postgresql+asyncpg:// / postgresql+psycopg://"
            )
        return v

    @model_validator(mode="after")
    def validate_session_keys(self) -> "Settings":
        """Require key material outside the lab."""
        if not self.session_keys:
            if self.environment in ["staging", "prod"]:
                raise ValueError("session_keys is required for staging/prod environments")
            warnings.warn(
                "session_keys not set, using an ephemeral key (lab only); "
                "cookies will not survive a restart",
                UserWarning,
                stacklevel=2,
            )
            self.session_keys = [Fernet.generate_key().decode("utf-8")]
        return self

    # ========================================
    # Helper Methods
    # ========================================

    @property
    def is_sqlite(self) -> bool:
        """Check if database is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        """Check if database is PostgreSQL."""
        return self.database_url.startswith("postgresql")

    def to_dict(self) -> dict:
        """Convert settings to dictionary, masking secrets."""
        data = self.model_dump()
        if data.get("session_keys"):
            data["session_keys"] = ["***REDACTED***"] * len(data["session_keys"])
        return data


# ========================================
# Global Settings Instance
# ========================================

_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Set global settings instance.

    Args:
        settings: Settings instance to use globally
    """
    global _settings
    _settings = settings


def load_settings_from_file(config_file: Path | str) -> Settings:
    """Load settings from YAML or TOML configuration file.

    Args:
        config_file: Path to configuration file

    Returns:
        Settings instance loaded from file

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file format is invalid

    Example:
        settings = load_settings_from_file("config/prod.yaml")
        set_settings(settings)
    """
    config_path = Path(config_file)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    if suffix in [".yaml", ".yml"]:
        import yaml

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}
    elif suffix == ".toml":
        import tomllib

        with open(config_path, "rb") as f:
            config_data = tomllib.load(f)
    else:
        raise ValueError(f"Unsupported config file format: {suffix}. Use .yaml, .yml, or .toml")

    return Settings(**config_data)
