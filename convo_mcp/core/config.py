"""
convo_mcp/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (database URL, bearer token, SSO credentials)
- Detects TLS requirements from the connection string
- Validates configuration on startup
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from typing import Optional, Literal


# Hosted providers whose databases only accept TLS
SSL_HOST_HINTS = ("render.com", "amazonaws.com")
# libpq sslmode values that ask for TLS; verify-* also check the certificate
SSL_MODES = ("prefer", "require", "verify-ca", "verify-full")
VERIFIED_SSL_MODES = ("verify-ca", "verify-full")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # Database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./convo_mcp.db",
        description="Relational store connection URI"
    )
    DATABASE_ECHO: bool = Field(
        default=False,
        description="Echo SQL statements to the log"
    )
    DATABASE_SSL: Optional[bool] = Field(
        default=None,
        description="Force TLS on/off for the database; None auto-detects from the URL"
    )

    # MCP transport
    MCP_BEARER_TOKEN: str = Field(
        default="",
        description="Shared secret for /mcp endpoints; empty disables the check"
    )
    MCP_SERVER_NAME: str = Field(
        default="mcp-server-agent",
        description="Name announced to MCP clients"
    )

    # SSO (password grant)
    SSO_TOKEN_URL: str = Field(default="", description="SSO token endpoint")
    SSO_USER_EXISTS_URL: str = Field(
        default="",
        description="SSO existence-check endpoint; the document number is appended as a path segment"
    )
    SSO_CLIENT_ID: str = Field(default="", description="SSO client id")
    SSO_CLIENT_SECRET: str = Field(default="", description="SSO client secret")
    SSO_USERNAME: str = Field(default="", description="SSO service account username")
    SSO_PASSWORD: str = Field(default="", description="SSO service account password")
    SSO_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="SSO request timeout in seconds"
    )

    # Server
    HOST: str = Field(default="0.0.0.0", description="Listen address")
    PORT: int = Field(default=3333, description="Listen port")

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL: {v}")
        return level

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def sso_fields(self) -> dict:
        return {
            "SSO_TOKEN_URL": self.SSO_TOKEN_URL,
            "SSO_USER_EXISTS_URL": self.SSO_USER_EXISTS_URL,
            "SSO_CLIENT_ID": self.SSO_CLIENT_ID,
            "SSO_CLIENT_SECRET": self.SSO_CLIENT_SECRET,
            "SSO_USERNAME": self.SSO_USERNAME,
            "SSO_PASSWORD": self.SSO_PASSWORD,
        }

    @property
    def sso_configured(self) -> bool:
        """True when every SSO endpoint and credential is set."""
        return all(self.sso_fields.values())

    @property
    def database_sslmode(self) -> Optional[str]:
        """libpq ``sslmode`` from the connection string, lower-cased."""
        value = make_url(self.DATABASE_URL).query.get("sslmode")
        if isinstance(value, tuple):
            value = value[-1] if value else None
        return value.lower() if value else None

    @property
    def database_requires_ssl(self) -> bool:
        """
        Whether the database connection should use TLS.

        An explicit DATABASE_SSL wins, then the URL's sslmode. Without either,
        TLS is switched on for the known hosted-database providers.
        """
        if self.DATABASE_SSL is not None:
            return self.DATABASE_SSL
        sslmode = self.database_sslmode
        if sslmode:
            return sslmode in SSL_MODES
        return any(hint in self.DATABASE_URL for hint in SSL_HOST_HINTS)

    @property
    def database_verifies_ssl(self) -> bool:
        """True when sslmode asks for the server certificate to be checked."""
        return self.database_requires_ssl and self.database_sslmode in VERIFIED_SSL_MODES

    @property
    def async_database_url(self) -> str:
        """
        DATABASE_URL rewritten for the async drivers.

        postgres:// and postgresql:// become postgresql+asyncpg://, and the
        libpq-only ``sslmode`` parameter is dropped (TLS is passed to asyncpg
        through connect args instead).
        """
        url = make_url(self.DATABASE_URL)
        if url.drivername in ("postgres", "postgresql"):
            url = url.set(drivername="postgresql+asyncpg")
        elif url.drivername == "sqlite":
            url = url.set(drivername="sqlite+aiosqlite")
        if "sslmode" in url.query:
            url = url.difference_update_query(["sslmode"])
        return url.render_as_string(hide_password=False)


# Global settings instance
settings = Settings()


def validate_settings(config: Optional[Settings] = None):
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    config = config or settings
    errors = []

    if not config.DATABASE_URL:
        errors.append("DATABASE_URL is required")

    # SSO is optional, but a half-filled block is a mistake
    missing_sso = [name for name, value in config.sso_fields.items() if not value]
    if missing_sso and len(missing_sso) < len(config.sso_fields):
        errors.append(f"Incomplete SSO configuration, missing: {', '.join(missing_sso)}")

    # Production-specific validations
    if config.is_production:
        if not config.MCP_BEARER_TOKEN:
            errors.append("MCP_BEARER_TOKEN is required in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
