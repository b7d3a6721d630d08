"""Configuration settings for the WeChat Publisher MCP server using Pydantic Settings.

This module provides type-safe configuration management with automatic validation
and environment variable loading.
"""

import logging
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central configuration management with Pydantic validation.

    All settings are loaded from environment variables with automatic type conversion
    and validation. Default values are provided for non-critical settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
        validate_default=True,
    )

    # ========================================
    # Debug Settings
    # ========================================
    debug: bool = Field(
        default=False,
        alias="MCP_DEBUG",
        description="Enable debug mode with verbose logging",
    )

    # ========================================
    # Server Settings
    # ========================================
    host: str = Field(
        default="0.0.0.0",
        description="Server host address",
    )

    port: int = Field(
        default=3003,
        ge=1,
        le=65535,
        description="Server port number",
    )

    transport: str = Field(
        default="http",
        description="Transport mode (http or stdio)",
    )

    public_base_url: str | None = Field(
        default=None,
        description="Public URL of the MCP server, used as resource audience",
    )

    # ========================================
    # OAuth2 Settings
    # ========================================
    use_oauth2: bool = Field(
        default=True,
        description="Enable OAuth2 authentication",
    )

    oauth2_issuer: str | None = Field(
        default=None,
        description="OAuth2 issuer URL (defaults to the public base URL)",
    )

    oauth_storage_dir: str = Field(
        default="./data",
        description="Directory holding the persisted client and token files",
    )

    oauth_strict_resource: bool = Field(
        default=False,
        description="Reject grants whose resource is not on the public base URL origin",
    )

    oauth2_scopes: str = Field(
        default="mcp:tools,mcp:read,mcp:write",
        description="Comma-separated list of valid OAuth2 scopes",
    )

    oauth2_required_scopes: str = Field(
        default="",
        description="Comma-separated list of scopes every bearer token must carry",
    )

    # ========================================
    # Validators
    # ========================================
    @field_validator("public_base_url", mode="before")
    @classmethod
    def set_public_base_url(cls, v: str | None, info: Any) -> str:
        """Set the public base URL default from host and port if not provided."""
        if v:
            return v.rstrip("/")
        # Access other field values during validation
        host = info.data.get("host", "0.0.0.0")
        port = info.data.get("port", 3003)
        if host in ("0.0.0.0", "::"):
            host = "localhost"
        return f"http://{host}:{port}"

    @field_validator("oauth2_issuer", mode="before")
    @classmethod
    def set_oauth2_issuer(cls, v: str | None, info: Any) -> str | None:
        """Default the OAuth2 issuer to the public base URL."""
        if v:
            return v.rstrip("/")
        return info.data.get("public_base_url")

    @field_validator("transport")
    @classmethod
    def validate_transport(cls, v: str) -> str:
        """Normalize and check the transport name."""
        normalized = v.strip().lower()
        if normalized not in ("http", "streamable-http", "sse", "stdio"):
            msg = f"Unsupported transport: {v}"
            raise ValueError(msg)
        return normalized

    # ========================================
    # Helper Methods
    # ========================================
    def get_oauth2_scopes_list(self) -> list[str]:
        """Get OAuth2 scopes as a list."""
        return [s.strip() for s in self.oauth2_scopes.split(",") if s.strip()]

    def get_oauth2_required_scopes_list(self) -> list[str]:
        """Get required OAuth2 scopes as a list."""
        return [
            s.strip() for s in self.oauth2_required_scopes.split(",") if s.strip()
        ]

    def to_dict(self) -> dict[str, Any]:
        """Export settings as a dictionary (safe version without secrets)."""
        return {
            "debug": self.debug,
            "host": self.host,
            "port": self.port,
            "transport": self.transport,
            "public_base_url": self.public_base_url,
            "use_oauth2": self.use_oauth2,
            "oauth2_issuer": self.oauth2_issuer,
            "oauth_storage_dir": self.oauth_storage_dir,
            "oauth_strict_resource": self.oauth_strict_resource,
            "oauth2_scopes": self.get_oauth2_scopes_list(),
        }


# Singleton pattern with proper typing
_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern)."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
        logger.info("Settings initialized from environment")
        logger.debug("OAuth storage directory: %s", _settings_instance.oauth_storage_dir)
        if not _settings_instance.use_oauth2:
            logger.warning(
                "USE_OAUTH2 is disabled. The HTTP transport will accept unauthenticated requests.",
            )
    return _settings_instance


def reset_settings() -> None:
    """Reset settings instance (useful for testing)."""
    global _settings_instance
    _settings_instance = None
