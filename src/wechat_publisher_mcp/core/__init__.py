"""Core functionality for the WeChat Publisher MCP server."""

from .constants import (
    ACCESS_TOKEN_TTL_SECONDS,
    AUTHORIZATION_CODE_TTL_SECONDS,
    DEFAULT_SCOPES,
    REFRESH_TOKEN_TTL_SECONDS,
    RESOURCE_NAME,
    SERVER_NAME,
)
from .decorators import track_request
from .exceptions import (
    InvalidGrant,
    InvalidScope,
    InvalidTarget,
    InvalidToken,
    OAuthError,
    StorageError,
    TokenExpired,
    ValidationError,
)
from .logging import configure_logging, logger, mask_secrets, request_id_ctx

__all__ = [
    # Core
    "configure_logging",
    "logger",
    "mask_secrets",
    "request_id_ctx",
    "track_request",
    # Errors
    "InvalidGrant",
    "InvalidScope",
    "InvalidTarget",
    "InvalidToken",
    "OAuthError",
    "StorageError",
    "TokenExpired",
    "ValidationError",
    # Constants
    "ACCESS_TOKEN_TTL_SECONDS",
    "AUTHORIZATION_CODE_TTL_SECONDS",
    "DEFAULT_SCOPES",
    "REFRESH_TOKEN_TTL_SECONDS",
    "RESOURCE_NAME",
    "SERVER_NAME",
]
