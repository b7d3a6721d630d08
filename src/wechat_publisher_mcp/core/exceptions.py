"""OAuth error taxonomy for the WeChat Publisher MCP server.

Every error carries its RFC 6749 error code so the provider can hand it to
the SDK's token endpoint as a ``TokenError`` unchanged.
"""


# ========================================
# Base Exceptions
# ========================================


class OAuthError(Exception):
    """Base exception for all OAuth errors surfaced to clients."""

    error = "server_error"

    def __init__(self, description: str = ""):
        self.description = description
        super().__init__(description or self.error)


# ========================================
# Request Exceptions
# ========================================


class ValidationError(OAuthError):
    """Malformed client registration metadata."""

    error = "invalid_client_metadata"


class InvalidScope(OAuthError):
    """Requested scope exceeds what the client or grant allows."""

    error = "invalid_scope"


# ========================================
# Grant Exceptions
# ========================================


class InvalidGrant(OAuthError):
    """Authorization code or refresh token is unknown, expired or mismatched."""

    error = "invalid_grant"


class InvalidTarget(OAuthError):
    """Resource audience rejected under strict resource validation."""

    error = "invalid_target"


# ========================================
# Bearer Token Exceptions
# ========================================


class InvalidToken(OAuthError):
    """Bearer token is absent from the store or not an access token."""

    error = "invalid_token"


class TokenExpired(InvalidToken):
    """Bearer token was found but is past its expiry."""


# ========================================
# Storage Exceptions
# ========================================


class StorageError(OAuthError):
    """Persisting OAuth state to disk failed."""
