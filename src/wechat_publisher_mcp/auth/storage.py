"""Pydantic models for OAuth entity storage.

Clients are stored as the MCP SDK's ``OAuthClientInformationFull``; this
module adds the records the SDK leaves to the provider: in-flight
authorization codes and issued tokens.
"""

from enum import Enum

from mcp.server.auth.provider import AuthorizationCode
from pydantic import BaseModel, Field


class StoredAuthCode(AuthorizationCode):
    """Authorization code held in memory until exchanged or expired.

    ``expires_at`` (epoch seconds) is ``created_at`` plus the code TTL.
    """

    created_at: float
    state: str | None = None


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class Token(BaseModel):
    """Access or refresh token stored in persistent storage.

    ``expires_at`` is in epoch milliseconds; ``linked_token`` points at the
    other member of the access/refresh pair.
    """

    token: str
    type: TokenType
    client_id: str
    scopes: list[str] = Field(default_factory=list)
    expires_at: int
    resource: str | None = None
    linked_token: str | None = None

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires_at
