"""OAuth authentication module with persistent storage.

This module provides the OAuth 2.1 provider of the WeChat Publisher MCP
server: client registration, authorization codes, token issuance, rotation,
verification and revocation, persisted as JSON files. The HTTP endpoints are
served by the MCP SDK from the provider.
"""

from .clients import ClientRegistry
from .codes import CodeIssuer
from .persistence import JsonFileStore
from .provider import TokenLifecycleManager, make_resource_validator
from .storage import StoredAuthCode, Token, TokenType
from .tokens import TokenStore

__all__ = [
    "ClientRegistry",
    "CodeIssuer",
    "JsonFileStore",
    "StoredAuthCode",
    "Token",
    "TokenLifecycleManager",
    "TokenStore",
    "TokenType",
    "make_resource_validator",
]
