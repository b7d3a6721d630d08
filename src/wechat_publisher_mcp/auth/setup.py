"""
OAuth2 route registration for the FastMCP server.

The provider's own routes (discovery, registration, authorization, token,
revocation) are mounted by FastMCP from ``FastMCP(auth=provider)``; this
module registers the extra endpoints from the routes module as custom routes.

Architecture:
- Separates route registration (this module) from route handlers (routes.py)
- Creates closure adapters to inject the provider dependency
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from starlette.requests import Request
from starlette.responses import Response

from ..core import logger, track_request
from ..core.constants import HEALTH_PATH, INTROSPECTION_PATH, REVOCATION_PATH
from .routes import health_check, introspect_token, revoke_token

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from .provider import TokenLifecycleManager

Endpoint = Callable[[Request], Awaitable[Response]]


def build_oauth2_routes(
    provider: "TokenLifecycleManager",
) -> list[tuple[str, list[str], Endpoint]]:
    """
    Build the custom route table as ``(path, methods, endpoint)`` tuples.
    """

    @track_request("introspect")
    async def _introspect_token(request):
        """Token introspection (RFC 7662)."""
        return await introspect_token(request, provider)

    @track_request("revoke")
    async def _revoke_token(request):
        """Token revocation (RFC 7009)."""
        return await revoke_token(request, provider)

    return [
        (INTROSPECTION_PATH, ["POST"], _introspect_token),
        (REVOCATION_PATH, ["POST"], _revoke_token),
        (HEALTH_PATH, ["GET"], health_check),
    ]


def setup_oauth2_routes(mcp: "FastMCP", provider: "TokenLifecycleManager") -> None:
    """
    Register the custom OAuth2 endpoints with FastMCP server.

    Registers:
    - /oauth/introspect (RFC 7662)
    - /oauth/revoke (RFC 7009, no client authentication)
    - /health

    Args:
        mcp: FastMCP server instance
        provider: Provider backing the endpoints

    Example:
        >>> from fastmcp import FastMCP
        >>> from wechat_publisher_mcp.auth import TokenLifecycleManager
        >>> from wechat_publisher_mcp.auth.setup import setup_oauth2_routes
        >>>
        >>> provider = TokenLifecycleManager(base_url="https://example.com")
        >>> mcp = FastMCP("WeChat Publisher MCP Server", auth=provider)
        >>> setup_oauth2_routes(mcp, provider)
    """
    routes = build_oauth2_routes(provider)
    for path, methods, endpoint in routes:
        mcp.custom_route(path, methods=methods)(endpoint)

    logger.info("✓ OAuth2 endpoints registered (%d routes)", len(routes))
