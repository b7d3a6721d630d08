"""
Main entry point for the WeChat Publisher MCP server.

Builds the FastMCP server with the persistent OAuth provider as its auth, so
the MCP transport is protected by bearer tokens the provider issued.
"""

import asyncio
import sys
import traceback

from fastmcp import FastMCP

from .auth import TokenLifecycleManager
from .auth.setup import setup_oauth2_routes
from .config import Settings, get_settings
from .core import RESOURCE_NAME, logger


def create_mcp_server(settings: Settings) -> tuple[FastMCP, TokenLifecycleManager | None]:
    """
    Create the FastMCP server and, when enabled, its OAuth provider.

    Returns:
        The MCP server and the provider (None when OAuth2 is disabled)
    """
    provider: TokenLifecycleManager | None = None

    if settings.use_oauth2:
        logger.info("Configuring OAuth Provider with Dynamic Client Registration...")
        provider = TokenLifecycleManager(
            base_url=settings.public_base_url or "",
            storage_dir=settings.oauth_storage_dir,
            issuer_url=settings.oauth2_issuer,
            scopes_supported=settings.get_oauth2_scopes_list(),
            required_scopes=settings.get_oauth2_required_scopes_list(),
            strict_resource=settings.oauth_strict_resource,
        )
        logger.info("✓ OAuth Provider enabled")
        logger.info(f"  - Issuer: {provider.issuer_url}")
        logger.info(f"  - Valid scopes: {', '.join(settings.get_oauth2_scopes_list())}")
        logger.info(
            f"  - Required scopes: {', '.join(settings.get_oauth2_required_scopes_list()) or 'none'}"
        )
        logger.info(f"  - Strict resource: {settings.oauth_strict_resource}")
        logger.info("  - Endpoints:")
        logger.info("    - /.well-known/oauth-authorization-server")
        logger.info("    - /register (DCR)")
        logger.info("    - /authorize")
        logger.info("    - /token")
        logger.info("    - /revoke")
    else:
        logger.warning("⚠ No authentication configured - server is open to all!")
        logger.warning("  Set USE_OAUTH2=true to require OAuth2 bearer tokens")

    mcp = FastMCP(RESOURCE_NAME, auth=provider)
    if provider is not None:
        setup_oauth2_routes(mcp, provider)

    logger.info(
        f"FastMCP server initialized successfully (auth mode: {'oauth2' if provider else 'none'})"
    )
    return mcp, provider


async def main() -> None:
    """
    Main async function to run the MCP server.
    """
    settings = get_settings()
    host = settings.host
    port = settings.port
    logger.info(f"Host: {host}, Port: {port}")
    logger.debug("Settings: %s", settings.to_dict())

    try:
        mcp, provider = create_mcp_server(settings)
        if provider is not None:
            await provider.load()

        transport = settings.transport
        logger.info(f"Transport mode: {transport}")

        # Normalize transport names to FastMCP Transport literals
        transport_map = {
            "http": "streamable-http",
            "streamable-http": "streamable-http",
            "sse": "sse",
            "stdio": "stdio",
        }
        fastmcp_transport = transport_map.get(transport, "stdio")

        if fastmcp_transport in ("streamable-http", "sse"):
            logger.info(
                "Setting up %s server on %s:%s...", fastmcp_transport, host, port
            )
            await mcp.run_async(
                transport=fastmcp_transport,  # type: ignore[arg-type]
                host=host,
                port=int(port),
            )
        else:
            logger.info("Setting up stdio server...")
            await mcp.run_async(transport="stdio")

    except Exception as e:
        logger.error(f"Error in main function: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise


def run() -> None:
    """Console script entry point."""
    try:
        logger.info("Starting WeChat Publisher MCP server...")
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped")
    except Exception:
        sys.exit(1)


if __name__ == "__main__":
    run()
