"""WeChat Publisher MCP server: OAuth 2.1 authorization and token lifecycle."""

__version__ = "1.0.0"
