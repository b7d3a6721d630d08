"""Constants for the WeChat Publisher MCP server."""

SERVER_NAME = "wechat-publisher-mcp"
RESOURCE_NAME = "WeChat Publisher MCP Server"

# Token lifetimes
AUTHORIZATION_CODE_TTL_SECONDS = 10 * 60
ACCESS_TOKEN_TTL_SECONDS = 60 * 60
REFRESH_TOKEN_TTL_SECONDS = 30 * 24 * 60 * 60

# Persisted state files, relative to the storage directory
CLIENTS_FILENAME = "oauth-clients.json"
TOKENS_FILENAME = "oauth-tokens.json"

DEFAULT_SCOPES = ("mcp:tools", "mcp:read", "mcp:write")

SUPPORTED_GRANT_TYPES = ("authorization_code", "refresh_token")
SUPPORTED_RESPONSE_TYPES = ("code",)
SUPPORTED_TOKEN_AUTH_METHODS = ("client_secret_post", "client_secret_basic", "none")

# Custom routes served next to the SDK's OAuth endpoints
INTROSPECTION_PATH = "/oauth/introspect"
REVOCATION_PATH = "/oauth/revoke"
HEALTH_PATH = "/health"
