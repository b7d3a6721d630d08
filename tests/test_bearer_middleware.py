"""
Bearer authentication tests.

The provider plugs into the MCP SDK's bearer backend; these tests drive it
through the server's protected ``/mcp`` path and through a small app built
from the provider's middleware.

Tests:
1. Unauthorized access (no token, unknown token, expired token)
2. Authorized access with a token from the OAuth flow
3. Required scopes
4. Public OAuth paths bypass authentication
"""

import pytest
from fastmcp.server.auth.middleware import RequireAuthMiddleware
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from wechat_publisher_mcp.auth import TokenLifecycleManager
from wechat_publisher_mcp.auth.setup import build_oauth2_routes

from oauth_helpers import ISSUER


async def whoami(scope, receive, send):
    access_token = scope["user"].access_token
    response = JSONResponse(
        {"client_id": access_token.client_id, "scopes": access_token.scopes}
    )
    await response(scope, receive, send)


def build_client(provider: TokenLifecycleManager, required_scopes=None) -> TestClient:
    """OAuth routes plus one protected endpoint behind the provider's middleware."""
    routes = list(provider.get_routes("/mcp"))
    routes.extend(
        Route(path, endpoint, methods=methods)
        for path, methods, endpoint in build_oauth2_routes(provider)
    )
    routes.append(
        Route(
            "/whoami",
            endpoint=RequireAuthMiddleware(whoami, required_scopes or []),
            methods=["GET"],
        )
    )
    return TestClient(Starlette(routes=routes, middleware=provider.get_middleware()))


@pytest.fixture
def protected_client(provider):
    return build_client(provider)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


class TestUnauthorizedAccess:
    """Requests without a usable token."""

    def test_missing_token_on_mcp_path(self, http_client):
        """No Authorization header returns 401 with a discovery hint."""
        response = http_client.post("/mcp", json={})

        assert response.status_code == 401
        challenge = response.headers["www-authenticate"]
        assert challenge.startswith("Bearer")
        assert 'resource_metadata="' in challenge
        assert f"{ISSUER}/.well-known/oauth-protected-resource" in challenge

    def test_unknown_token_on_mcp_path(self, http_client):
        """A token the server never issued is rejected."""
        response = http_client.post("/mcp", json={}, headers=bearer("access_bogus"))

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"

    def test_non_bearer_scheme(self, protected_client):
        """Basic credentials are not accepted on protected paths."""
        response = protected_client.get("/whoami", headers={"Authorization": "Basic abc"})
        assert response.status_code == 401

    def test_refresh_token_is_rejected(self, protected_client, obtain_tokens):
        """Refresh tokens cannot be used as bearer tokens."""
        _, tokens = obtain_tokens(protected_client)

        response = protected_client.get("/whoami", headers=bearer(tokens["refresh_token"]))
        assert response.status_code == 401

    def test_expired_token(self, protected_client, obtain_tokens, provider, clock):
        """An expired access token is rejected and removed."""
        _, tokens = obtain_tokens(protected_client)
        clock.advance(3600)

        response = protected_client.get("/whoami", headers=bearer(tokens["access_token"]))

        assert response.status_code == 401
        assert provider.tokens.get(tokens["access_token"]) is None

    def test_revoked_token(self, protected_client, obtain_tokens):
        _, tokens = obtain_tokens(protected_client)
        protected_client.post("/oauth/revoke", data={"token": tokens["access_token"]})

        response = protected_client.get("/whoami", headers=bearer(tokens["access_token"]))
        assert response.status_code == 401


class TestAuthorizedAccess:
    """Requests with valid tokens."""

    def test_valid_token(self, protected_client, obtain_tokens):
        """A token from the OAuth flow reaches the endpoint."""
        registration, tokens = obtain_tokens(protected_client, scope="mcp:tools")

        response = protected_client.get("/whoami", headers=bearer(tokens["access_token"]))

        assert response.status_code == 200
        assert response.json() == {
            "client_id": registration["client_id"],
            "scopes": ["mcp:tools"],
        }

    def test_missing_required_scope(self, provider, obtain_tokens):
        """Tokens without a required scope get 403 insufficient_scope."""
        client = build_client(provider, required_scopes=["mcp:write"])
        _, tokens = obtain_tokens(client, scope="mcp:read")

        response = client.get("/whoami", headers=bearer(tokens["access_token"]))

        assert response.status_code == 403
        assert response.json()["error"] == "insufficient_scope"

    def test_required_scope_present(self, provider, obtain_tokens):
        client = build_client(provider, required_scopes=["mcp:write"])
        _, tokens = obtain_tokens(client, scope="mcp:write mcp:read")

        response = client.get("/whoami", headers=bearer(tokens["access_token"]))
        assert response.status_code == 200


class TestPublicPaths:
    """OAuth endpoints stay reachable without a token."""

    @pytest.mark.parametrize(
        "path",
        [
            "/health",
            "/.well-known/oauth-authorization-server",
            "/.well-known/oauth-protected-resource/mcp",
        ],
    )
    def test_get_without_token(self, http_client, path):
        assert http_client.get(path).status_code == 200

    def test_revoke_without_token(self, http_client):
        assert http_client.post("/oauth/revoke", data={"token": "x"}).status_code == 200
