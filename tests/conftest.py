"""
Shared pytest fixtures for the OAuth tests.

Time is driven by ``FakeClock`` so expiry is deterministic, and every test
gets its own storage directory under ``tmp_path``.
"""

import os
import sys

import pytest
from fastmcp import FastMCP
from starlette.testclient import TestClient

# Add src and the test helpers to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))

from wechat_publisher_mcp.auth import TokenLifecycleManager
from wechat_publisher_mcp.auth.setup import setup_oauth2_routes
from wechat_publisher_mcp.core import RESOURCE_NAME

from oauth_helpers import ISSUER, FakeClock, make_pkce_pair, query_of


@pytest.fixture
def clock():
    """Fake clock starting now."""
    return FakeClock()


@pytest.fixture
def storage_dir(tmp_path):
    """Per-test storage directory (created lazily by the first write)."""
    return tmp_path / "data"


@pytest.fixture
def provider(storage_dir, clock):
    """OAuth provider with file storage and a fake clock."""
    return TokenLifecycleManager(base_url=ISSUER, storage_dir=storage_dir, clock=clock)


@pytest.fixture
def mcp_server(provider):
    """FastMCP server protected by the provider, with the custom OAuth routes."""
    mcp = FastMCP(RESOURCE_NAME, auth=provider)
    setup_oauth2_routes(mcp, provider)
    return mcp


@pytest.fixture
def http_client(mcp_server):
    """Test client for the server's HTTP app (lifespan not started)."""
    return TestClient(mcp_server.http_app())


@pytest.fixture
def obtain_tokens():
    """Run register -> authorize -> token over HTTP and return the results."""

    def _obtain_tokens(client: TestClient, scope: str | None = None, resource: str | None = None):
        response = client.post(
            "/register",
            json={"redirect_uris": ["http://cb"], "client_name": "Test Client"},
        )
        assert response.status_code == 201
        registration = response.json()

        verifier, challenge = make_pkce_pair()
        params = {
            "response_type": "code",
            "client_id": registration["client_id"],
            "redirect_uri": "http://cb",
            "code_challenge": challenge,
            "code_challenge_method": "S256",
            "state": "xyz",
        }
        if scope is not None:
            params["scope"] = scope
        if resource is not None:
            params["resource"] = resource
        redirect = client.get("/authorize", params=params, follow_redirects=False)
        code = query_of(redirect.headers["location"])["code"]

        tokens = client.post(
            "/token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": verifier,
                "redirect_uri": "http://cb",
                "client_id": registration["client_id"],
                "client_secret": registration["client_secret"],
            },
        ).json()
        return registration, tokens

    return _obtain_tokens
