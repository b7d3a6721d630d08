"""
Tests for the client registry.
"""

import asyncio
import json

import pytest
from mcp.shared.auth import OAuthClientInformationFull

from wechat_publisher_mcp.auth.clients import ClientRegistry
from wechat_publisher_mcp.core.exceptions import ValidationError

SCOPES = ["mcp:tools", "mcp:read", "mcp:write"]


def full_client(client_id: str, **extra) -> OAuthClientInformationFull:
    return OAuthClientInformationFull(
        client_id=client_id,
        client_secret="fixed-secret",
        redirect_uris=["http://cb"],
        **extra,
    )


@pytest.fixture
def clients_path(tmp_path):
    return tmp_path / "oauth-clients.json"


@pytest.fixture
def registry(clients_path, clock):
    return ClientRegistry(clients_path, clock=clock, supported_scopes=SCOPES)


class TestRegister:
    """Client registration."""

    @pytest.mark.asyncio
    async def test_assigns_credentials_and_persists(self, registry, clients_path, clock):
        client = await registry.register({"redirect_uris": ["http://cb"]})

        assert client.client_id.startswith("mcp_")
        assert client.client_secret
        assert client.client_secret_expires_at == 0
        assert client.client_id_issued_at == int(clock())
        assert client.grant_types == ["authorization_code", "refresh_token"]
        assert client.token_endpoint_auth_method == "client_secret_post"

        document = json.loads(clients_path.read_text())
        stored = document["clients"][client.client_id]
        assert [uri.rstrip("/") for uri in stored["redirect_uris"]] == ["http://cb"]
        assert stored["client_secret"] == client.client_secret

    @pytest.mark.asyncio
    async def test_full_record_keeps_its_credentials(self, registry):
        client = await registry.register(full_client("fixed-id"))

        assert client.client_id == "fixed-id"
        assert client.client_secret == "fixed-secret"
        assert registry.get("fixed-id") == client

    @pytest.mark.asyncio
    async def test_public_client_has_no_secret(self, registry):
        client = await registry.register(
            {"redirect_uris": ["http://cb"], "token_endpoint_auth_method": "none"}
        )

        assert client.client_secret is None
        assert client.client_secret_expires_at is None

    @pytest.mark.asyncio
    async def test_scope_defaults_to_supported_scopes(self, registry):
        client = await registry.register({"redirect_uris": ["http://cb"]})
        assert client.scope == "mcp:tools mcp:read mcp:write"

    @pytest.mark.asyncio
    async def test_duplicate_client_id_rejected(self, registry):
        await registry.register(full_client("dup"))

        with pytest.raises(ValidationError, match="already registered"):
            await registry.register(full_client("dup"))

    @pytest.mark.asyncio
    async def test_concurrent_registrations_all_persist(self, registry, clients_path):
        clients = await asyncio.gather(
            *(registry.register({"redirect_uris": ["http://cb"]}) for _ in range(5))
        )

        document = json.loads(clients_path.read_text())
        assert set(document["clients"]) == {c.client_id for c in clients}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "metadata, message",
        [
            ({}, "redirect_uris"),
            ({"redirect_uris": []}, "redirect_uris"),
            ({"redirect_uris": ["http://cb"], "grant_types": []}, "at least one grant type"),
            ({"redirect_uris": ["http://cb"], "grant_types": ["password"]}, "Unsupported grant types"),
            ({"redirect_uris": ["http://cb"], "response_types": ["token"]}, "Unsupported response types"),
            (
                {"redirect_uris": ["http://cb"], "token_endpoint_auth_method": "private_key_jwt"},
                "token_endpoint_auth_method",
            ),
            ({"redirect_uris": ["http://cb"], "scope": "admin"}, "not valid"),
            ({"redirect_uris": ["not a uri"]}, "redirect_uris"),
            ({"redirect_uris": ["http://cb#frag"]}, "fragment"),
        ],
    )
    async def test_invalid_metadata(self, registry, clients_path, metadata, message):
        with pytest.raises(ValidationError, match=message) as exc_info:
            await registry.register(metadata)

        assert exc_info.value.error == "invalid_client_metadata"
        assert not clients_path.exists()


class TestLoad:
    """Load-once behaviour."""

    @pytest.mark.asyncio
    async def test_registered_clients_survive_restart(self, clients_path, clock):
        registry = ClientRegistry(clients_path, clock=clock)
        client = await registry.register({"redirect_uris": ["http://cb"]})

        restarted = ClientRegistry(clients_path, clock=clock)
        await restarted.ensure_loaded_async()
        assert restarted.get(client.client_id) == client

    @pytest.mark.asyncio
    async def test_file_is_read_only_once(self, clients_path, clock):
        registry = ClientRegistry(clients_path, clock=clock)
        await registry.register(full_client("first"))

        reader = ClientRegistry(clients_path, clock=clock)
        assert reader.get("first") is not None

        writer = ClientRegistry(clients_path, clock=clock)
        await writer.register(full_client("second"))

        assert reader.get("second") is None

    @pytest.mark.asyncio
    async def test_registration_keeps_previously_persisted_clients(self, clients_path, clock):
        await ClientRegistry(clients_path, clock=clock).register(full_client("old"))

        registry = ClientRegistry(clients_path, clock=clock)
        await registry.register(full_client("new"))

        document = json.loads(clients_path.read_text())
        assert set(document["clients"]) == {"old", "new"}

    def test_malformed_entries_are_skipped(self, clients_path, clock):
        clients_path.write_text(
            json.dumps(
                {
                    "clients": {
                        "bad": {"redirect_uris": ["http://cb"]},
                        "good": {"client_id": "good", "redirect_uris": ["http://cb"]},
                    }
                }
            )
        )

        registry = ClientRegistry(clients_path, clock=clock)

        assert registry.get("bad") is None
        assert registry.get("good") is not None
        assert len(registry) == 1
