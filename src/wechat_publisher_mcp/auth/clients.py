"""Durable registry of OAuth clients."""

import asyncio
import logging
import secrets
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from mcp.shared.auth import OAuthClientInformationFull, OAuthClientMetadata
from pydantic import ValidationError as PydanticValidationError

from ..core.constants import (
    SUPPORTED_GRANT_TYPES,
    SUPPORTED_RESPONSE_TYPES,
    SUPPORTED_TOKEN_AUTH_METHODS,
)
from ..core.exceptions import ValidationError
from ..utils.async_helpers import KeyedLock
from .persistence import JsonFileStore

logger = logging.getLogger(__name__)


def _describe_validation_error(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]


class ClientRegistry:
    """Registered clients, loaded from disk on first use and cached.

    Every registration updates the in-memory map and rewrites the whole
    clients file. Registered clients are never modified.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        clock: Callable[[], float] = time.time,
        supported_scopes: Iterable[str] | None = None,
    ):
        self._file = JsonFileStore(path, "clients")
        self._clock = clock
        self.supported_scopes = list(supported_scopes) if supported_scopes else []
        self._clients: dict[str, OAuthClientInformationFull] = {}
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self._version = 0
        self._locks = KeyedLock()

    def ensure_loaded(self) -> None:
        if self._loaded:
            return
        for client_id, data in self._file.read().items():
            try:
                self._clients[client_id] = OAuthClientInformationFull.model_validate(data)
            except PydanticValidationError as e:
                logger.warning("Skipping malformed client %s: %s", client_id, e)
        self._loaded = True
        logger.info("Loaded %d OAuth clients from storage", len(self._clients))

    async def ensure_loaded_async(self) -> None:
        """Load in a worker thread; concurrent first callers share one load."""
        if self._loaded:
            return
        async with self._load_lock:
            if not self._loaded:
                await asyncio.to_thread(self.ensure_loaded)

    def get(self, client_id: str) -> OAuthClientInformationFull | None:
        self.ensure_loaded()
        return self._clients.get(client_id)

    def _validate(self, client: OAuthClientMetadata | OAuthClientInformationFull) -> None:
        if not client.redirect_uris:
            raise ValidationError("redirect_uris must contain at least one URI")
        for uri in client.redirect_uris:
            if uri.fragment:
                msg = f"Redirect URI must not contain a fragment: {uri}"
                raise ValidationError(msg)

        if not client.grant_types:
            raise ValidationError("grant_types must contain at least one grant type")
        unsupported = set(client.grant_types) - set(SUPPORTED_GRANT_TYPES)
        if unsupported:
            msg = f"Unsupported grant types: {', '.join(sorted(unsupported))}"
            raise ValidationError(msg)

        unsupported = set(client.response_types) - set(SUPPORTED_RESPONSE_TYPES)
        if unsupported:
            msg = f"Unsupported response types: {', '.join(sorted(unsupported))}"
            raise ValidationError(msg)

        method = client.token_endpoint_auth_method
        if method is not None and method not in SUPPORTED_TOKEN_AUTH_METHODS:
            msg = f"Unsupported token_endpoint_auth_method: {method}"
            raise ValidationError(msg)

        if client.scope is not None and self.supported_scopes:
            unknown = [s for s in client.scope.split() if s not in self.supported_scopes]
            if unknown:
                msg = f"Requested scopes are not valid: {', '.join(unknown)}"
                raise ValidationError(msg)

    def _assign_credentials(self, metadata: OAuthClientMetadata) -> OAuthClientInformationFull:
        method = metadata.token_endpoint_auth_method or "client_secret_post"
        client_secret = None if method == "none" else secrets.token_urlsafe(32)
        scope = metadata.scope
        if scope is None and self.supported_scopes:
            scope = " ".join(self.supported_scopes)
        return OAuthClientInformationFull.model_validate(
            {
                **metadata.model_dump(),
                "token_endpoint_auth_method": method,
                "scope": scope,
                "client_id": f"mcp_{secrets.token_urlsafe(16)}",
                "client_secret": client_secret,
                "client_id_issued_at": int(self._clock()),
                "client_secret_expires_at": 0 if client_secret else None,
            }
        )

    async def register(
        self,
        metadata: OAuthClientInformationFull | OAuthClientMetadata | dict[str, Any],
    ) -> OAuthClientInformationFull:
        """Register a client and persist the full client map.

        A full client record (as built by the registration endpoint) keeps
        its ``client_id`` and ``client_secret``; bare metadata is assigned
        fresh credentials.

        Returns:
            The stored client including its credentials

        Raises:
            ValidationError: If the metadata is malformed or the id is taken
            StorageError: If the client map could not be written
        """
        if isinstance(metadata, dict):
            try:
                metadata = OAuthClientMetadata.model_validate(metadata)
            except PydanticValidationError as e:
                raise ValidationError(_describe_validation_error(e)) from e

        self._validate(metadata)
        if isinstance(metadata, OAuthClientInformationFull):
            client = metadata
        else:
            client = self._assign_credentials(metadata)

        await self.ensure_loaded_async()

        async with self._locks.hold(client.client_id):
            if client.client_id in self._clients:
                msg = f"Client ID already registered: {client.client_id}"
                raise ValidationError(msg)
            self._clients[client.client_id] = client
            self._version += 1
            await self._persist()

        logger.info("Registered client: %s (%s)", client.client_id, client.client_name or "unnamed")
        return client

    async def _persist(self) -> None:
        entries = {
            cid: client.model_dump(mode="json", exclude_none=True)
            for cid, client in self._clients.items()
        }
        await self._file.write_async(entries, self._version)

    def __len__(self) -> int:
        self.ensure_loaded()
        return len(self._clients)
