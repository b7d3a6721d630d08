"""Persistent OAuth Provider implementation.

The MCP SDK serves the OAuth endpoints (registration, authorization, token,
revocation, discovery) and bearer authentication; this provider supplies the
storage and token lifecycle behind them.

Flow per grant::

    authorize()  -> code issued (in memory, 10 minutes)
    exchange()   -> code consumed, linked access/refresh pair issued
    refresh()    -> old access token retired, new one linked to the same refresh token
    verify()     -> access token checked; expired ones removed on sight
    revoke()     -> token and its linked counterpart removed

Mutations of one token family are serialized with a per-key lock keyed by the
refresh token value, so concurrent refreshes of the same refresh token cannot
leave two live access tokens behind.
"""

import logging
import secrets
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from fastmcp.server.auth import OAuthProvider
from fastmcp.server.auth.auth import AccessToken
from mcp.server.auth.handlers.metadata import MetadataHandler
from mcp.server.auth.provider import (
    AuthorizationParams,
    RefreshToken,
    RegistrationError,
    TokenError,
    construct_redirect_uri,
)
from mcp.server.auth.routes import (
    build_metadata,
    cors_middleware,
    create_protected_resource_routes,
)
from mcp.server.auth.settings import ClientRegistrationOptions, RevocationOptions
from mcp.shared.auth import OAuthClientInformationFull, OAuthMetadata, OAuthToken
from pydantic import AnyHttpUrl
from starlette.routing import Route

from ..core.constants import (
    ACCESS_TOKEN_TTL_SECONDS,
    CLIENTS_FILENAME,
    DEFAULT_SCOPES,
    INTROSPECTION_PATH,
    REFRESH_TOKEN_TTL_SECONDS,
    RESOURCE_NAME,
    TOKENS_FILENAME,
)
from ..core.exceptions import (
    InvalidGrant,
    InvalidScope,
    InvalidTarget,
    InvalidToken,
    StorageError,
    TokenExpired,
    ValidationError,
)
from ..utils.async_helpers import KeyedLock
from .clients import ClientRegistry
from .codes import CodeIssuer
from .storage import StoredAuthCode, Token, TokenType
from .tokens import TokenStore

logger = logging.getLogger(__name__)

ResourceValidator = Callable[[str | None], bool]

AUTHORIZATION_SERVER_METADATA_PATH = "/.well-known/oauth-authorization-server"
PROTECTED_RESOURCE_METADATA_PATH = "/.well-known/oauth-protected-resource"


def _origin(url: str) -> str | None:
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def make_resource_validator(resource_url: str) -> ResourceValidator:
    """Build a validator accepting only resources on ``resource_url``'s origin.

    A grant without a resource is rejected.
    """
    expected = _origin(resource_url)

    def validate(resource: str | None) -> bool:
        if not resource:
            return False
        return _origin(resource) == expected

    return validate


class TokenLifecycleManager(OAuthProvider):
    """OAuth Provider that issues, rotates, verifies and revokes tokens.

    Clients and tokens are stored as JSON files under ``storage_dir`` and
    survive restarts; authorization codes are kept in memory.
    """

    def __init__(
        self,
        *,
        base_url: str,
        storage_dir: str | Path = "./data",
        issuer_url: str | None = None,
        scopes_supported: Iterable[str] | None = None,
        required_scopes: list[str] | None = None,
        strict_resource: bool = False,
        resource_name: str = RESOURCE_NAME,
        clock: Callable[[], float] = time.time,
        access_token_ttl: int = ACCESS_TOKEN_TTL_SECONDS,
        refresh_token_ttl: int = REFRESH_TOKEN_TTL_SECONDS,
    ) -> None:
        """Initialize OAuth provider with persistent storage.

        Args:
            base_url: Public URL of the MCP server; OAuth endpoints live here
            storage_dir: Directory holding the clients and tokens files
            issuer_url: OAuth issuer URL (defaults to base_url)
            scopes_supported: Scopes clients may register and request
            required_scopes: Scopes every bearer token must carry
            strict_resource: Require grants to target ``base_url``'s origin
            resource_name: Human readable name of the protected resource
            clock: Returns the current time in epoch seconds
            access_token_ttl: Access token lifetime in seconds
            refresh_token_ttl: Refresh token lifetime in seconds
        """
        scopes = list(scopes_supported or DEFAULT_SCOPES)
        super().__init__(
            base_url=base_url,
            issuer_url=issuer_url,
            client_registration_options=ClientRegistrationOptions(
                enabled=True,
                valid_scopes=scopes,
                default_scopes=scopes,
            ),
            revocation_options=RevocationOptions(enabled=True),
            required_scopes=required_scopes,
        )

        self.storage_dir = Path(storage_dir)
        self.resource_name = resource_name
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self._clock = clock
        self._validate_resource = make_resource_validator(base_url) if strict_resource else None
        self._locks = KeyedLock()

        self.clients = ClientRegistry(
            self.storage_dir / CLIENTS_FILENAME,
            clock=clock,
            supported_scopes=scopes,
        )
        self.codes = CodeIssuer(clock=clock)
        self.tokens = TokenStore(self.storage_dir / TOKENS_FILENAME, clock=clock)

        logger.info(
            "Initialized TokenLifecycleManager with storage at %s (strict_resource=%s)",
            self.storage_dir,
            strict_resource,
        )

    async def load(self) -> None:
        """Load persisted clients and tokens eagerly."""
        await self.clients.ensure_loaded_async()
        await self.tokens.ensure_loaded_async()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _url(self, path: str) -> str:
        return str(self.base_url).rstrip("/") + path

    @staticmethod
    def _family_key(record: Token) -> str:
        if record.type is TokenType.ACCESS and record.linked_token:
            return record.linked_token
        return record.token

    def _new_access_token(
        self,
        client_id: str,
        scopes: list[str],
        resource: str | None,
        refresh_token: str,
        now_ms: int,
    ) -> Token:
        return Token(
            token=f"access_{secrets.token_urlsafe(32)}",
            type=TokenType.ACCESS,
            client_id=client_id,
            scopes=scopes,
            expires_at=now_ms + self.access_token_ttl * 1000,
            resource=resource,
            linked_token=refresh_token,
        )

    async def _persist_quietly(self) -> None:
        """Persist a lazy-expiry removal; the next load drops the entry anyway."""
        try:
            await self.tokens.persist()
        except StorageError as e:
            logger.warning("Expired token removal was not persisted: %s", e)

    async def _remove_expired(self, record: Token) -> None:
        async with self._locks.hold(self._family_key(record)):
            if self.tokens.delete(record.token):
                await self._persist_quietly()
                logger.info(
                    "Expired %s token removed for client %s", record.type.value, record.client_id
                )

    # ========== Discovery Metadata ==========

    def get_authorization_server_metadata(self) -> OAuthMetadata:
        """Authorization Server Metadata (RFC 8414), advertising introspection."""
        metadata = build_metadata(
            self.base_url,
            self.service_documentation_url,
            self.client_registration_options or ClientRegistrationOptions(),
            self.revocation_options or RevocationOptions(),
        )
        metadata.issuer = self.issuer_url
        metadata.introspection_endpoint = AnyHttpUrl(self._url(INTROSPECTION_PATH))
        return metadata

    def get_routes(self, mcp_path: str | None = None) -> list[Route]:
        """SDK OAuth routes with this server's discovery documents."""
        routes = []
        for route in super().get_routes(mcp_path):
            if isinstance(route, Route) and route.path == AUTHORIZATION_SERVER_METADATA_PATH:
                handler = MetadataHandler(self.get_authorization_server_metadata())
                route = Route(
                    AUTHORIZATION_SERVER_METADATA_PATH,
                    endpoint=cors_middleware(handler.handle, ["GET", "OPTIONS"]),
                    methods=["GET", "OPTIONS"],
                )
            elif (
                isinstance(route, Route)
                and route.path.startswith(PROTECTED_RESOURCE_METADATA_PATH)
                and self._resource_url is not None
            ):
                route = create_protected_resource_routes(
                    resource_url=self._resource_url,
                    authorization_servers=[self.issuer_url],
                    scopes_supported=self.scopes_supported,
                    resource_name=self.resource_name,
                )[0]
            routes.append(route)
        return routes

    # ========== Client Management ==========

    async def get_client(self, client_id: str) -> OAuthClientInformationFull | None:
        """Retrieve client from persistent storage."""
        await self.clients.ensure_loaded_async()
        return self.clients.get(client_id)

    async def register_client(self, client_info: OAuthClientInformationFull) -> None:
        """Store client registration in persistent storage."""
        try:
            await self.clients.register(client_info)
        except ValidationError as e:
            raise RegistrationError(
                error="invalid_client_metadata", error_description=e.description
            ) from e

    # ========== Authorization Flow ==========

    async def authorize(
        self,
        client: OAuthClientInformationFull,
        params: AuthorizationParams,
    ) -> str:
        """Issue an authorization code and return the redirect URL carrying it."""
        record = self.codes.issue(client.client_id, params)
        logger.info("Authorization code issued for client %s", client.client_id)
        return construct_redirect_uri(
            str(params.redirect_uri), code=record.code, state=params.state
        )

    async def load_authorization_code(
        self,
        client: OAuthClientInformationFull,
        authorization_code: str,
    ) -> StoredAuthCode | None:
        """Read a code without consuming it.

        Unknown, expired and foreign codes all read as None.
        """
        try:
            record = self.codes.redeem(authorization_code)
        except InvalidGrant:
            return None
        if record.client_id != client.client_id:
            return None
        return record

    # ========== Token Exchange ==========

    async def exchange(
        self,
        client: OAuthClientInformationFull,
        code: str,
        code_verifier: str | None = None,
    ) -> OAuthToken:
        """Exchange an authorization code for a linked access/refresh pair.

        ``code_verifier`` is checked against the code's PKCE challenge by the
        token endpoint before this method runs.

        Raises:
            InvalidGrant: If the code is unknown, expired or owned by another client
            InvalidTarget: If the resource validator rejects the code's resource
            StorageError: If the new tokens could not be persisted
        """
        await self.tokens.ensure_loaded_async()

        async with self._locks.hold(f"code:{code}"):
            record = self.codes.redeem(code)
            if record.client_id != client.client_id:
                raise InvalidGrant("Authorization code was not issued to this client")
            resource = record.resource
            if self._validate_resource is not None and not self._validate_resource(resource):
                msg = f"Invalid resource: {resource}"
                raise InvalidTarget(msg)

            self.codes.consume(code)

            now_ms = self._now_ms()
            scopes = list(record.scopes)
            refresh_value = f"refresh_{secrets.token_urlsafe(32)}"
            access = self._new_access_token(
                client.client_id, scopes, resource, refresh_value, now_ms
            )
            refresh = Token(
                token=refresh_value,
                type=TokenType.REFRESH,
                client_id=client.client_id,
                scopes=scopes,
                expires_at=now_ms + self.refresh_token_ttl * 1000,
                resource=resource,
                linked_token=access.token,
            )
            self.tokens.put(access)
            self.tokens.put(refresh)
            await self.tokens.persist()

        logger.info("Issued tokens for client: %s", client.client_id)
        return OAuthToken(
            access_token=access.token,
            token_type="Bearer",
            expires_in=self.access_token_ttl,
            refresh_token=refresh.token,
            scope=" ".join(scopes),
        )

    async def exchange_authorization_code(
        self,
        client: OAuthClientInformationFull,
        authorization_code: StoredAuthCode,
    ) -> OAuthToken:
        """Exchange auth code for tokens."""
        try:
            return await self.exchange(client, authorization_code.code)
        except (InvalidGrant, InvalidTarget) as e:
            raise TokenError(error=e.error, error_description=e.description) from e

    # ========== Refresh Token ==========

    async def refresh(
        self,
        client: OAuthClientInformationFull,
        refresh_token: str,
        scopes: list[str] | None = None,
        resource: str | None = None,
    ) -> OAuthToken:
        """Rotate the access token linked to ``refresh_token``.

        The refresh token keeps its identity; only the access token changes.

        Raises:
            InvalidGrant: If the refresh token is unknown, expired or owned by another client
            InvalidScope: If ``scopes`` exceed the scopes originally granted
            StorageError: If the rotation could not be persisted
        """
        await self.tokens.ensure_loaded_async()

        async with self._locks.hold(refresh_token):
            record = self.tokens.get(refresh_token)
            if record is None or record.type is not TokenType.REFRESH:
                raise InvalidGrant("Invalid refresh token")
            if record.client_id != client.client_id:
                raise InvalidGrant("Refresh token was not issued to this client")

            now_ms = self._now_ms()
            if record.is_expired(now_ms):
                self.tokens.delete(refresh_token)
                await self._persist_quietly()
                logger.info("Expired refresh token removed for client %s", record.client_id)
                raise InvalidGrant("Refresh token has expired")

            if scopes is None:
                scopes = list(record.scopes)
            else:
                exceeding = [s for s in scopes if s not in record.scopes]
                if exceeding:
                    msg = f"Requested scopes were not originally granted: {' '.join(exceeding)}"
                    raise InvalidScope(msg)

            if record.linked_token:
                self.tokens.delete(record.linked_token)

            access = self._new_access_token(
                client.client_id,
                scopes,
                resource or record.resource,
                refresh_token,
                now_ms,
            )
            self.tokens.put(access)
            self.tokens.put(record.model_copy(update={"linked_token": access.token}))
            await self.tokens.persist()

        logger.info("Refreshed tokens for client: %s", client.client_id)
        return OAuthToken(
            access_token=access.token,
            token_type="Bearer",
            expires_in=self.access_token_ttl,
            refresh_token=refresh_token,
            scope=" ".join(scopes),
        )

    async def load_refresh_token(
        self,
        client: OAuthClientInformationFull,
        refresh_token: str,
    ) -> RefreshToken | None:
        """Load refresh token from storage. Expired ones are removed."""
        await self.tokens.ensure_loaded_async()

        record = self.tokens.get(refresh_token)
        if record is None or record.type is not TokenType.REFRESH:
            return None
        if record.client_id != client.client_id:
            return None
        if record.is_expired(self._now_ms()):
            await self._remove_expired(record)
            return None

        return RefreshToken(
            token=record.token,
            client_id=record.client_id,
            scopes=list(record.scopes),
            expires_at=record.expires_at // 1000,
            resource=record.resource,
        )

    async def exchange_refresh_token(
        self,
        client: OAuthClientInformationFull,
        refresh_token: RefreshToken,
        scopes: list[str],
    ) -> OAuthToken:
        """Exchange refresh token for new access token."""
        try:
            return await self.refresh(client, refresh_token.token, scopes or None)
        except (InvalidGrant, InvalidScope) as e:
            raise TokenError(error=e.error, error_description=e.description) from e

    # ========== Token Validation ==========

    async def verify(self, token: str) -> AccessToken:
        """Check a bearer access token.

        Raises:
            InvalidToken: If the token is unknown or not an access token
            TokenExpired: If the token has expired; it is removed first
        """
        await self.tokens.ensure_loaded_async()

        record = self.tokens.get(token)
        if record is None:
            raise InvalidToken("Invalid token")
        if record.type is not TokenType.ACCESS:
            raise InvalidToken("Token is not an access token")

        if record.is_expired(self._now_ms()):
            await self._remove_expired(record)
            raise TokenExpired("Token has expired")

        return AccessToken(
            token=record.token,
            client_id=record.client_id,
            scopes=list(record.scopes),
            expires_at=record.expires_at // 1000,
            resource=record.resource,
        )

    async def load_access_token(self, token: str) -> AccessToken | None:
        """Load and validate access token."""
        try:
            return await self.verify(token)
        except InvalidToken:
            return None

    async def introspect(self, token: str) -> dict[str, Any]:
        """Describe a token per RFC 7662. Never raises for bad tokens.

        Returns:
            ``{"active": False}`` or the active token's client, scope, expiry and audience
        """
        try:
            info = await self.verify(token)
        except InvalidToken:
            return {"active": False}

        response: dict[str, Any] = {
            "active": True,
            "client_id": info.client_id,
            "scope": " ".join(info.scopes),
            "exp": info.expires_at,
            "token_type": "bearer",
        }
        if info.resource:
            response["aud"] = info.resource
        return response

    # ========== Revocation ==========

    async def revoke(self, token: str) -> None:
        """Revoke a token and its linked counterpart.

        Unknown tokens are ignored and storage failures are only logged:
        revocation always appears successful to the caller.
        """
        await self.tokens.ensure_loaded_async()

        record = self.tokens.get(token)
        if record is None:
            logger.debug("Revocation requested for unknown token")
            return

        async with self._locks.hold(self._family_key(record)):
            record = self.tokens.get(token)
            if record is None:
                return
            self.tokens.delete(token)
            if record.linked_token:
                self.tokens.delete(record.linked_token)
            try:
                await self.tokens.persist()
            except StorageError as e:
                logger.error(
                    "Revocation for client %s was not persisted: %s", record.client_id, e
                )
                return

        logger.info("Revoked %s token for client: %s", record.type.value, record.client_id)

    async def revoke_token(self, token: AccessToken | RefreshToken) -> None:
        """Revoke a token loaded by the revocation endpoint."""
        await self.revoke(token.token)
