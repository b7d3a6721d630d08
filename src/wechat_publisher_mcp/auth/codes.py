"""Issuer of one-time authorization codes.

Codes live in memory only and are lost on restart. Expiry is enforced when a
code is read, so no timer is needed: a read after the TTL fails exactly as it
would if the code had been deleted on schedule.
"""

import logging
import secrets
import time
from collections.abc import Callable

from mcp.server.auth.provider import AuthorizationParams

from ..core.constants import AUTHORIZATION_CODE_TTL_SECONDS
from ..core.exceptions import InvalidGrant
from .storage import StoredAuthCode

logger = logging.getLogger(__name__)


class CodeIssuer:
    """Issues and redeems single-use authorization codes."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        ttl_seconds: int = AUTHORIZATION_CODE_TTL_SECONDS,
    ):
        self._clock = clock
        self.ttl_seconds = ttl_seconds
        self._codes: dict[str, StoredAuthCode] = {}

    def _is_expired(self, record: StoredAuthCode) -> bool:
        return self._clock() >= record.expires_at

    def issue(self, client_id: str, params: AuthorizationParams) -> StoredAuthCode:
        """Record a new code bound to ``client_id`` and the request parameters."""
        self.purge_expired()

        code = f"authcode_{secrets.token_urlsafe(32)}"
        while code in self._codes:
            code = f"authcode_{secrets.token_urlsafe(32)}"

        now = self._clock()
        record = StoredAuthCode(
            code=code,
            client_id=client_id,
            scopes=list(params.scopes or []),
            code_challenge=params.code_challenge,
            redirect_uri=params.redirect_uri,
            redirect_uri_provided_explicitly=params.redirect_uri_provided_explicitly,
            resource=params.resource,
            state=params.state,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        self._codes[code] = record
        logger.debug("Issued authorization code for client %s", client_id)
        return record

    def redeem(self, code: str) -> StoredAuthCode:
        """Return the stored record without consuming it.

        Raises:
            InvalidGrant: If the code is unknown, already exchanged or expired
        """
        record = self._codes.get(code)
        if record is None:
            raise InvalidGrant("Invalid authorization code")
        if self._is_expired(record):
            del self._codes[code]
            raise InvalidGrant("Authorization code has expired")
        return record

    def consume(self, code: str) -> StoredAuthCode | None:
        return self._codes.pop(code, None)

    def purge_expired(self) -> int:
        """Drop every expired code. Returns how many were removed."""
        expired = [code for code, record in self._codes.items() if self._is_expired(record)]
        for code in expired:
            del self._codes[code]
        if expired:
            logger.debug("Purged %d expired authorization codes", len(expired))
        return len(expired)

    def __contains__(self, code: object) -> bool:
        return code in self._codes

    def __len__(self) -> int:
        return len(self._codes)
