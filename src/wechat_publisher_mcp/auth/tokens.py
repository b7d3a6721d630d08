"""Durable store of issued access and refresh tokens."""

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from .persistence import JsonFileStore
from .storage import Token

logger = logging.getLogger(__name__)


class TokenStore:
    """In-memory token map backed by a JSON file.

    The map is the source of truth while the process runs; :meth:`persist`
    rewrites the whole file after each mutation that must survive a restart.
    Expired tokens are dropped when the file is loaded and otherwise removed
    lazily by whoever observes them.
    """

    def __init__(self, path: str | Path, *, clock: Callable[[], float] = time.time):
        self._file = JsonFileStore(path, "tokens")
        self._clock = clock
        self._tokens: dict[str, Token] = {}
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self._version = 0

    @property
    def path(self) -> Path:
        return self._file.path

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def load_from_disk(self) -> int:
        """Replace the in-memory map with the persisted tokens that are still live.

        Returns:
            Number of live tokens loaded
        """
        now_ms = self._now_ms()
        tokens: dict[str, Token] = {}
        dropped = 0

        for value, data in self._file.read().items():
            try:
                token = Token.model_validate(data)
            except PydanticValidationError as e:
                logger.warning("Skipping malformed token entry: %s", e)
                continue
            if token.is_expired(now_ms):
                dropped += 1
                continue
            tokens[value] = token

        self._tokens = tokens
        self._loaded = True
        logger.info("Loaded %d tokens from storage (%d expired dropped)", len(tokens), dropped)
        return len(tokens)

    def ensure_loaded(self) -> None:
        """Load from disk once per process lifetime."""
        if not self._loaded:
            self.load_from_disk()

    async def ensure_loaded_async(self) -> None:
        """Like :meth:`ensure_loaded`, reading the file in a worker thread.

        Concurrent first callers wait for a single load.
        """
        if self._loaded:
            return
        async with self._load_lock:
            if not self._loaded:
                await asyncio.to_thread(self.load_from_disk)

    def get(self, value: str) -> Token | None:
        return self._tokens.get(value)

    def put(self, token: Token) -> None:
        self._tokens[token.token] = token
        self._version += 1

    def delete(self, value: str) -> bool:
        """Remove a token. Deleting an absent token is a no-op."""
        if self._tokens.pop(value, None) is None:
            return False
        self._version += 1
        return True

    def snapshot(self) -> dict[str, Token]:
        """Copy of the live token map."""
        return dict(self._tokens)

    async def persist(self) -> None:
        """Overwrite the token file with the current map.

        Raises:
            StorageError: If the file could not be written
        """
        version = self._version
        entries = {value: token.model_dump(mode="json") for value, token in self._tokens.items()}
        await self._file.write_async(entries, version)

    def __contains__(self, value: object) -> bool:
        return value in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
