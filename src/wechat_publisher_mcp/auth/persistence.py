"""Whole-file JSON persistence for OAuth state.

Each store owns one JSON document wrapped under a root key, for example
``{"tokens": {...}}``. Writes replace the file atomically: the payload is
written to a temporary file in the same directory and renamed over the
target, so a crash leaves either the old or the new document on disk.
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from ..core.exceptions import StorageError

logger = logging.getLogger(__name__)


class JsonFileStore:
    """Load and atomically save one JSON document."""

    def __init__(self, path: str | Path, root_key: str):
        self.path = Path(path)
        self.root_key = root_key
        self._write_lock = threading.Lock()
        self._written_version = -1

    def read(self) -> dict[str, Any]:
        """Return the mapping under the root key.

        A missing file is an empty store. An unreadable or corrupt file is
        logged and treated as empty so the server can still start.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No persisted %s at %s", self.root_key, self.path)
            return {}
        except OSError as e:
            logger.error("Failed to read %s from %s: %s", self.root_key, self.path, e)
            return {}

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Corrupt %s file %s: %s", self.root_key, self.path, e)
            return {}

        entries = document.get(self.root_key) if isinstance(document, dict) else None
        if not isinstance(entries, dict):
            logger.error("Unexpected layout in %s, expected '%s' mapping", self.path, self.root_key)
            return {}
        return entries

    def write(self, entries: dict[str, Any], version: int) -> bool:
        """Atomically replace the file with ``entries``.

        ``version`` orders snapshots taken from the in-memory map; a snapshot
        older than the last one written is skipped. Returns True if written.
        """
        with self._write_lock:
            if version <= self._written_version:
                logger.debug(
                    "Skipping stale %s snapshot v%d (written v%d)",
                    self.root_key,
                    version,
                    self._written_version,
                )
                return False

            payload = json.dumps({self.root_key: entries}, indent=2)
            tmp_name = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{self.path.name}.",
                    suffix=".tmp",
                    dir=self.path.parent,
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
                tmp_name = None
            except OSError as e:
                logger.error("Failed to save %s to %s: %s", self.root_key, self.path, e)
                msg = f"Failed to persist {self.root_key}"
                raise StorageError(msg) from e
            finally:
                if tmp_name is not None:
                    try:
                        os.unlink(tmp_name)
                    except OSError:
                        logger.debug("Could not remove temp file %s", tmp_name)

            self._written_version = version
            return True

    async def write_async(self, entries: dict[str, Any], version: int) -> bool:
        """Run :meth:`write` in a worker thread."""
        return await asyncio.to_thread(self.write, entries, version)
