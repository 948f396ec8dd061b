"""Write, read back, compare CRC-32C, retry a fixed number of times.

There is no atomic rename: a crash mid-write can leave the destination
corrupt. Verification targets transient corruption only.
"""
from __future__ import annotations

import logging
from pathlib import Path

from recflow_core.checksum import crc32c
from recflow_core.config import FlowConfig, default_config
from recflow_core.errors import FailedToWrite
from recflow_core.protocol import DEFAULT_WRITE_ATTEMPTS
from recflow_core.schema import Schema

from .storage import DEFAULT_STORAGE, FileStorage

logger = logging.getLogger(__name__)


class VerifiedWriter:
    def __init__(
        self,
        storage: FileStorage | None = None,
        verify: bool = False,
        attempts: int = DEFAULT_WRITE_ATTEMPTS,
    ):
        if attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {attempts}")
        self.storage = storage or DEFAULT_STORAGE
        self.verify = verify
        self.attempts = attempts

    def _matches(self, path, attempt: int, expected: int, readback: bytes) -> bool:
        written = crc32c(readback)
        if written == expected:
            logger.debug("Verified %s on attempt %d (crc32c %08x)", path, attempt, expected)
            return True
        logger.warning(
            "Checksum mismatch writing %s (attempt %d/%d): expected %08x, read back %08x",
            path, attempt, self.attempts, expected, written,
        )
        return False

    def _exhausted(self, path) -> FailedToWrite:
        logger.error("Giving up on %s after %d attempts", path, self.attempts)
        return FailedToWrite(path, self.attempts)

    def write(self, path: str | Path, data: bytes) -> int:
        """Persist ``data``; return the attempt that succeeded."""
        if not self.verify:
            self.storage.write(path, data)
            return 1
        expected = crc32c(data)
        for attempt in range(1, self.attempts + 1):
            self.storage.write(path, data)
            if self._matches(path, attempt, expected, self.storage.read(path)):
                return attempt
        raise self._exhausted(path)

    async def write_async(self, path: str | Path, data: bytes) -> int:
        if not self.verify:
            await self.storage.write_async(path, data)
            return 1
        expected = crc32c(data)
        for attempt in range(1, self.attempts + 1):
            await self.storage.write_async(path, data)
            if self._matches(path, attempt, expected, await self.storage.read_async(path)):
                return attempt
        raise self._exhausted(path)


def writer_for(
    schema: Schema,
    storage: FileStorage | None = None,
    config: FlowConfig | None = None,
) -> VerifiedWriter:
    """Writer honoring the type's verify_write flag, else the configuration."""
    config = config or default_config()
    verify = config.verify_write if schema.verify_write is None else schema.verify_write
    return VerifiedWriter(storage, verify=verify, attempts=config.write_attempts)
