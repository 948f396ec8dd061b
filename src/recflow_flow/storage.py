"""Addressable storage: whole-content reads and writes by path."""
from __future__ import annotations

import asyncio
from pathlib import Path

from recflow_core.errors import FileNotFound, StorageError


class FileStorage:
    """Local files. Writes create or fully overwrite; nothing is appended."""

    def read(self, path: str | Path) -> bytes:
        p = Path(path)
        try:
            return p.read_bytes()
        except FileNotFoundError as e:
            raise FileNotFound(str(p)) from e
        except OSError as e:
            raise StorageError(str(p)) from e

    def write(self, path: str | Path, data: bytes) -> None:
        p = Path(path)
        try:
            with open(p, "wb") as f:
                f.write(data)
                f.flush()
        except OSError as e:
            raise StorageError(str(p)) from e

    def exists(self, path: str | Path) -> bool:
        return Path(path).exists()

    async def read_async(self, path: str | Path) -> bytes:
        return await asyncio.to_thread(self.read, path)

    async def write_async(self, path: str | Path, data: bytes) -> None:
        await asyncio.to_thread(self.write, path, data)


DEFAULT_STORAGE = FileStorage()
