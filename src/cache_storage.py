"""
LAMA - Cache storage backends.

WeightCache talks to a CacheStorage: a flat string key -> string value
store with a byte quota. Every set() commits the whole value or nothing,
and raises StorageQuotaError instead of writing when the quota would be
exceeded.

Backends:
    MemoryStorage  — dict-backed, for tests and short-lived processes
    DiskStorage    — one file per key under a directory, temp-file + rename
"""

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from errors import CorruptCacheEntryError, StorageQuotaError

logger = logging.getLogger(__name__)

_FILE_SUFFIX = ".json"


def entry_bytes(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class CacheStorage(ABC):
    """Async key-value store with a byte quota."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Stored value, or None if the key is absent.

        Raises CorruptCacheEntryError when the stored bytes cannot be decoded.
        """

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store atomically. Raises StorageQuotaError when over quota."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key. Returns True if something was removed."""

    @abstractmethod
    async def keys(self, prefix: str = "") -> List[str]:
        """All stored keys starting with `prefix`."""

    @abstractmethod
    async def used_bytes(self) -> int:
        """Bytes currently counted against the quota."""

    async def _check_quota(self, key: str, value: str, replaced: int) -> None:
        if self.quota_bytes is None:
            return
        size = entry_bytes(key, value)
        available = self.quota_bytes - (await self.used_bytes() - replaced)
        if size > available:
            raise StorageQuotaError(key, size, max(0, available))


class MemoryStorage(CacheStorage):
    """In-process store. Quota counts UTF-8 bytes of keys plus values."""

    def __init__(self, quota_bytes: Optional[int] = None):
        super().__init__(quota_bytes)
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        old = self._data.get(key)
        replaced = entry_bytes(key, old) if old is not None else 0
        await self._check_quota(key, value, replaced)
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> List[str]:
        return [k for k in self._data if k.startswith(prefix)]

    async def used_bytes(self) -> int:
        return sum(entry_bytes(k, v) for k, v in self._data.items())

    def __len__(self) -> int:
        return len(self._data)


class DiskStorage(CacheStorage):
    """One UTF-8 file per key. Blocking I/O runs in a worker thread."""

    def __init__(self, directory: Path, quota_bytes: Optional[int] = None):
        super().__init__(quota_bytes)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / (quote(key, safe="") + _FILE_SUFFIX)

    # ── Blocking helpers (run via asyncio.to_thread) ────────

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise CorruptCacheEntryError(key, f"not UTF-8: {e}") from e

    def _stored_bytes(self, key: str) -> int:
        try:
            return len(key.encode("utf-8")) + self._path(key).stat().st_size
        except FileNotFoundError:
            return 0

    def _write(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.directory, suffix=".tmp", prefix="."
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def _remove(self, key: str) -> bool:
        try:
            self._path(key).unlink()
            return True
        except FileNotFoundError:
            return False

    def _list(self, prefix: str) -> List[str]:
        out = []
        for path in self.directory.glob("*" + _FILE_SUFFIX):
            key = unquote(path.name[:-len(_FILE_SUFFIX)])
            if key.startswith(prefix):
                out.append(key)
        return out

    def _used(self) -> int:
        total = 0
        for path in self.directory.glob("*" + _FILE_SUFFIX):
            key = unquote(path.name[:-len(_FILE_SUFFIX)])
            try:
                total += len(key.encode("utf-8")) + path.stat().st_size
            except FileNotFoundError:
                continue
        return total

    # ── CacheStorage ────────────────────────────────────────

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: str) -> None:
        replaced = await asyncio.to_thread(self._stored_bytes, key)
        await self._check_quota(key, value, replaced)
        await asyncio.to_thread(self._write, key, value)

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._remove, key)

    async def keys(self, prefix: str = "") -> List[str]:
        return await asyncio.to_thread(self._list, prefix)

    async def used_bytes(self) -> int:
        return await asyncio.to_thread(self._used)
