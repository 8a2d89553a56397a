"""
Storage Backends

This module defines the three storage tiers that compose UniversalStorage,
ordered from most to least persistent:

- DirectoryBackend: durable JSON files that survive restarts
- SessionBackend: a scratch directory discarded when the process session ends
- MemoryBackend: a plain in-process dict, the guaranteed last resort

Every backend stores serialized strings under string keys and exposes the
same capability check, `probe()`, which performs a throwaway write/delete
cycle. Backends raise StorageBackendError on failure; deciding what to do
about a failure is the composite's job, not the tier's.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote


PROBE_KEY = "__test_storage__"


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class StorageBackendError(RuntimeError):
    """Base error for storage tier failures."""


class StorageQuotaExceededError(StorageBackendError):
    """Raised when a write would exceed the tier's byte quota."""


class StorageCorruptEntryError(StorageBackendError):
    """Raised when a stored entry exists but cannot be decoded."""


# ---------------------------------------------------------------------
# Backend Interface
# ---------------------------------------------------------------------

class StorageBackend(ABC):
    """
    A single key/value storage tier.
    """

    name: str = "backend"

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Return the raw stored string, or None if absent."""

    @abstractmethod
    def write(self, key: str, raw: str) -> None:
        """Store a raw string, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Return all stored keys."""

    def probe(self) -> bool:
        """
        Check whether this tier accepts writes right now.
        """
        try:
            self.write(PROBE_KEY, "test")
            self.delete(PROBE_KEY)
        except Exception:
            return False
        return True

    def close(self) -> None:
        """Release any resources held by the tier."""

    def __len__(self) -> int:
        return len(self.keys())


# ---------------------------------------------------------------------
# Durable Tier
# ---------------------------------------------------------------------

class DirectoryBackend(StorageBackend):
    """
    One JSON file per key under a root directory.

    Keys are percent-encoded into file names, so any key string is safe.
    Writes go to a temporary file first and are moved into place, so a
    crash mid-write never leaves a truncated entry behind.
    """

    name = "durable"
    suffix = ".json"

    def __init__(self, root: str | os.PathLike, quota_bytes: Optional[int] = None) -> None:
        self._root = Path(root)
        self._quota_bytes = quota_bytes

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        return self._root / f"{quote(key, safe='')}{self.suffix}"

    def _usage_bytes(self, excluding: Path) -> int:
        total = 0
        for path in self._root.glob(f"*{self.suffix}"):
            if path != excluding:
                total += path.stat().st_size
        return total

    def read(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            raise StorageCorruptEntryError(
                f"Undecodable {self.name} entry: {key}"
            ) from exc
        except OSError as exc:
            raise StorageBackendError(
                f"Failed to read {self.name} entry: {type(exc).__name__}"
            ) from exc

    def write(self, key: str, raw: str) -> None:
        path = self._path_for(key)

        try:
            self._root.mkdir(parents=True, exist_ok=True)

            if self._quota_bytes is not None:
                needed = len(raw.encode("utf-8"))
                if self._usage_bytes(excluding=path) + needed > self._quota_bytes:
                    raise StorageQuotaExceededError(
                        f"{self.name} quota of {self._quota_bytes} bytes exceeded"
                    )

            fd, tmp_name = tempfile.mkstemp(dir=self._root, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(raw)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageBackendError(
                f"Failed to write {self.name} entry: {type(exc).__name__}"
            ) from exc

    def delete(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageBackendError(
                f"Failed to delete {self.name} entry: {type(exc).__name__}"
            ) from exc

    def keys(self) -> List[str]:
        if not self._root.exists():
            return []
        return sorted(
            unquote(path.name[: -len(self.suffix)])
            for path in self._root.glob(f"*{self.suffix}")
        )


# ---------------------------------------------------------------------
# Session Tier
# ---------------------------------------------------------------------

class SessionBackend(DirectoryBackend):
    """
    Directory tier scoped to the current process session.

    Entries live in a private temporary directory, created on first write
    and removed on `close()`, so nothing written here outlives the session.
    """

    name = "session"

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        root = Path(tempfile.gettempdir()) / f"storefront-session-{uuid.uuid4().hex}"
        super().__init__(root, quota_bytes)

    def close(self) -> None:
        shutil.rmtree(self._root, ignore_errors=True)


# ---------------------------------------------------------------------
# Memory Tier
# ---------------------------------------------------------------------

class MemoryBackend(StorageBackend):
    """
    In-process dict. Never fails, never persists.
    """

    name = "memory"

    def __init__(self) -> None:
        self._store: Dict[str, str] = {}

    def read(self, key: str) -> Optional[str]:
        return self._store.get(key)

    def write(self, key: str, raw: str) -> None:
        self._store[key] = raw

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._store)

    def close(self) -> None:
        self._store.clear()
