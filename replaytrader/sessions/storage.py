"""
Best-effort key-value persistence.

Values are JSON text. Writes may fail when the store is full or unavailable;
those failures raise PersistenceError and callers decide how to degrade.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional
import json
import re

from loguru import logger

from replaytrader.errors import PersistenceError


class KeyValueStore(ABC):
    """Minimal key-value interface used by the session registry and drawings."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None if absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str):
        """Store a value. Raises PersistenceError on failure."""
        pass

    @abstractmethod
    def delete(self, key: str):
        """Remove a key; missing keys are ignored."""
        pass

    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode a JSON value; unreadable or corrupt values yield the default."""
        try:
            raw = self.get(key)
        except PersistenceError as e:
            logger.warning(f"Could not read {key}: {e}")
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding corrupt value for {key}")
            return default

    def set_json(self, key: str, value: Any):
        self.set(key, json.dumps(value, separators=(",", ":")))


class MemoryKeyValueStore(KeyValueStore):
    """In-process store with an optional byte quota."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}

    def _size_without(self, key: str) -> int:
        return sum(len(v.encode()) for k, v in self._data.items() if k != key)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str):
        if self.quota_bytes is not None:
            if self._size_without(key) + len(value.encode()) > self.quota_bytes:
                raise PersistenceError(f"Quota exceeded writing {key}")
        self._data[key] = value

    def delete(self, key: str):
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileKeyValueStore(KeyValueStore):
    """
    One file per key under a directory.

    Keys are mapped to safe file names; the optional quota applies to the
    total size of all stored values.
    """

    _UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, directory: str, quota_bytes: Optional[int] = None):
        self.directory = Path(directory)
        self.quota_bytes = quota_bytes
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Storage directory unavailable ({self.directory}): {e}")

    def _path(self, key: str) -> Path:
        return self.directory / f"{self._UNSAFE.sub('_', key)}.json"

    def _used_bytes(self, exclude: Path) -> int:
        return sum(p.stat().st_size for p in self.directory.glob("*.json") if p != exclude)

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Could not read {key}: {e}") from e

    def set(self, key: str, value: str):
        path = self._path(key)
        payload = value.encode("utf-8")
        try:
            if self.quota_bytes is not None:
                if self._used_bytes(path) + len(payload) > self.quota_bytes:
                    raise PersistenceError(f"Quota exceeded writing {key}")
            tmp = path.with_suffix(".tmp")
            tmp.write_bytes(payload)
            tmp.replace(path)
        except OSError as e:
            raise PersistenceError(f"Could not write {key}: {e}") from e

    def delete(self, key: str):
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not delete {key}: {e}") from e


def create_store(directory: Optional[str] = None, quota_bytes: Optional[int] = None) -> KeyValueStore:
    """File-backed store when a directory is configured, memory otherwise."""
    if directory:
        return FileKeyValueStore(directory, quota_bytes)
    return MemoryKeyValueStore(quota_bytes)
