"""Key-value storage backing the dedup guards.

Guard state is a handful of string flags. It is injected into the guard
through the :class:`KeyValueStore` interface so the guard never depends on
an ambient global:

- InMemoryStore: lives as long as the store object (tests, single session)
- FileStore: JSON document on disk, survives process restarts

Both raise :class:`StorageUnavailableError` when the medium cannot be
used. Callers decide how to degrade.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from windowman.tracking.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal string key-value store."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value for a key, or None if absent.

        Raises:
            StorageUnavailableError: If the store cannot be read.
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value.

        Raises:
            StorageUnavailableError: If the store cannot be written.
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored.

        Raises:
            StorageUnavailableError: If the store cannot be written.
        """
        pass


class InMemoryStore(KeyValueStore):
    """Dictionary-backed store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        """Remove every key."""
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class FileStore(KeyValueStore):
    """Store persisted as a single JSON object on disk.

    Every operation re-reads the file so several processes pointing at the
    same path observe each other's flags. Writes go through a temporary
    file and an atomic rename.

    Example:
        >>> store = FileStore("/tmp/wm_guard.json")
        >>> store.set("wm_ql_fired:L1", "1")
        >>> store.get("wm_ql_fired:L1")
        '1'
    """

    def __init__(self, path: str | Path):
        """Initialize file store.

        Args:
            path: Location of the JSON document. Created on first write.
        """
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        try:
            if not self.path.exists():
                return {}
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise StorageUnavailableError(f"Cannot read guard state from {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageUnavailableError(f"Guard state in {self.path} is not a JSON object")
        return data

    def _write(self, data: dict[str, str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot write guard state to {self.path}: {e}") from e

    def get(self, key: str) -> str | None:
        with self._lock:
            value = self._read().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)
        logger.debug(f"Stored guard flag {key} in {self.path}")

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)
