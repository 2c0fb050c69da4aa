"""
In-memory key-value store.

Documents are kept as JSON text so that every read returns a fresh copy
and non-serializable values fail the same way they would on disk.
"""

from __future__ import annotations
import json
import threading
from typing import Any

from .base import KeyValueStore, StorageError


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used for development and tests."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot serialize document: {e}", key=key) from e
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def get_by_prefix(self, prefix: str) -> list[Any]:
        with self._lock:
            raws = [raw for key, raw in self._data.items() if key.startswith(prefix)]
        return [json.loads(raw) for raw in raws]

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)
