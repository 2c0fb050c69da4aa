"""
File-based key-value store.

The store:
- Writes one JSON file per key under a data directory
- Keeps the original key inside the file so prefix scans work
  without reversing the filename encoding
- Replaces files atomically (write to temp file, then rename)
"""

from __future__ import annotations
import hashlib
import json
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Any

from .base import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class FileKeyValueStore(KeyValueStore):
    """
    Usage:
        store = FileKeyValueStore(data_dir="~/.planpoker/data")
        store.set("room:ABC123", {...})
        room = store.get("room:ABC123")
    """

    def __init__(self, data_dir: str | Path | None = None):
        if data_dir is None:
            data_dir = Path.home() / ".planpoker" / "data"
        self.data_dir = Path(data_dir).expanduser()

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data directory {self.data_dir}: {e}") from e

    def get(self, key: str) -> Any | None:
        path = self._get_path(key)
        if not path.exists():
            return None
        entry = self._read_entry(path)
        return entry["value"] if entry else None

    def set(self, key: str, value: Any) -> None:
        entry = {"key": key, "value": value, "updated_at": time.time()}
        try:
            content = json.dumps(entry, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot serialize document: {e}", key=key) from e

        path = self._get_path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except OSError as e:
            raise StorageError(f"Failed to store {key}: {e}", key=key) from e

    def delete(self, key: str) -> None:
        try:
            self._get_path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}", key=key) from e

    def get_by_prefix(self, prefix: str) -> list[Any]:
        """
        Documents whose key starts with prefix.

        Files are preselected by name (sanitizing keeps prefixes) and the
        stored key is checked exactly. A corrupt file in the scan is skipped
        with a warning; get() still raises for it.
        """
        values = []
        for path in sorted(self.data_dir.glob(f"{_UNSAFE.sub('_', prefix)}*.json")):
            try:
                entry = self._read_entry(path)
            except StorageError as e:
                logger.warning(f"Skipping unreadable document during scan: {e}")
                continue
            if entry and entry.get("key", "").startswith(prefix):
                values.append(entry["value"])
        return values

    def _get_path(self, key: str) -> Path:
        """
        Get file path for a key.

        Readable prefix plus a short hash, so distinct keys never collide
        after unsafe characters are replaced.
        """
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:8]
        return self.data_dir / f"{_UNSAFE.sub('_', key)}_{digest}.json"

    def _read_entry(self, path: Path) -> dict[str, Any] | None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            # Deleted between listing and reading
            return None
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt document {path.name}: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to read {path.name}: {e}") from e
