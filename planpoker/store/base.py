"""
Key-Value Store - Contract over the persistence engine.

The engine stores JSON-serializable documents by string key and offers
get / set / delete / prefix scan. There are no transactions and no
conditional writes: set() is a full-document overwrite.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any


class StorageError(Exception):
    """Raised when the store is unreachable or a document cannot be (de)serialized."""

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(message)


class KeyValueStore(ABC):
    """
    Abstract key-value engine.

    Implementations raise StorageError for any I/O or serialization failure.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the stored document, or None if the key is absent."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a document, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a document. Deleting an absent key is not an error."""

    @abstractmethod
    def get_by_prefix(self, prefix: str) -> list[Any]:
        """Return every document whose key starts with prefix."""
