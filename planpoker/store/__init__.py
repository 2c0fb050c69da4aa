"""
Store Module - Persistence for rooms and session history.

Rooms are plain JSON documents in a key-value engine:
- room:<CODE>                     one document per live room
- session:<CODE>:<CREATED_AT>     admin session-history records

There are no transactions. RoomLocks serializes mutations per room
inside one process.
"""

from .base import KeyValueStore, StorageError
from .memory import MemoryKeyValueStore
from .file import FileKeyValueStore
from .rooms import RoomStore, room_key
from .locks import RoomLocks

__all__ = [
    "KeyValueStore",
    "StorageError",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
    "RoomStore",
    "room_key",
    "RoomLocks",
]
