"""
Room Store - load / save / delete rooms over a key-value engine.

No business logic. Every load normalizes legacy documents (see
Room.from_dict) before the engine sees them.
"""

from __future__ import annotations
import logging

from ..engine_core.state import Room
from .base import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

ROOM_KEY_PREFIX = "room:"


def room_key(code: str) -> str:
    return f"{ROOM_KEY_PREFIX}{code}"


class RoomStore:
    """
    Adapter between the engine's Room and the stored document.

    Last-writer-wins: save() overwrites the whole document with no
    version check.
    """

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def load(self, code: str) -> Room | None:
        data = self.kv.get(room_key(code))
        if data is None:
            return None
        try:
            return Room.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed room document for {code}: {e}", key=room_key(code)) from e

    def save(self, code: str, room: Room) -> None:
        self.kv.set(room_key(code), room.to_dict())

    def delete(self, code: str) -> None:
        self.kv.delete(room_key(code))

    def exists(self, code: str) -> bool:
        return self.kv.get(room_key(code)) is not None

    def list_rooms(self) -> list[Room]:
        """All stored rooms. Malformed documents are skipped with a warning."""
        rooms = []
        for data in self.kv.get_by_prefix(ROOM_KEY_PREFIX):
            try:
                rooms.append(Room.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed room document: {e}")
        return rooms
