"""
Concurrency control for room mutations.

Every mutation is load -> compute -> save of the whole document, so two
concurrent commands on one room would clobber each other. RoomLocks
serializes commands per room code inside this process. Across processes
the store stays last-writer-wins.
"""

from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class RoomLocks:
    """
    One lock per room code, held only while some command uses it.

    Each entry counts its holders and waiters; the last one out removes
    it, so codes of deleted rooms do not pile up.

    Usage:
        with locks.room_lock("ABC123"):
            room = store.load("ABC123")
            ...
            store.save("ABC123", new_room)
    """

    def __init__(self):
        self._entries: dict[str, _Entry] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _acquire_entry(self, code: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(code)
            if entry is None:
                entry = _Entry()
                self._entries[code] = entry
            entry.users += 1
            return entry

    def _release_entry(self, code: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[code]

    @contextmanager
    def room_lock(self, code: str) -> Iterator[None]:
        entry = self._acquire_entry(code)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(code, entry)
