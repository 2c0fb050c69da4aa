"""
Pytest fixtures for Planpoker tests.
"""

import itertools
import random

import pytest

from ..engine_core.state import Room, Player
from ..engine_core.reducer import Reducer
from ..store import MemoryKeyValueStore, RoomStore
from ..session import SessionHistory
from ..api.service import RoomService


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reducer(clock) -> Reducer:
    """Reducer with a pinned clock and sequential breakout ids."""
    counter = itertools.count(1)
    return Reducer(clock=clock, id_factory=lambda: f"br{next(counter)}")


def make_room(code: str = "ABC123", player_ids=("P1", "P2", "P3", "P4"), observers=()) -> Room:
    players = [
        Player(id=pid, name=f"Player {pid}", is_observer=pid in observers, last_seen=1000)
        for pid in player_ids
    ]
    return Room(
        code=code,
        players=players,
        created_at=1000,
        creator_id=players[0].id if players else None,
    )


@pytest.fixture
def four_player_room() -> Room:
    """Room ABC123 with P1 (creator), P2, P3, P4, nobody observing."""
    return make_room()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def service(kv, clock, reducer) -> RoomService:
    """Service over an in-memory store, recording every notification."""
    notifications = []
    svc = RoomService(
        rooms=RoomStore(kv),
        history=SessionHistory(kv, clock=clock),
        reducer=reducer,
        notifier=lambda code, message: notifications.append((code, message)),
        rng=random.Random(42),
    )
    svc.notifications = notifications
    return svc
