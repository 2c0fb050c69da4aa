"""
Real-time notification of room changes.

BroadcastHub fans room updates out to subscribers of channel
"room:<CODE>". Subscribers are asyncio queues drained by WebSocket
handlers; notify() never blocks and never raises for a slow consumer.

Message shapes:
    {"type": "room_update",  "payload": {...room response...}}
    {"type": "room_deleted", "payload": {"code": "ABC123"}}
"""

from __future__ import annotations
import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 100


def channel_name(room_code: str) -> str:
    return f"room:{room_code}"


class BroadcastHub:
    """
    In-process pub/sub.

    Must be notified from the event loop thread that owns the queues.
    """

    def __init__(self):
        self._subscribers: dict[str, list[asyncio.Queue]] = {}

    def subscribe(self, room_code: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers.setdefault(channel_name(room_code), []).append(queue)
        return queue

    def unsubscribe(self, room_code: str, queue: asyncio.Queue) -> None:
        channel = channel_name(room_code)
        queues = self._subscribers.get(channel, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(channel, None)

    def subscriber_count(self, room_code: str) -> int:
        return len(self._subscribers.get(channel_name(room_code), []))

    def notify(self, room_code: str, message: dict[str, Any]) -> None:
        """Deliver a message to every subscriber of the room's channel."""
        for queue in list(self._subscribers.get(channel_name(room_code), [])):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(f"Dropping update for slow subscriber on room {room_code}")
