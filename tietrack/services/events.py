"""Change feed for live inventory views.

Writers broadcast an event after they commit; every live list view holds a
subscription and re-runs its query when one arrives.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncGenerator

from pydantic import BaseModel, Field

from tietrack.core.logging import get_logger

logger = get_logger(__name__)

# Per-subscriber backlog; a view only needs to know that something changed
MAX_PENDING_EVENTS = 100


class EventType(str, Enum):
    """Types of events that can be broadcast."""

    TIE_CREATED = "tie_created"
    TIE_UPDATED = "tie_updated"
    TIE_DELETED = "tie_deleted"

    CATEGORY_CHANGED = "category_changed"

    # Stream-only events
    SNAPSHOT = "snapshot"
    HEARTBEAT = "heartbeat"


class Event(BaseModel):
    """Event payload for the feed and for SSE."""

    type: EventType
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        """Format event for SSE transmission."""
        data = {
            "type": self.type.value,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }
        return f"event: {self.type.value}\ndata: {json.dumps(data, default=str)}\n\n"


class ChangeBroadcaster:
    """Fans change events out to every subscribed queue.

    A process-wide singleton; tests may create their own via ``isolated()``.
    """

    _instance: "ChangeBroadcaster | None" = None

    def __new__(cls) -> "ChangeBroadcaster":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._initialized = True
        self._setup()

    def _setup(self) -> None:
        self._clients: list[asyncio.Queue[Event]] = []
        self._lock = asyncio.Lock()

    @classmethod
    def isolated(cls) -> "ChangeBroadcaster":
        """Create a broadcaster that is not the process-wide singleton."""
        instance = object.__new__(cls)
        instance._initialized = True
        instance._setup()
        return instance

    @asynccontextmanager
    async def subscribe(self) -> AsyncGenerator[asyncio.Queue[Event], None]:
        """Subscribe to change events.

        The queue is removed from the broadcaster when the context exits.

        Usage:
            async with broadcaster.subscribe() as queue:
                event = await queue.get()
        """
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=MAX_PENDING_EVENTS)
        async with self._lock:
            self._clients.append(queue)
            client_count = len(self._clients)

        logger.debug("feed_subscribed", client_count=client_count)

        try:
            yield queue
        finally:
            async with self._lock:
                self._clients.remove(queue)
                client_count = len(self._clients)
            logger.debug("feed_unsubscribed", client_count=client_count)

    async def broadcast(self, event: Event) -> None:
        """Broadcast an event to all subscribers.

        Args:
            event: The event to broadcast.
        """
        async with self._lock:
            clients = list(self._clients)

        if not clients:
            return

        for queue in clients:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("feed_subscriber_queue_full", event_type=event.type.value)

        logger.debug(
            "event_broadcast",
            event_type=event.type.value,
            client_count=len(clients),
        )

    async def broadcast_tie_created(self, tie_id: str, name: str, category: str) -> None:
        """Broadcast tie created event."""
        await self.broadcast(Event(
            type=EventType.TIE_CREATED,
            payload={"tie_id": tie_id, "name": name, "category": category},
        ))

    async def broadcast_tie_updated(self, tie_id: str, name: str, category: str) -> None:
        """Broadcast tie updated event."""
        await self.broadcast(Event(
            type=EventType.TIE_UPDATED,
            payload={"tie_id": tie_id, "name": name, "category": category},
        ))

    async def broadcast_tie_deleted(self, tie_id: str) -> None:
        """Broadcast tie deleted event."""
        await self.broadcast(Event(
            type=EventType.TIE_DELETED,
            payload={"tie_id": tie_id},
        ))

    async def broadcast_category_changed(self, action: str, name: str) -> None:
        """Broadcast a category create/rename/delete."""
        await self.broadcast(Event(
            type=EventType.CATEGORY_CHANGED,
            payload={"action": action, "name": name},
        ))

    @property
    def client_count(self) -> int:
        """Get the number of subscribers."""
        return len(self._clients)


# Global singleton instance
change_broadcaster = ChangeBroadcaster()


def get_change_broadcaster() -> ChangeBroadcaster:
    """Get the global change broadcaster instance."""
    return change_broadcaster
