"""Render job event stream.

Provides a pub/sub mechanism so callers can follow a job's progress and
terminal outcome without polling the registry.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

PROGRESS = "progress"
STATE = "state"
COMPLETED = "completed"
FAILED = "failed"

TERMINAL_EVENTS = (COMPLETED, FAILED)


@dataclass
class RenderEvent:
    """Event data for a render job."""

    event_type: str  # progress, state, completed, failed
    job_id: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    data: dict[str, Any] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.event_type in TERMINAL_EVENTS

    def to_dict(self) -> dict[str, Any]:
        event_data: dict[str, Any] = {
            "type": self.event_type,
            "job_id": self.job_id,
            "timestamp": self.timestamp,
        }
        if self.data:
            event_data["data"] = self.data
        return event_data


class RenderEventBus:
    """Manages per-job subscriptions and event publishing."""

    def __init__(self) -> None:
        # Map job_id -> set of asyncio.Queue for each subscriber
        self._subscribers: dict[str, set[asyncio.Queue[RenderEvent]]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def register(self, job_id: str) -> asyncio.Queue[RenderEvent]:
        """Add a subscriber queue for ``job_id`` and return it."""
        queue: asyncio.Queue[RenderEvent] = asyncio.Queue()
        async with self._lock:
            self._subscribers[job_id].add(queue)
            logger.debug(f"New subscriber for job {job_id}. Total: {len(self._subscribers[job_id])}")
        return queue

    async def unregister(self, job_id: str, queue: asyncio.Queue[RenderEvent]) -> None:
        async with self._lock:
            self._subscribers[job_id].discard(queue)
            # Clean up empty subscriber sets
            if not self._subscribers[job_id]:
                del self._subscribers[job_id]

    async def subscribe(self, job_id: str) -> AsyncGenerator[RenderEvent, None]:
        """Yield events for ``job_id`` until (and including) its terminal event."""
        queue = await self.register(job_id)
        try:
            async for event in self.drain(queue):
                yield event
        finally:
            await self.unregister(job_id, queue)

    @staticmethod
    async def drain(queue: asyncio.Queue[RenderEvent]) -> AsyncGenerator[RenderEvent, None]:
        while True:
            event = await queue.get()
            yield event
            if event.is_terminal:
                return

    async def publish(self, job_id: str, event_type: str, data: dict[str, Any] | None = None) -> int:
        """Publish an event to all subscribers of a job.

        Returns:
            Number of subscribers notified
        """
        event = RenderEvent(event_type=event_type, job_id=job_id, data=data)

        async with self._lock:
            subscribers = self._subscribers.get(job_id, set()).copy()

        if not subscribers:
            return 0

        for queue in subscribers:
            queue.put_nowait(event)

        logger.debug(f"Published {event_type} to {len(subscribers)} subscribers for job {job_id}")
        return len(subscribers)

    def get_subscriber_count(self, job_id: str) -> int:
        """Get the number of active subscribers for a job."""
        return len(self._subscribers.get(job_id, set()))
