"""
In-process publish/subscribe channel for sync events.

The core publishes outcome and log events here without knowing whether
anybody listens. Observers (a live log viewer, a dashboard bridge) subscribe
and receive events on their own ``asyncio.Queue``. Publishing never blocks:
when a subscriber falls behind, its oldest queued event is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import override

from .utils.time import get_system_now

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000


class EventType(Enum):
    """Kinds of events published on the bus."""

    SYNC_STARTED = "sync_started"
    SYNC_FINISHED = "sync_finished"
    NOTIFICATION_DISPATCHED = "notification_dispatched"
    LOG = "log"


@dataclass(frozen=True)
class SyncEvent:
    """One event on the bus."""

    type: EventType
    payload: dict[str, object] = field(default_factory=dict)
    server: str | None = None
    timestamp: datetime = field(default_factory=get_system_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type.value,
            "server": self.server,
            "timestamp": self.timestamp.isoformat(),
            "payload": self.payload,
        }


class EventBus:
    """Fan-out of events to any number of queue subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[asyncio.Queue[SyncEvent], asyncio.AbstractEventLoop] = {}
        self._lock: threading.Lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> asyncio.Queue[SyncEvent]:
        """
        Register a new subscriber.

        Must be called from within the event loop that will consume the queue.

        Args:
            maxsize: Queue capacity before the oldest events are dropped

        Returns:
            Queue that receives every event published from now on
        """
        queue: asyncio.Queue[SyncEvent] = asyncio.Queue(maxsize=maxsize)
        loop = asyncio.get_running_loop()
        with self._lock:
            self._subscribers[queue] = loop
        return queue

    def unsubscribe(self, queue: asyncio.Queue[SyncEvent]) -> None:
        with self._lock:
            _ = self._subscribers.pop(queue, None)

    def publish(self, event: SyncEvent) -> None:
        """
        Deliver an event to every subscriber.

        Safe to call from worker threads and with no subscribers.
        """
        with self._lock:
            subscribers = list(self._subscribers.items())

        if not subscribers:
            return

        try:
            running_loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        for queue, loop in subscribers:
            if loop is running_loop:
                self._put(queue, event)
            elif not loop.is_closed():
                _ = loop.call_soon_threadsafe(self._put, queue, event)

    @staticmethod
    def _put(queue: asyncio.Queue[SyncEvent], event: SyncEvent) -> None:
        if queue.full():
            try:
                _ = queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
        queue.put_nowait(event)


class EventBusLogHandler(logging.Handler):
    """Logging handler that republishes records as ``log`` events."""

    def __init__(self, bus: EventBus, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.bus: EventBus = bus

    @override
    def emit(self, record: logging.LogRecord) -> None:
        try:
            if self.bus.subscriber_count == 0:
                return
            server = getattr(record, "server", None)
            correlation_id = getattr(record, "correlation_id", None)
            self.bus.publish(
                SyncEvent(
                    type=EventType.LOG,
                    server=str(server) if server else None,
                    payload={
                        "level": record.levelname,
                        "logger": record.name,
                        "message": record.getMessage(),
                        "correlation_id": correlation_id,
                    },
                )
            )
        except Exception:
            self.handleError(record)
