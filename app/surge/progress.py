"""Real-time progress: an in-process push channel and a batch step counter.

:class:`EventBroker` fans events out to every subscriber of a channel (one
channel per requesting user).  Subscribers receive ``Event`` objects on a
``queue.Queue``; the SSE route drains that queue.

:class:`ProgressTracker` owns the shared step counter of one batch.  The
total is fixed when the batch is accepted.  Every mutation happens under a
lock and the resulting ``progress`` event is emitted while the lock is held,
so observers always see a monotonically increasing ``completed``.
"""
from __future__ import annotations

import logging
import queue
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from app.core.constants import EVENT_ALL_DONE, EVENT_PROGRESS

logger = logging.getLogger(__name__)

_SUBSCRIBER_QUEUE_SIZE = 1000


@dataclass(frozen=True)
class Event:
    channel: str
    name: str
    payload: dict[str, Any]


class EventBroker:
    """Thread-safe publish/subscribe keyed by channel."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[queue.Queue]] = defaultdict(list)

    def subscribe(self, channel: str) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=_SUBSCRIBER_QUEUE_SIZE)
        with self._lock:
            self._subscribers[channel].append(q)
        return q

    def unsubscribe(self, channel: str, q: queue.Queue) -> None:
        with self._lock:
            subscribers = self._subscribers.get(channel)
            if not subscribers:
                return
            if q in subscribers:
                subscribers.remove(q)
            if not subscribers:
                del self._subscribers[channel]

    def emit(self, channel: str, name: str, payload: dict[str, Any]) -> int:
        """Deliver an event to every subscriber of *channel*; return the count."""
        event = Event(channel=channel, name=name, payload=payload)
        with self._lock:
            targets = list(self._subscribers.get(channel, ()))
        delivered = 0
        for q in targets:
            try:
                q.put_nowait(event)
                delivered += 1
            except queue.Full:
                logger.warning("Dropping %s event for slow subscriber on channel %s", name, channel)
        logger.debug("Emitted %s to %d subscriber(s) on channel %s", name, delivered, channel)
        return delivered


@dataclass
class ProgressTracker:
    broker: EventBroker
    channel: str
    surge_id: str
    total: int
    completed: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _emit_progress(self) -> None:
        self.broker.emit(
            self.channel,
            EVENT_PROGRESS,
            {"surgeId": self.surge_id, "completed": self.completed, "total": self.total},
        )

    def start(self) -> None:
        with self._lock:
            self._emit_progress()

    def tick(self, steps: int = 1) -> int:
        with self._lock:
            self.completed = min(self.total, self.completed + steps)
            self._emit_progress()
            return self.completed

    def record_success(self, household_id: str) -> None:
        with self._lock:
            self.succeeded.append(household_id)

    def record_failure(self, household_id: str) -> None:
        with self._lock:
            self.failed.append(household_id)

    def complete(self) -> None:
        """Force the counter to ``total`` and emit the final tick."""
        with self._lock:
            self.completed = self.total
            self._emit_progress()

    def finish(self, action: str, archive_ref: str, total_households: int) -> dict[str, Any]:
        with self._lock:
            payload = {
                "surgeId": self.surge_id,
                "action": action,
                "successCount": len(self.succeeded),
                "errorCount": len(self.failed),
                "total": total_households,
                "archiveRef": archive_ref,
                "succeededHouseholds": list(self.succeeded),
                "failedHouseholds": list(self.failed),
            }
            self.broker.emit(self.channel, EVENT_ALL_DONE, payload)
        return payload
