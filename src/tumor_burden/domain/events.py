"""Engine notifications for hosts that mirror engine state.

A viewer typically caches slab outlines and lesion tables; it subscribes to
these notifications to know when to redraw or recompute.  Buses are created
by the host and handed to the operations that change state, one bus per
viewing session.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable

# Published by ``geometry.slab.apply_boundary`` after a slab end is moved.
SLAB_RESOLVED = "slab.resolved"
# Published by ``segmentation.writer.threshold_selection`` after a write.
SEGMENTATION_THRESHOLDED = "segmentation.thresholded"


@dataclass(frozen=True)
class Event:
    """One notification.

    ``payload`` holds plain values only (ids, slice indices, counts), never
    volumes or arrays.
    """

    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[Event], None]


class EventBus:
    """Synchronous dispatch of :class:`Event` objects by type.

    Handlers run on the publishing thread in subscription order.  An
    exception from a handler reaches the publisher and the remaining
    handlers for that event are skipped.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, tuple[EventHandler, ...]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        with self._lock:
            current = self._subscriptions.get(event_type, ())
            self._subscriptions[event_type] = current + (handler,)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """Drop *handler* from *event_type*; unknown handlers are ignored."""
        with self._lock:
            current = self._subscriptions.get(event_type, ())
            self._subscriptions[event_type] = tuple(h for h in current if h != handler)

    def publish(self, event: Event | str, payload: dict[str, Any] | None = None) -> int:
        """Deliver *event* and return how many handlers received it.

        *event* may be an :class:`Event` or an event type, in which case
        *payload* becomes its payload.
        """
        if not isinstance(event, Event):
            event = Event(type=event, payload=dict(payload or {}))
        with self._lock:
            handlers = self._subscriptions.get(event.type, ())
        for handler in handlers:
            handler(event)
        return len(handlers)

    def clear(self) -> None:
        with self._lock:
            self._subscriptions.clear()

    def handler_count(self, event_type: str) -> int:
        return len(self._subscriptions.get(event_type, ()))
