"""
Append-only event log.

Every decision outcome of the provider ends up here and in the standard
log: alerts at WARNING so monitoring can pick them up, everything else at
INFO. Subscribers are called synchronously after the event is recorded.

Only the newest max_events records are kept in memory. The standard log is
the durable trail.
"""

import logging
from collections import deque
from typing import Callable, Deque, List, Optional

from .models.event import RateEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[RateEvent], None]

DEFAULT_MAX_EVENTS = 10_000


class EventLog:
    """In-memory audit trail of RateEvents"""

    def __init__(self, max_events: Optional[int] = DEFAULT_MAX_EVENTS):
        self.max_events = max_events
        self._events: Deque[RateEvent] = deque(maxlen=max_events)
        self._subscribers: List[Subscriber] = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def emit(self, event: RateEvent) -> None:
        """Record an event, log it and notify subscribers"""
        self._events.append(event)

        payload = ", ".join(f"{k}={v}" for k, v in event.values.items())
        if event.type.is_alert:
            logger.warning(f"{event.name}({payload}) at {event.timestamp}")
        else:
            logger.info(f"{event.name}({payload}) at {event.timestamp}")

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event subscriber failed on {event.name}: {e}", exc_info=True)

    @property
    def events(self) -> List[RateEvent]:
        return list(self._events)

    @property
    def last(self) -> Optional[RateEvent]:
        return self._events[-1] if self._events else None

    def clear(self) -> None:
        self._events.clear()
