"""Observability events for external monitoring.

Components publish events through an EventBus; subscribers (log shippers,
notifiers, the API's recent-events view) receive every event in order.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Event kinds emitted by the tracker, cost model and orchestrator."""

    PRICE_UPDATED = "price_updated"
    SWAP_INITIATED = "swap_initiated"
    SWAP_COMPLETED = "swap_completed"
    SWAP_FAILED = "swap_failed"
    SWAP_RECOVERED = "swap_recovered"
    CONFIGURATION_CHANGED = "configuration_changed"
    PAUSED = "paused"
    UNPAUSED = "unpaused"
    CHAIN_CONFIG_CHANGED = "chain_config_changed"


@dataclass
class Event:
    """A single published event."""

    type: EventType
    entity_id: str
    timestamp: float
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "entity_id": self.entity_id,
            "timestamp": self.timestamp,
            "data": {k: str(v) if not isinstance(v, (int, float, bool, type(None))) else v
                     for k, v in self.data.items()},
        }


Subscriber = Callable[[Event], Union[None, Awaitable[None]]]


class EventBus:
    """In-process publisher with a bounded buffer of recent events."""

    def __init__(self, clock: Callable[[], float] = time.time, buffer_size: int = 500):
        self._clock = clock
        self._subscribers: list[Subscriber] = []
        self._recent: deque[Event] = deque(maxlen=buffer_size)

    def subscribe(self, callback: Subscriber) -> None:
        """Register a callback (sync or async) for every event."""
        self._subscribers.append(callback)

    async def publish(
        self,
        event_type: EventType,
        entity_id: Any,
        data: Optional[dict] = None,
        timestamp: Optional[float] = None,
    ) -> Event:
        """Publish an event to all subscribers.

        A failing subscriber is logged and skipped; it never rolls back the
        state change that produced the event.
        """
        event = Event(
            type=event_type,
            entity_id=str(entity_id),
            timestamp=self._clock() if timestamp is None else timestamp,
            data=data or {},
        )
        self._recent.append(event)
        logger.debug(f"Event {event.type.value} for {event.entity_id}: {event.data}")

        for callback in self._subscribers:
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Event subscriber failed on {event.type.value}: {e}")

        return event

    def recent(self, event_type: Optional[EventType] = None, limit: int = 50) -> list[Event]:
        """Most recent events, newest last."""
        events = [e for e in self._recent if event_type is None or e.type == event_type]
        return events[-limit:]
