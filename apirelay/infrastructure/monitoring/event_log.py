"""Event publisher that logs domain events and fans them out to subscribers."""

import logging
from typing import Callable, List, Type

from apirelay.domain.events.api_events import DomainEvent
from apirelay.domain.interfaces.events import EventPublisher

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class LoggingEventPublisher(EventPublisher):
    """Logs every event at DEBUG and forwards it to registered handlers."""

    def __init__(self):
        self._subscribers: List[tuple] = []

    def subscribe(self, handler: EventHandler, event_type: Type[DomainEvent] = DomainEvent) -> None:
        """Registers `handler` for events of `event_type` (and subclasses)."""
        self._subscribers.append((event_type, handler))

    def publish(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        for event_type, handler in self._subscribers:
            if not isinstance(event, event_type):
                continue
            try:
                handler(event)
            except Exception:
                # A faulty subscriber must not break the call that emitted the event
                logger.exception(f"Event handler {handler!r} failed for {type(event).__name__}")


class RecordingEventPublisher(LoggingEventPublisher):
    """Keeps every published event in memory; handy for inspection and tests."""

    def __init__(self):
        super().__init__()
        self.events: List[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)
        super().publish(event)

    def of_type(self, event_type: Type[DomainEvent]) -> List[DomainEvent]:
        return [event for event in self.events if isinstance(event, event_type)]
