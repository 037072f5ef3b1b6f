"""Interface for publishing domain events."""

import abc

from apirelay.domain.events.api_events import DomainEvent


class EventPublisher(abc.ABC):
    """Abstract Base Class for event sinks."""

    @abc.abstractmethod
    def publish(self, event: DomainEvent) -> None:
        """Publishes one event. Must not raise into the caller."""
        pass


class NullEventPublisher(EventPublisher):
    """Drops every event. Used when no publisher is injected."""

    def publish(self, event: DomainEvent) -> None:
        return None
