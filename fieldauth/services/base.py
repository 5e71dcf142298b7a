"""
Base class for event-driven services.

Services subscribe to event patterns on the bus, handle matching events
and return follow-up events, which the bus publishes in turn.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from fieldauth.core.events import Event, EventBus, Subscription


class Service(ABC):
    """
    Base class for all services.

    Example:
        class AuditService(Service):
            service_id = "audit"
            subscribes_to = ["authorization.*"]

            async def handle(self, event: Event) -> list[Event]:
                record(event)
                return []
    """

    @property
    @abstractmethod
    def service_id(self) -> str:
        """Unique identifier for this service."""
        pass

    @property
    @abstractmethod
    def subscribes_to(self) -> list[str]:
        """
        List of event patterns this service handles.

        Supports wildcards like "authentication.*".
        """
        pass

    @abstractmethod
    async def handle(self, event: Event) -> list[Event]:
        """
        Handle an event and return any resulting events.

        Returns:
            List of events produced by handling this event
            (can be empty if no follow-up events needed)
        """
        pass

    def wire(self, bus: EventBus) -> list[Subscription]:
        """Subscribe this service's handler to each of its patterns."""
        return [bus.subscribe(pattern, self.handle) for pattern in self.subscribes_to]

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.service_id})>"
