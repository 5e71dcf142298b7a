"""
Event system for fieldauth.

Requesting machines and the authorization machine never call each other
directly: requests and decisions travel as events over the bus. A
decision is addressed to one requester through `target`, and only
subscriptions filtered on that target receive it.
"""

from __future__ import annotations

import fnmatch
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

# Type for event handlers
EventHandler = Callable[["Event"], Awaitable[list["Event"]]]


# Protocol event types
AUTHORIZATION_REQUESTED = "authorization.requested"
AUTHORIZATION_GRANTED = "authorization.granted"
AUTHORIZATION_DENIED = "authorization.denied"
AUTHENTICATION_UI = "authentication.ui"
AUTHENTICATION_SUBMITTED = "authentication.submitted"
AUTHENTICATION_COMPLETED = "authentication.completed"
AUTHENTICATION_FAILED = "authentication.failed"
AUTHENTICATION_LOGOUT = "authentication.logout"


@dataclass
class Event:
    """
    An event in the system.

    Events are records of something that happened. They carry all the
    context needed for handlers to process them.
    """

    event_type: str  # e.g., "authorization.requested", "report.open"
    payload: dict[str, Any] = field(default_factory=dict)

    # Routing
    source: str | None = None  # Machine that raised the event
    target: str | None = None  # Machine the event is addressed to (None = broadcast)

    # Tracing
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    correlation_id: str | None = None  # Groups related events
    causation_id: str | None = None  # Event that caused this one

    # Timing
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        return {
            "id": self.id,
            "event_type": self.event_type,
            "source": self.source,
            "target": self.target,
            "payload": self.payload,
            "correlation_id": self.correlation_id,
            "causation_id": self.causation_id,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """Deserialize event from dictionary."""
        return cls(
            id=data["id"],
            event_type=data["event_type"],
            source=data.get("source"),
            target=data.get("target"),
            payload=data.get("payload", {}),
            correlation_id=data.get("correlation_id"),
            causation_id=data.get("causation_id"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class Subscription:
    """A subscription to events matching a pattern."""

    pattern: str  # e.g., "authorization.*" or "authentication.ui"
    handler: EventHandler
    filter: dict[str, Any] = field(default_factory=dict)  # Additional filters

    def matches(self, event: Event) -> bool:
        """Check if this subscription matches the given event."""
        if not fnmatch.fnmatch(event.event_type, self.pattern):
            return False

        for key, value in self.filter.items():
            if key == "target" and event.target != value:
                return False
            if key == "source" and event.source != value:
                return False
            if key.startswith("payload."):
                payload_key = key[8:]
                if event.payload.get(payload_key) != value:
                    return False

        return True


class EventBus:
    """
    In-memory event bus implementation.

    Handlers can return follow-up events, which are published in turn.
    An event nobody subscribes to is dropped without error; that is how
    a decision addressed to a torn-down requester disappears.
    """

    def __init__(self, max_history: int = 10000):
        self._subscriptions: list[Subscription] = []
        self._event_history: list[Event] = []
        self._max_history = max_history

    def subscribe(
        self,
        pattern: str,
        handler: EventHandler,
        filter: dict[str, Any] | None = None,
    ) -> Subscription:
        """
        Subscribe to events matching a pattern.

        Args:
            pattern: Event type pattern (supports wildcards like "authorization.*")
            handler: Async function to handle matching events
            filter: Additional filters (e.g., {"target": "ui/report-1"})

        Returns:
            The subscription object (can be used to unsubscribe)
        """
        subscription = Subscription(
            pattern=pattern,
            handler=handler,
            filter=filter or {},
        )
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription."""
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def publish(self, event: Event) -> list[Event]:
        """
        Publish an event and return any events produced by handlers.

        Resulting events are published recursively (event cascade).
        """
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history:]

        matching = [s for s in self._subscriptions if s.matches(event)]
        if not matching:
            logger.debug(
                f"No subscriber for {event.event_type} "
                f"(target={event.target}); dropped"
            )

        all_resulting_events: list[Event] = []

        for subscription in matching:
            try:
                resulting_events = await subscription.handler(event)
                all_resulting_events.extend(resulting_events or [])
            except Exception:
                # One failing handler must not starve the others
                logger.exception(f"Error in event handler for {event.event_type}")

        cascade: list[Event] = []
        for resulting_event in all_resulting_events:
            cascade.extend(await self.publish(resulting_event))

        return all_resulting_events + cascade

    async def publish_many(self, events: list[Event]) -> list[Event]:
        """Publish multiple events and return all resulting events."""
        all_results: list[Event] = []
        for event in events:
            results = await self.publish(event)
            all_results.extend(results)
        return all_results

    def get_history(
        self,
        event_type: str | None = None,
        target: str | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Query event history with optional filters."""
        results = self._event_history

        if event_type:
            results = [e for e in results if fnmatch.fnmatch(e.event_type, event_type)]

        if target:
            results = [e for e in results if e.target == target]

        return results[-limit:]


# Singleton event bus for the application
_default_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the default event bus instance."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> None:
    """Reset the default event bus (useful for testing)."""
    global _default_bus
    _default_bus = None
