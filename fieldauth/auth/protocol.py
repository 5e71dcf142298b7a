"""
Authorization request/decision protocol.

A requester raises `authorization.requested` carrying its id, the event
it paused on, and the capabilities it needs. It later receives exactly
one `authorization.granted` or `authorization.denied` addressed to it,
echoing that same original event so it can resume where it stopped.

The original event is opaque here: it is carried, serialized and
returned, never looked at to make a decision.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fieldauth.auth.capabilities import Outcome
from fieldauth.core.attributes import Attribute, attribute_key
from fieldauth.core.codec import decode_event, encode_event
from fieldauth.core.events import (
    AUTHORIZATION_DENIED,
    AUTHORIZATION_GRANTED,
    AUTHORIZATION_REQUESTED,
    Event,
)
from fieldauth.core.utils import utc_now


@dataclass(frozen=True)
class AuthorizationRequest:
    """One requester asking for a capability set."""

    requester_id: str
    original_event: Event
    capabilities: frozenset[str]
    received_at: datetime = field(default_factory=utc_now, compare=False)

    @classmethod
    def from_event(cls, event: Event) -> AuthorizationRequest:
        payload = event.payload
        original = payload["original_event"]
        if isinstance(original, dict):
            original = Event.from_dict(original)
        return cls(
            requester_id=payload["requester_id"],
            original_event=original,
            capabilities=frozenset(payload.get("capabilities", ())),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "requester_id": self.requester_id,
            "original_event": encode_event(self.original_event),
            "capabilities": sorted(self.capabilities),
            "received_at": self.received_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthorizationRequest:
        return cls(
            requester_id=data["requester_id"],
            original_event=decode_event(data["original_event"]),
            capabilities=frozenset(data.get("capabilities", ())),
            received_at=datetime.fromisoformat(data["received_at"]),
        )


@dataclass(frozen=True)
class AuthorizationDecision:
    """The answer to one request."""

    requester_id: str
    original_event: Event
    outcome: Outcome

    @property
    def granted(self) -> bool:
        return self.outcome == Outcome.GRANTED

    def to_event(self, source: str = "authorization") -> Event:
        """Decision event addressed to the requester only."""
        return Event(
            event_type=(
                AUTHORIZATION_GRANTED if self.granted else AUTHORIZATION_DENIED
            ),
            payload={
                "requester_id": self.requester_id,
                "original_event": self.original_event,
            },
            source=source,
            target=self.requester_id,
            correlation_id=self.original_event.correlation_id or self.original_event.id,
        )

    @classmethod
    def from_event(cls, event: Event) -> AuthorizationDecision:
        original = event.payload["original_event"]
        if isinstance(original, dict):
            original = Event.from_dict(original)
        return cls(
            requester_id=event.payload["requester_id"],
            original_event=original,
            outcome=(
                Outcome.GRANTED
                if event.event_type == AUTHORIZATION_GRANTED
                else Outcome.DENIED
            ),
        )


def authorization_requested(
    requester_id: str,
    original_event: Event,
    capabilities: Iterable[Attribute | str],
) -> Event:
    """Create an authorization.requested event."""
    return Event(
        event_type=AUTHORIZATION_REQUESTED,
        payload={
            "requester_id": requester_id,
            "original_event": original_event,
            "capabilities": sorted({attribute_key(c) for c in capabilities}),
        },
        source=requester_id,
        correlation_id=original_event.correlation_id or original_event.id,
    )
