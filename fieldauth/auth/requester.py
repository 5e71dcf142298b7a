"""
Requesting machines.

Any UI-owning machine that must be granted something before it
proceeds. It raises a request carrying the event it paused on, and
later gets that event back inside the decision addressed to it. It
never knows which provider (if any) ran in between.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Awaitable, Callable

from fieldauth.auth.protocol import AuthorizationDecision, authorization_requested
from fieldauth.core.attributes import Attribute
from fieldauth.core.events import (
    AUTHORIZATION_DENIED,
    AUTHORIZATION_GRANTED,
    Event,
    EventBus,
)

logger = logging.getLogger(__name__)

DecisionHandler = Callable[[AuthorizationDecision], Awaitable[list[Event] | None]]


class Requester:
    """
    A machine that asks for authorization and waits for its own answer.

    Usage:
        async def open_report(decision):
            if decision.granted:
                show(decision.original_event.payload["report_id"])

        report = Requester("ui/report-1", bus, on_decision=open_report)
        await report.request(Event("report.open", {"report_id": 7}), ["account/ssn"])
    """

    def __init__(
        self,
        requester_id: str,
        bus: EventBus,
        on_decision: DecisionHandler | None = None,
    ):
        self.requester_id = requester_id
        self.bus = bus
        self.on_decision = on_decision
        self.decisions: list[AuthorizationDecision] = []
        self._subscriptions = [
            bus.subscribe(pattern, self._receive, filter={"target": requester_id})
            for pattern in (AUTHORIZATION_GRANTED, AUTHORIZATION_DENIED)
        ]

    @property
    def active(self) -> bool:
        return bool(self._subscriptions)

    async def request(
        self,
        original_event: Event,
        capabilities: Iterable[Attribute | str],
    ) -> list[Event]:
        """Ask for a capability set; the decision arrives asynchronously."""
        if not self.active:
            logger.warning(f"Requester {self.requester_id} is torn down; request not sent")
            return []
        return await self.bus.publish(
            authorization_requested(self.requester_id, original_event, capabilities)
        )

    async def _receive(self, event: Event) -> list[Event]:
        decision = AuthorizationDecision.from_event(event)
        self.decisions.append(decision)
        if self.on_decision is None:
            return []
        return await self.on_decision(decision) or []

    def teardown(self) -> None:
        """Stop listening. Decisions that arrive later are dropped by the bus."""
        for subscription in self._subscriptions:
            self.bus.unsubscribe(subscription)
        self._subscriptions = []
