"""
Route control.

The router is one more requesting machine. Navigating to a route that
needs capabilities pauses the navigation, asks for authorization, and
finishes it when the decision comes back. On a denial the router does
one of three things, picked by configuration:

- ABORT: stay on (return to) the prior location
- PLACEHOLDER: move to the route but render a permission-denied
  placement where the route would have been
- CUSTOM: hand the decision to an application callback
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from fieldauth.auth.protocol import AuthorizationDecision
from fieldauth.auth.requester import Requester
from fieldauth.core.attributes import Attribute
from fieldauth.core.events import Event, EventBus

logger = logging.getLogger(__name__)

ROUTE_NAVIGATE = "route.navigate"


class DeniedStrategy(str, Enum):
    """What the router does with a denied navigation."""

    ABORT = "abort"
    PLACEHOLDER = "placeholder"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Placement:
    """What is rendered at a route."""

    route: str
    permission_denied: bool = False


CustomDeniedHandler = Callable[[AuthorizationDecision, "RouteControl"], Awaitable[None]]


class RouteControl:
    """Gates navigation on authorization decisions."""

    def __init__(
        self,
        bus: EventBus,
        requester_id: str = "router",
        strategy: DeniedStrategy = DeniedStrategy.ABORT,
        on_denied: CustomDeniedHandler | None = None,
        initial_location: str = "/",
    ):
        if strategy == DeniedStrategy.CUSTOM and on_denied is None:
            raise ValueError("CUSTOM strategy needs an on_denied handler")

        self.strategy = strategy
        self.on_denied = on_denied
        self.location = initial_location
        self.placement = Placement(initial_location)
        self.requester = Requester(requester_id, bus, on_decision=self._on_decision)

    async def navigate(
        self,
        route: str,
        capabilities: Iterable[Attribute | str] = (),
    ) -> None:
        """Go to a route, asking for authorization first if it needs any."""
        capabilities = list(capabilities)
        if not capabilities:
            self._arrive(route)
            return

        await self.requester.request(
            Event(
                event_type=ROUTE_NAVIGATE,
                payload={"route": route, "from": self.location},
                source=self.requester.requester_id,
            ),
            capabilities,
        )

    def go_to(self, route: str, permission_denied: bool = False) -> None:
        """Move without asking (for custom handlers)."""
        self._arrive(route, permission_denied)

    def _arrive(self, route: str, permission_denied: bool = False) -> None:
        self.location = route
        self.placement = Placement(route, permission_denied)

    async def _on_decision(self, decision: AuthorizationDecision) -> list[Event]:
        event = decision.original_event
        if event.event_type != ROUTE_NAVIGATE:
            return []

        route = event.payload["route"]
        if decision.granted:
            self._arrive(route)
            return []

        logger.info(f"Navigation to {route} denied ({self.strategy.value})")
        if self.strategy == DeniedStrategy.ABORT:
            self._arrive(event.payload.get("from", self.location))
        elif self.strategy == DeniedStrategy.PLACEHOLDER:
            self._arrive(route, permission_denied=True)
        else:
            await self.on_denied(decision, self)
        return []

    def teardown(self) -> None:
        self.requester.teardown()
