"""
fieldauth - Main entry point.

This module demonstrates the authorization flow end to end and can be
run to verify the installation.
"""

from __future__ import annotations

import asyncio

from fieldauth.auth.machine import AuthorizationMachine
from fieldauth.auth.policies import RoleAuthority
from fieldauth.auth.requester import Requester
from fieldauth.config import Settings
from fieldauth.config_loader import DeclarationsLoader, default_declarations_path
from fieldauth.core.events import (
    AUTHENTICATION_SUBMITTED,
    AUTHENTICATION_UI,
    Event,
    EventBus,
)
from fieldauth.core.redaction import redact
from fieldauth.core.registry import AttributeRegistry
from fieldauth.providers.local import LocalProvider


async def demo():
    """
    Run a demonstration of the authorization machine.

    Two UI machines ask for fields before a login has happened; the
    machine shows a login form once, then answers both.
    """
    print("=" * 60)
    print("FIELDAUTH DEMO")
    print("=" * 60)
    print()

    print("Loading declarations...")
    registry = AttributeRegistry()
    loader = DeclarationsLoader(registry)
    counts = loader.load_file(default_declarations_path())
    print(f"  ✓ Loaded {counts['attributes']} attributes")
    print(f"  ✓ Loaded {counts['roles']} roles")
    print()

    settings = Settings(resumption_store="memory")
    provider = LocalProvider(settings=settings)
    for user in loader.users:
        provider.users.add_user(user["username"], user["password"], roles=user.get("roles", ()))

    bus = EventBus()
    machine = AuthorizationMachine(provider, RoleAuthority(loader.roles, registry), registry=registry)
    machine.wire(bus)

    async def show_login(event: Event) -> list[Event]:
        print(f"  → Login UI: {event.payload['kind']} asking for {event.payload['fields']}")
        return []

    bus.subscribe(AUTHENTICATION_UI, show_login)

    record = {
        "account/name": "Ada Lovelace",
        "account/email": "ada@example.com",
        "account/ssn": "078-05-1120",
    }

    async def report_decision(decision):
        print(f"  ← {decision.requester_id}: {decision.outcome.value} "
              f"({decision.original_event.event_type})")
        if decision.granted:
            print(f"    {decision.original_event.payload}")
        return []

    report = Requester("ui/report-1", bus, on_decision=report_decision)
    contact = Requester("ui/contact-card", bus, on_decision=report_decision)

    print("Requesting before login...")
    await report.request(Event("report.open", {"report_id": 1}), ["account/ssn"])
    await contact.request(Event("card.open", {"card": "contact"}), ["account/email"])
    print(f"  ✓ State: {machine.state.value}, pending: {[r.requester_id for r in machine.pending]}")
    print()

    print("Logging in as alice (clerk)...")
    await bus.publish(
        Event(
            event_type=AUTHENTICATION_SUBMITTED,
            payload={"username": "alice", "password": "alice-dev-password"},
        )
    )
    print(f"  ✓ State: {machine.state.value}, user: {machine.context.user_id}")
    print()

    print("What alice may read of the record:")
    readable = redact(
        record,
        lambda key: not machine.authority.missing(machine.context, [key]),
    )
    for key, value in readable.items():
        print(f"  • {key}: {value!r}")
    print()

    print("=" * 60)
    print("Demo complete!")
    print("=" * 60)


def main():
    """Main entry point."""
    asyncio.run(demo())


if __name__ == "__main__":
    main()
