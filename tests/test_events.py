"""
Tests for the event bus and the request/decision protocol.
"""

import json
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from fieldauth.auth.capabilities import Outcome
from fieldauth.auth.protocol import (
    AuthorizationDecision,
    AuthorizationRequest,
    authorization_requested,
)
from fieldauth.core.attributes import new_attribute
from fieldauth.core.codec import TAG, decode_event, decode_value, encode_event, encode_value
from fieldauth.core.events import (
    AUTHORIZATION_DENIED,
    AUTHORIZATION_GRANTED,
    AUTHORIZATION_REQUESTED,
    Event,
    EventBus,
    get_event_bus,
)
from fieldauth.core.redaction import REDACTED


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def original():
    return Event(event_type="report.open", payload={"report_id": 7}, source="ui/report-1")


# =============================================================================
# EventBus Tests
# =============================================================================


class TestEventBus:
    @pytest.mark.asyncio
    async def test_pattern_subscription(self, bus):
        seen = []

        async def handler(event):
            seen.append(event.event_type)
            return []

        bus.subscribe("authorization.*", handler)
        await bus.publish(Event("authorization.granted"))
        await bus.publish(Event("authentication.ui"))

        assert seen == ["authorization.granted"]

    @pytest.mark.asyncio
    async def test_target_filter(self, bus):
        seen = []

        async def handler(event):
            seen.append(event.target)
            return []

        bus.subscribe(AUTHORIZATION_GRANTED, handler, filter={"target": "ui/a"})
        await bus.publish(Event(AUTHORIZATION_GRANTED, target="ui/b"))
        await bus.publish(Event(AUTHORIZATION_GRANTED, target="ui/a"))

        assert seen == ["ui/a"]

    @pytest.mark.asyncio
    async def test_unaddressed_event_is_dropped(self, bus):
        results = await bus.publish(Event(AUTHORIZATION_DENIED, target="ui/gone"))

        assert results == []
        assert bus.get_history(target="ui/gone")

    @pytest.mark.asyncio
    async def test_cascade(self, bus):
        async def first(event):
            return [Event("step.two")]

        async def second(event):
            return [Event("step.three")]

        bus.subscribe("step.one", first)
        bus.subscribe("step.two", second)

        results = await bus.publish(Event("step.one"))

        assert [e.event_type for e in results] == ["step.two", "step.three"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self, bus):
        seen = []

        async def broken(event):
            raise RuntimeError("boom")

        async def working(event):
            seen.append(event.id)
            return []

        bus.subscribe("x.*", broken)
        bus.subscribe("x.*", working)
        await bus.publish(Event("x.y"))

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus):
        seen = []

        async def handler(event):
            seen.append(event)
            return []

        sub = bus.subscribe("x.y", handler)
        bus.unsubscribe(sub)
        await bus.publish(Event("x.y"))

        assert seen == []

    def test_default_bus_is_singleton(self):
        assert get_event_bus() is get_event_bus()


class TestEvent:
    def test_dict_round_trip(self, original):
        restored = Event.from_dict(original.to_dict())

        assert restored == original


# =============================================================================
# Protocol Tests
# =============================================================================


class TestProtocol:
    def test_request_event(self, original):
        ssn = new_attribute("account/ssn", "string")
        event = authorization_requested("ui/report-1", original, [ssn, "account/name", ssn])

        assert event.event_type == AUTHORIZATION_REQUESTED
        assert event.source == "ui/report-1"
        assert event.payload["capabilities"] == ["account/name", "account/ssn"]
        assert event.payload["original_event"] is original

    def test_request_from_event(self, original):
        event = authorization_requested("ui/report-1", original, ["account/ssn"])
        request = AuthorizationRequest.from_event(event)

        assert request.requester_id == "ui/report-1"
        assert request.original_event is original
        assert request.capabilities == frozenset({"account/ssn"})

    def test_request_dict_round_trip(self, original):
        request = AuthorizationRequest("ui/report-1", original, frozenset({"account/ssn"}))
        restored = AuthorizationRequest.from_dict(request.to_dict())

        assert restored == request
        assert restored.original_event == original

    def test_decision_is_addressed_to_requester(self, original):
        decision = AuthorizationDecision("ui/report-1", original, Outcome.DENIED)
        event = decision.to_event()

        assert event.event_type == AUTHORIZATION_DENIED
        assert event.target == "ui/report-1"
        assert AuthorizationDecision.from_event(event) == decision

    def test_granted_event(self, original):
        event = AuthorizationDecision("ui/report-1", original, Outcome.GRANTED).to_event()

        assert event.event_type == AUTHORIZATION_GRANTED
        assert AuthorizationDecision.from_event(event).granted


# =============================================================================
# Codec Tests
# =============================================================================


class TestCodec:
    def test_json_native_values_are_unchanged(self):
        data = {"a": [1, 2.5, "x", None, True], "b": {"c": "d"}}

        assert encode_value(data) == data

    def test_encoded_value_is_plain_json(self, original):
        value = {
            "id": uuid.uuid4(),
            "amount": Decimal("12.50"),
            "when": datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
            "day": date(2024, 5, 1),
            "raw": b"\x00\xff",
            "pair": (1, "a"),
            "tags": {"vip"},
            1: "int key",
            "hidden": REDACTED,
            "parent": original,
        }

        text = json.dumps(encode_value(value))

        assert decode_value(json.loads(text)) == value

    def test_dict_using_the_tag_key_is_escaped(self):
        value = {TAG: "uuid", "value": "not really"}

        assert decode_value(encode_value(value)) == value

    def test_unknown_type_is_refused(self):
        with pytest.raises(TypeError):
            encode_value({"handle": object()})

    def test_unknown_tag_is_refused(self):
        with pytest.raises(ValueError):
            decode_value({TAG: "pickle", "value": "..."})

    def test_event_payload_keeps_its_types(self):
        event = Event("report.open", payload={"cols": ("a", "b"), "id": uuid.uuid4()})

        restored = decode_event(encode_event(event))

        assert restored == event
        assert isinstance(restored.payload["cols"], tuple)
