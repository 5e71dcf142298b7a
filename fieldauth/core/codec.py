"""
Type-preserving JSON encoding for event payloads.

A redirect login parks the pending queue in storage while the application
is unloaded. Original events must come back equal to what the requester
sent, so values JSON cannot express (tuples, sets, UUIDs, decimals,
datetimes, bytes, the REDACTED sentinel, nested events) are written as
tagged objects and restored on the way back in.

Anything else raises TypeError rather than degrading silently.
"""

from __future__ import annotations

import base64
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fieldauth.core.events import Event
from fieldauth.core.redaction import REDACTED, Redacted

TAG = "__type__"

# Exact types only: a str-valued Enum must not come back as a plain str
_NATIVE = (type(None), bool, int, float, str)


def encode_value(value: Any) -> Any:
    """Encode a value into JSON-native data that `decode_value` reverses."""
    if type(value) in _NATIVE:
        return value
    if type(value) is list:
        return [encode_value(v) for v in value]
    if type(value) is dict:
        if TAG not in value and all(type(k) is str for k in value):
            return {k: encode_value(v) for k, v in value.items()}
        return _tagged(
            "dict", [[encode_value(k), encode_value(v)] for k, v in value.items()]
        )
    if type(value) is tuple:
        return _tagged("tuple", [encode_value(v) for v in value])
    if type(value) in (set, frozenset):
        return _tagged(type(value).__name__, [encode_value(v) for v in value])
    if isinstance(value, uuid.UUID):
        return _tagged("uuid", str(value))
    if isinstance(value, Decimal):
        return _tagged("decimal", str(value))
    if isinstance(value, datetime):
        return _tagged("datetime", value.isoformat())
    if isinstance(value, date):
        return _tagged("date", value.isoformat())
    if isinstance(value, bytes):
        return _tagged("bytes", base64.b64encode(value).decode("ascii"))
    if isinstance(value, Redacted):
        return _tagged("redacted", None)
    if isinstance(value, Event):
        return _tagged("event", encode_event(value))
    raise TypeError(f"Cannot encode value of type {type(value).__name__}")


def decode_value(data: Any) -> Any:
    """Reverse `encode_value`."""
    if isinstance(data, list):
        return [decode_value(v) for v in data]
    if not isinstance(data, dict):
        return data
    if TAG not in data:
        return {k: decode_value(v) for k, v in data.items()}

    kind, value = data[TAG], data.get("value")
    if kind == "dict":
        return {decode_value(k): decode_value(v) for k, v in value}
    if kind == "tuple":
        return tuple(decode_value(v) for v in value)
    if kind == "set":
        return {decode_value(v) for v in value}
    if kind == "frozenset":
        return frozenset(decode_value(v) for v in value)
    if kind == "uuid":
        return uuid.UUID(value)
    if kind == "decimal":
        return Decimal(value)
    if kind == "datetime":
        return datetime.fromisoformat(value)
    if kind == "date":
        return date.fromisoformat(value)
    if kind == "bytes":
        return base64.b64decode(value)
    if kind == "redacted":
        return REDACTED
    if kind == "event":
        return decode_event(value)
    raise ValueError(f"Unknown encoded type: {kind}")


def encode_event(event: Event) -> dict[str, Any]:
    """Event as JSON-native data, payload types preserved."""
    data = event.to_dict()
    data["payload"] = encode_value(event.payload)
    return data


def decode_event(data: dict[str, Any]) -> Event:
    """Reverse `encode_event`."""
    event = Event.from_dict(data)
    event.payload = decode_value(event.payload)
    return event


def _tagged(kind: str, value: Any) -> dict[str, Any]:
    return {TAG: kind, "value": value}
