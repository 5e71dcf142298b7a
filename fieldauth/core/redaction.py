"""
Redaction sentinel.

A field the reader may not see is never dropped and never nulled: its
value is replaced with REDACTED so consumers can tell "exists but hidden"
apart from "absent" and from None.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable


class Redacted:
    """Type of the REDACTED sentinel. There is exactly one instance."""

    _instance: Redacted | None = None

    def __new__(cls) -> Redacted:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<REDACTED>"

    def __str__(self) -> str:
        return "<REDACTED>"

    def __reduce__(self):
        return (Redacted, ())

    def __copy__(self) -> Redacted:
        return self

    def __deepcopy__(self, memo: dict) -> Redacted:
        return self


REDACTED = Redacted()


def is_redacted(value: Any) -> bool:
    """Is this value the redaction sentinel?"""
    return value is REDACTED


def redact(data: Any, can_read: Callable[[str], bool]) -> Any:
    """
    Substitute REDACTED for every field the reader may not see.

    Walks nested entities (joins) and lists of entities. Keys are kept,
    only values change; a redacted join is not descended into.
    """
    if isinstance(data, Mapping):
        result: dict[Any, Any] = {}
        for key, value in data.items():
            field_key = getattr(key, "key", key)
            if isinstance(field_key, str) and not can_read(field_key):
                result[key] = REDACTED
            else:
                result[key] = redact(value, can_read)
        return result
    if isinstance(data, list):
        return [redact(item, can_read) for item in data]
    return data
