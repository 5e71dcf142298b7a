"""
Attribute registry.

The registry is the central place where attribute declarations are
registered and looked up. Client and server load the same declarations
once at startup; after that every lookup is a pure read.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from fieldauth.core.attributes import Attribute, AttributeType, attribute_key

logger = logging.getLogger(__name__)

FromText = Callable[[str], Any]
ToText = Callable[[Any], str]

# Validator hook handed to the form layer: (form, key) -> valid?
FieldValidator = Callable[[Mapping[str, Any], str], bool]


# =============================================================================
# Default coercions
# =============================================================================


def _int_from_text(text: str) -> int:
    # Form input: malformed numbers become 0 instead of failing the form
    try:
        return int(text.strip())
    except (ValueError, AttributeError):
        return 0


def _uuid_from_text(text: str) -> uuid.UUID | str:
    try:
        return uuid.UUID(text.strip())
    except (ValueError, AttributeError):
        return text


def _decimal_from_text(text: str) -> Decimal:
    try:
        return Decimal(text.strip())
    except (InvalidOperation, AttributeError):
        return Decimal(0)


def _boolean_from_text(text: str) -> bool:
    try:
        return text.strip().lower() in {"true", "1", "yes", "on"}
    except AttributeError:
        return False


def _boolean_to_text(value: Any) -> str:
    return "true" if value else "false"


DEFAULT_COERCERS: dict[AttributeType, tuple[FromText | None, ToText | None]] = {
    AttributeType.INT: (_int_from_text, None),
    AttributeType.UUID: (_uuid_from_text, None),
    AttributeType.DECIMAL: (_decimal_from_text, None),
    AttributeType.BOOLEAN: (_boolean_from_text, _boolean_to_text),
}


# =============================================================================
# Registry
# =============================================================================


class AttributeRegistry:
    """
    Process-wide table of attribute descriptors, keyed by qualified key.

    Registration merges by key (last writer wins) and is expected once
    at startup. Reads are safe from anywhere after that.
    """

    def __init__(self, attributes: Iterable[Attribute] | None = None):
        self._attributes: dict[str, Attribute] = {}
        self._coercers: dict[AttributeType, tuple[FromText | None, ToText | None]] = dict(
            DEFAULT_COERCERS
        )
        if attributes:
            self.register(attributes)

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, attributes: Iterable[Attribute]) -> None:
        """Register attributes, replacing any prior entry with the same key."""
        # Build then swap so readers never see a half-applied update
        updated = dict(self._attributes)
        for attr in attributes:
            if not isinstance(attr, Attribute):
                logger.warning(f"Skipping non-attribute registration: {attr!r}")
                continue
            updated[attr.key] = attr
        self._attributes = updated
        logger.debug(f"Attribute registry holds {len(updated)} attributes")

    def clear(self) -> None:
        """Remove every attribute (test isolation)."""
        self._attributes = {}

    def register_coercer(
        self,
        type: AttributeType | str,
        from_text: FromText | None = None,
        to_text: ToText | None = None,
    ) -> None:
        """Add or replace the text coercions for a value type."""
        self._coercers[AttributeType(type)] = (from_text, to_text)

    # =========================================================================
    # Lookups
    # =========================================================================

    def lookup(self, key: Attribute | str) -> Attribute | None:
        """Get the attribute registered under a key, or None."""
        return self._attributes.get(attribute_key(key))

    def is_to_many(self, key: Attribute | str) -> bool:
        attr = self.lookup(key)
        return attr is not None and attr.is_to_many

    def is_identity(self, key: Attribute | str) -> bool:
        attr = self.lookup(key)
        return attr is not None and attr.unique

    def attributes(self) -> list[Attribute]:
        """Snapshot of all registered attributes."""
        return list(self._attributes.values())

    def identity_attributes(self) -> list[Attribute]:
        """All attributes marked as the identity of their entity."""
        return [a for a in self._attributes.values() if a.unique]

    def __contains__(self, key: object) -> bool:
        if isinstance(key, (Attribute, str)):
            return attribute_key(key) in self._attributes
        return False

    def __len__(self) -> int:
        return len(self._attributes)

    # =========================================================================
    # Coercion
    # =========================================================================

    def coerce_from_text(self, key: Attribute | str, text: str) -> Any:
        """
        Turn raw form text into a typed value for an attribute.

        Never raises: malformed numbers become 0 and unknown keys or
        types pass the text through unchanged.
        """
        attr = self.lookup(key)
        if attr is None:
            return text
        from_text, _ = self._coercers.get(attr.type, (None, None))
        if from_text is None:
            return text
        return from_text(text)

    def coerce_to_text(self, key: Attribute | str, value: Any) -> str:
        """Turn a typed value back into text for display or form input."""
        if value is None:
            return ""
        attr = self.lookup(key)
        if attr is not None:
            _, to_text = self._coercers.get(attr.type, (None, None))
            if to_text is not None:
                return to_text(value)
        return str(value)


# =============================================================================
# Form validation hook
# =============================================================================


def make_validator(attributes: Iterable[Attribute]) -> FieldValidator:
    """
    Build a field validator for the form layer.

    Fields with a `valid` predicate are checked against their current
    value. Unknown fields and fields without a predicate are valid.
    """
    by_key = {attr.key: attr for attr in attributes}

    def validator(form: Mapping[str, Any], key: Attribute | str) -> bool:
        attr = by_key.get(attribute_key(key))
        if attr is None or attr.valid is None:
            return True
        return bool(attr.valid(attr.get(form)))

    return validator


# Singleton registry for the application
_default_registry: AttributeRegistry | None = None


def get_registry() -> AttributeRegistry:
    """Get the default registry instance."""
    global _default_registry
    if _default_registry is None:
        _default_registry = AttributeRegistry()
    return _default_registry


def reset_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None
