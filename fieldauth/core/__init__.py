"""
Core module - attribute model and infrastructure.

This module contains:
- attributes: Attribute descriptors and qualified keys
- registry: The attribute registry, coercion and the form validator hook
- query: Graph query helpers built from attributes
- redaction: The REDACTED sentinel
- events: Event system for request/decision traffic
- codec: Type-preserving JSON encoding for persisted events
- utils: Shared utility functions
"""

from fieldauth.core.attributes import (
    PUBLIC_FACET,
    Attribute,
    AttributeType,
    Cardinality,
    attribute_key,
    new_attribute,
    qualified_key,
    split_key,
)

from fieldauth.core.registry import (
    AttributeRegistry,
    get_registry,
    make_validator,
    reset_registry,
)

from fieldauth.core.query import (
    Param,
    attributes_to_query,
    query_keys,
    rewrite_query_attributes_to_keys,
)

from fieldauth.core.redaction import (
    REDACTED,
    Redacted,
    is_redacted,
    redact,
)

from fieldauth.core.events import (
    Event,
    EventBus,
    Subscription,
    get_event_bus,
    reset_event_bus,
)

from fieldauth.core.codec import (
    decode_event,
    decode_value,
    encode_event,
    encode_value,
)

from fieldauth.core.utils import (
    generate_id,
    utc_now,
)

__all__ = [
    # Attributes
    "PUBLIC_FACET",
    "Attribute",
    "AttributeType",
    "Cardinality",
    "attribute_key",
    "new_attribute",
    "qualified_key",
    "split_key",
    # Registry
    "AttributeRegistry",
    "get_registry",
    "make_validator",
    "reset_registry",
    # Query
    "Param",
    "attributes_to_query",
    "query_keys",
    "rewrite_query_attributes_to_keys",
    # Redaction
    "REDACTED",
    "Redacted",
    "is_redacted",
    "redact",
    # Events
    "Event",
    "EventBus",
    "Subscription",
    "get_event_bus",
    "reset_event_bus",
    # Codec
    "decode_event",
    "decode_value",
    "encode_event",
    "encode_value",
    # Utils
    "generate_id",
    "utc_now",
]
