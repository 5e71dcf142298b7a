"""
Attribute descriptors.

An attribute is the metadata for one field of the data model: its
qualified key, value type, cardinality, whether it is the identity of
its entity, and an open map of facets other subsystems hang data on.

Attributes are immutable and double as accessors:

    ssn = new_attribute("account/ssn", AttributeType.STRING)
    ssn.get({"account/ssn": "123-45-6789"})  # "123-45-6789"
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable

logger = logging.getLogger(__name__)


# Facet marking an attribute as readable without any granted role
PUBLIC_FACET = "auth/public"


class AttributeType(str, Enum):
    """Value types an attribute can declare."""

    STRING = "string"
    INT = "int"
    UUID = "uuid"
    REF = "ref"
    BOOLEAN = "boolean"
    DECIMAL = "decimal"
    INSTANT = "instant"
    ENUM = "enum"
    KEYWORD = "keyword"


class Cardinality(str, Enum):
    """How many values an attribute holds."""

    ONE = "one"
    MANY = "many"


# =============================================================================
# Qualified keys
# =============================================================================


def qualified_key(namespace: str, name: str) -> str:
    """Build a qualified key like "account/ssn"."""
    return f"{namespace}/{name}" if namespace else name


def split_key(key: str) -> tuple[str, str]:
    """Split a qualified key into (namespace, name)."""
    namespace, sep, name = key.rpartition("/")
    if not sep:
        return "", key
    return namespace, name


# =============================================================================
# Attribute
# =============================================================================


@dataclass(frozen=True, eq=False)
class Attribute:
    """
    Descriptor for a single field.

    Identity is the qualified key: two attributes with the same key are
    equal and hash the same, so attributes can be used wherever a key
    can (dict keys, sets, query selectors).
    """

    key: str
    type: AttributeType = AttributeType.STRING
    target: str | None = None
    cardinality: Cardinality = Cardinality.ONE
    unique: bool = False
    valid: Callable[[Any], bool] | None = None
    extensions: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "type", AttributeType(self.type))
        object.__setattr__(self, "cardinality", Cardinality(self.cardinality))
        object.__setattr__(self, "extensions", MappingProxyType(dict(self.extensions)))

        if self.type == AttributeType.REF and not self.target:
            logger.warning(
                f"Reference attribute {self.key} has no target; "
                "queries will select it as a bare key"
            )

    @property
    def namespace(self) -> str:
        return split_key(self.key)[0]

    @property
    def name(self) -> str:
        return split_key(self.key)[1]

    @property
    def is_ref(self) -> bool:
        return self.type == AttributeType.REF

    @property
    def is_to_many(self) -> bool:
        return self.cardinality == Cardinality.MANY

    @property
    def is_public(self) -> bool:
        return bool(self.extensions.get(PUBLIC_FACET, False))

    def get(self, data: Mapping[Any, Any], default: Any = None) -> Any:
        """
        Extract this attribute's value from a keyed data bag.

        Works with bags keyed by qualified key or by attribute object.
        """
        if self.key in data:
            return data[self.key]
        if self in data:
            return data[self]
        return default

    def facet(self, name: str, default: Any = None) -> Any:
        """Read an extension facet."""
        return self.extensions.get(name, default)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Attribute):
            return self.key == other.key
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"<Attribute {self.key} ({self.type.value})>"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a declaration dict (predicates are not serializable)."""
        data: dict[str, Any] = {
            "key": self.key,
            "type": self.type.value,
            "cardinality": self.cardinality.value,
            "unique": self.unique,
        }
        if self.target:
            data["target"] = self.target
        if self.extensions:
            data["extensions"] = dict(self.extensions)
        return data

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        validators: Mapping[str, Callable[[Any], bool]] | None = None,
    ) -> Attribute:
        """
        Build an attribute from a declaration dict (e.g. parsed YAML).

        A "valid" entry names a predicate in `validators`. Qualified
        entries (e.g. "auth/public") are extension facets, same as the
        ones listed under "extensions".
        """
        valid = None
        validator_name = data.get("valid")
        if validator_name:
            valid = (validators or {}).get(validator_name)
            if valid is None:
                logger.warning(f"Unknown validator '{validator_name}' on {data['key']}")

        return cls(
            key=data["key"],
            type=AttributeType(data.get("type", "string")),
            target=data.get("target"),
            cardinality=Cardinality(data.get("cardinality", "one")),
            unique=bool(data.get("unique", False)),
            valid=valid,
            extensions={
                **data.get("extensions", {}),
                **{k: v for k, v in data.items() if "/" in k},
            },
        )


def new_attribute(
    key: str,
    type: AttributeType | str,
    *,
    target: str | None = None,
    cardinality: Cardinality | str = Cardinality.ONE,
    unique: bool = False,
    valid: Callable[[Any], bool] | None = None,
    **extensions: Any,
) -> Attribute:
    """
    Declare an attribute.

    Keyword arguments beyond the known options become extension facets:

        new_attribute("account/id", "uuid", unique=True)
        new_attribute("account/name", "string", **{PUBLIC_FACET: True})
    """
    return Attribute(
        key=key,
        type=AttributeType(type),
        target=target,
        cardinality=Cardinality(cardinality),
        unique=unique,
        valid=valid,
        extensions=extensions,
    )


def attribute_key(attr_or_key: Attribute | str) -> str:
    """Normalize an attribute or key to its qualified key."""
    if isinstance(attr_or_key, Attribute):
        return attr_or_key.key
    return attr_or_key
