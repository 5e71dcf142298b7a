"""
Graph query helpers.

Queries are plain data:

    ["account/id", "account/name", {"account/address": ["address/id"]}]

* a list is a field selection;
* a str (or Attribute) is a bare field selector;
* a one-entry dict is a join from a field to a sub-query;
* a dict as a join's sub-query is a union (branch key -> sub-query);
* `Param(expr, params)` attaches parameters/directives to a selector or join;
* "..." or an int as a join's sub-query means recursion.

Ergonomic APIs let callers write queries with attribute objects; the
query layer only understands qualified keys, so queries are rewritten
before they leave the process.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from fieldauth.core.attributes import Attribute

Query = list[Any]


@dataclass(frozen=True)
class Param:
    """A selector or join with attached parameters."""

    expr: Any
    params: dict[str, Any] = field(default_factory=dict)


def attributes_to_query(attributes: Iterable[Attribute]) -> Query:
    """
    Build a field selection from attributes, in order.

    Reference attributes with a known target select just the target's
    identity key; everything else is a bare selector.
    """
    query: Query = []
    for attr in attributes:
        if attr.is_ref and attr.target:
            query.append({attr.key: [attr.target]})
        else:
            query.append(attr.key)
    return query


def rewrite_query_attributes_to_keys(query: Any) -> Any:
    """Replace every attribute object in a query with its qualified key."""
    if isinstance(query, Attribute):
        return query.key
    if isinstance(query, Param):
        return Param(rewrite_query_attributes_to_keys(query.expr), query.params)
    if isinstance(query, dict):
        return {
            rewrite_query_attributes_to_keys(k): rewrite_query_attributes_to_keys(v)
            for k, v in query.items()
        }
    if isinstance(query, (list, tuple)):
        return type(query)(rewrite_query_attributes_to_keys(q) for q in query)
    return query


def query_keys(query: Any) -> list[str]:
    """
    Every field key a query reads, in first-seen order.

    Useful for turning a query into the capability set needed to run it.
    """
    seen: dict[str, None] = {}

    def walk(node: Any) -> None:
        if isinstance(node, Attribute):
            seen.setdefault(node.key, None)
        elif isinstance(node, str):
            if node != "...":
                seen.setdefault(node, None)
        elif isinstance(node, Param):
            walk(node.expr)
        elif isinstance(node, dict):
            for k, v in node.items():
                walk(k)
                walk(v)
        elif isinstance(node, (list, tuple)):
            for item in node:
                walk(item)

    walk(query)
    return list(seen)
