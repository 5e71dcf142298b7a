"""
Tests for query helpers and redaction.
"""

import copy
import pickle

from fieldauth.core.attributes import new_attribute
from fieldauth.core.query import (
    Param,
    attributes_to_query,
    query_keys,
    rewrite_query_attributes_to_keys,
)
from fieldauth.core.redaction import REDACTED, Redacted, is_redacted, redact


# =============================================================================
# Fixtures
# =============================================================================


name = new_attribute("account/name", "string")
address = new_attribute("account/address", "ref", target="address/id")
city = new_attribute("address/city", "string")


# =============================================================================
# Query Tests
# =============================================================================


class TestAttributesToQuery:
    def test_plain_and_ref(self):
        assert attributes_to_query([name, address]) == [
            "account/name",
            {"account/address": ["address/id"]},
        ]

    def test_keeps_order(self):
        assert attributes_to_query([city, name]) == ["address/city", "account/name"]

    def test_empty(self):
        assert attributes_to_query([]) == []


class TestRewriteQuery:
    def test_nested_attributes(self):
        query = [name, {address: [city, "address/id"]}]

        assert rewrite_query_attributes_to_keys(query) == [
            "account/name",
            {"account/address": ["address/city", "address/id"]},
        ]

    def test_params_and_unions(self):
        query = [
            Param(name, {"limit": 1}),
            {address: {"home": [city], "work": ["address/id"]}},
        ]

        rewritten = rewrite_query_attributes_to_keys(query)

        assert rewritten[0] == Param("account/name", {"limit": 1})
        assert rewritten[1] == {
            "account/address": {"home": ["address/city"], "work": ["address/id"]}
        }

    def test_recursion_markers_untouched(self):
        query = [{"account/friends": "..."}, {"account/parent": 3}]

        assert rewrite_query_attributes_to_keys(query) == query

    def test_plain_query_unchanged(self):
        query = ["account/name", {"account/address": ["address/id"]}]

        assert rewrite_query_attributes_to_keys(query) == query


class TestQueryKeys:
    def test_collects_in_order(self):
        query = [name, {address: [city, "...", "address/city"]}, Param("account/ssn")]

        assert query_keys(query) == [
            "account/name",
            "account/address",
            "address/city",
            "account/ssn",
        ]


# =============================================================================
# Redaction Tests
# =============================================================================


class TestRedacted:
    def test_singleton(self):
        assert Redacted() is REDACTED
        assert copy.copy(REDACTED) is REDACTED
        assert copy.deepcopy({"a": REDACTED})["a"] is REDACTED
        assert pickle.loads(pickle.dumps(REDACTED)) is REDACTED

    def test_is_redacted(self):
        assert is_redacted(REDACTED)
        assert not is_redacted(None)
        assert not is_redacted("<REDACTED>")


class TestRedact:
    def test_keeps_keys_replaces_values(self):
        data = {"account/name": "Ada", "account/ssn": "078-05-1120"}

        result = redact(data, lambda key: key != "account/ssn")

        assert result == {"account/name": "Ada", "account/ssn": REDACTED}
        assert data["account/ssn"] == "078-05-1120"

    def test_nested_joins(self):
        data = {
            "account/name": "Ada",
            "account/address": {"address/id": 1, "address/city": "London"},
            "account/friends": [
                {"account/name": "Charles", "account/ssn": "x"},
            ],
        }

        result = redact(data, lambda key: key not in {"address/city", "account/ssn"})

        assert result["account/address"] == {"address/id": 1, "address/city": REDACTED}
        assert result["account/friends"] == [{"account/name": "Charles", "account/ssn": REDACTED}]

    def test_redacted_join_not_descended(self):
        data = {"account/address": {"address/city": "London"}}

        assert redact(data, lambda key: key != "account/address") == {
            "account/address": REDACTED
        }

    def test_attribute_keys(self):
        data = {name: "Ada"}

        assert redact(data, lambda key: False) == {name: REDACTED}
