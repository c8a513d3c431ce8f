"""Tests for the rule matcher."""

from __future__ import annotations

import pytest

from hookrunner.hooks import HookDefinitionError, RequestSnapshot, RuleError
from hookrunner.hooks.rules import compile_rules, flatten_rules, resolve_path


def _snapshot(**overrides) -> RequestSnapshot:
    fields = dict(
        method="POST",
        url="/hooks/deploy?env=prod",
        hostname="example.com",
        ip="10.0.0.1",
        headers={"x-event": "push", "content-type": "application/json"},
        query={"env": "prod"},
        body={
            "ref": "refs/heads/main",
            "size": 42,
            "tags": ["a", "b"],
            "commits": [{"id": "c1"}, {"id": "c2"}],
            "repository": {"name": "app", "private": False},
        },
    )
    fields.update(overrides)
    return RequestSnapshot(**fields)


def _matches(rules, snapshot=None) -> bool:
    return compile_rules(rules).test(snapshot or _snapshot())


# =============================================================================
# Paths and flattening
# =============================================================================


class TestResolvePath:
    def test_nested_mapping(self):
        assert resolve_path({"a": {"b": 1}}, "a.b") == [1]

    def test_missing(self):
        assert resolve_path({"a": {}}, "a.b") == []
        assert resolve_path({"a": 5}, "a.b") == []

    def test_list_index(self):
        assert resolve_path({"a": [10, 20]}, "a.1") == [20]
        assert resolve_path({"a": [10, 20]}, "a.5") == []

    def test_list_fan_out(self):
        data = {"a": [{"id": 1}, {"x": 0}, {"id": 3}]}
        assert resolve_path(data, "a.id") == [1, 3]


class TestFlatten:
    def test_structured_rules_expand_one_level(self):
        flat = flatten_rules({"headers": {"x-event": "push"}, "method": "POST"})
        assert flat == {"headers.x-event": "push", "method": "POST"}

    def test_operator_expression_is_not_expanded(self):
        rules = {"method": {"$in": ["GET", "POST"]}}
        assert flatten_rules(rules) == rules

    def test_operator_under_sub_field_is_kept(self):
        flat = flatten_rules({"body": {"size": {"$gt": 1}}})
        assert flat == {"body.size": {"$gt": 1}}


# =============================================================================
# Matching
# =============================================================================


class TestEquality:
    def test_no_rules_always_match(self):
        assert _matches(None)
        assert _matches({})

    def test_top_level_equality(self):
        assert _matches({"method": "POST"})
        assert not _matches({"method": "GET"})

    def test_header_and_query(self):
        assert _matches({"headers": {"x-event": "push"}, "query": {"env": "prod"}})
        assert not _matches({"query": {"env": "staging"}})

    def test_every_rule_must_hold(self):
        assert not _matches({"method": "POST", "headers": {"x-event": "release"}})

    def test_missing_field_does_not_equal(self):
        assert not _matches({"headers": {"x-signature": "abc"}})

    def test_list_field_contains_value(self):
        assert _matches({"body": {"tags": "a"}})
        assert _matches({"body": {"tags": ["a", "b"]}})
        assert not _matches({"body": {"tags": "c"}})

    def test_nested_mapping_is_whole_value_equality(self):
        assert _matches({"body": {"repository": {"name": "app", "private": False}}})
        assert not _matches({"body": {"repository": {"name": "app"}}})

    def test_dotted_sub_field(self):
        assert _matches({"body": {"repository.name": "app"}})
        assert _matches({"body": {"commits.id": "c2"}})
        assert _matches({"body": {"commits.0.id": "c1"}})
        assert not _matches({"body": {"commits.1.id": "c1"}})

    def test_eq_and_ne(self):
        assert _matches({"method": {"$eq": "POST"}})
        assert _matches({"method": {"$ne": "GET"}})
        assert not _matches({"method": {"$ne": "POST"}})

    def test_dict_snapshot_accepted(self):
        assert compile_rules({"method": "GET"}).test({"method": "GET"})


class TestComparison:
    @pytest.mark.parametrize(
        "expr,expected",
        [
            ({"$gt": 40}, True),
            ({"$gt": 42}, False),
            ({"$gte": 42}, True),
            ({"$lt": 40}, False),
            ({"$lte": 42}, True),
            ({"$gt": 40, "$lt": 50}, True),
            ({"$gt": 40, "$lt": 41}, False),
        ],
    )
    def test_numeric(self, expr, expected):
        assert _matches({"body": {"size": expr}}) is expected

    def test_incomparable_types_never_match(self):
        assert not _matches({"body": {"ref": {"$gt": 5}}})
        assert not _matches({"body": {"size": {"$lt": "z"}}})

    def test_missing_field_never_compares(self):
        assert not _matches({"body": {"missing": {"$lt": 100}}})

    def test_string_ordering(self):
        assert _matches({"hostname": {"$gte": "example.com"}})

    def test_numeric_query_string(self):
        snapshot = _snapshot(query={"n": "10"})
        assert _matches({"query": {"n": {"$gt": 5}}}, snapshot)
        assert not _matches({"query": {"n": {"$lt": 5}}}, snapshot)
        assert _matches({"query": {"n": {"$lte": 10.0}}}, snapshot)

    def test_numeric_header(self):
        snapshot = _snapshot(headers={"content-length": "120"})
        assert _matches({"headers": {"content-length": {"$lt": 1000}}}, snapshot)
        assert not _matches({"headers": {"content-length": {"$gte": 1000}}}, snapshot)

    def test_non_numeric_string_never_compares_to_number(self):
        snapshot = _snapshot(query={"n": "ten"})
        assert not _matches({"query": {"n": {"$gt": 5}}}, snapshot)
        assert not _matches({"query": {"n": {"$lt": 5}}}, snapshot)


class TestMembership:
    def test_in(self):
        assert _matches({"headers": {"x-event": {"$in": ["push", "release"]}}})
        assert not _matches({"headers": {"x-event": {"$in": ["release"]}}})

    def test_nin(self):
        assert not _matches({"headers": {"x-event": {"$nin": ["push"]}}})
        assert _matches({"method": {"$nin": ["GET", "HEAD"]}})

    def test_nin_holds_for_missing_field(self):
        assert _matches({"headers": {"x-signature": {"$nin": ["abc"]}}})


class TestExists:
    def test_exists_true(self):
        assert _matches({"headers": {"x-event": {"$exists": True}}})
        assert not _matches({"headers": {"x-signature": {"$exists": True}}})

    def test_exists_false(self):
        assert _matches({"headers": {"x-signature": {"$exists": False}}})
        assert not _matches({"headers": {"x-event": {"$exists": False}}})


class TestRegex:
    def test_regex(self):
        assert _matches({"body": {"ref": {"$regex": "^refs/heads/"}}})
        assert not _matches({"body": {"ref": {"$regex": "^refs/tags/"}}})

    def test_options(self):
        assert not _matches({"body": {"ref": {"$regex": "^REFS/"}}})
        assert _matches({"body": {"ref": {"$regex": "^REFS/", "$options": "i"}}})

    def test_regex_on_url(self):
        assert _matches({"url": {"$regex": r"env=prod$"}})

    def test_regex_skips_non_strings(self):
        assert not _matches({"body": {"size": {"$regex": "42"}}})

    def test_not(self):
        assert _matches({"body": {"ref": {"$not": {"$regex": "tags"}}}})
        assert not _matches({"body": {"ref": {"$not": "heads"}}})


# =============================================================================
# Malformed rules
# =============================================================================


class TestMalformedRules:
    @pytest.mark.parametrize(
        "rules",
        [
            {"method": {"$like": "P%"}},
            {"path": "/x"},
            {"method": {"$in": "GET"}},
            {"body": {"ref": {"$regex": "("}}},
            {"body": {"ref": {"$regex": "x", "$options": "q"}}},
            {"body": {"ref": {"$options": "i"}}},
            {"body": {"$gt": 1, "size": 2}},
            {"body": {"size": {"$gt": [1]}}},
            {"body": {"ref": {"$not": 5}}},
        ],
    )
    def test_raises_rule_error(self, rules):
        with pytest.raises(RuleError):
            compile_rules(rules)

    def test_rule_error_is_definition_error(self):
        assert issubclass(RuleError, HookDefinitionError)


class TestDeterminism:
    def test_compiling_twice_behaves_the_same(self):
        rules = {"method": "POST", "body": {"size": {"$gte": 10}}}
        a, b = compile_rules(rules), compile_rules(rules)
        assert a.paths == b.paths
        for snap in (_snapshot(), _snapshot(method="GET"), _snapshot(body={"size": 1})):
            assert a.test(snap) == b.test(snap)
