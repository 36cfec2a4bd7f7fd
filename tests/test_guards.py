"""Tests for guard rules and the condition evaluator."""

from __future__ import annotations

import pytest

from branchcov.errors import ConfigurationError, ErrorCode
from branchcov.model import ConditionEvaluator, Dimension, GuardRule, Value, ValueKind, exclude


@pytest.fixture
def abc_dimensions() -> list[Dimension]:
    return [
        Dimension("a", ["a1", "a2"]),
        Dimension("b", ["b1", "b2"]),
        Dimension("c", ["c1", "c2"]),
    ]


class TestExcludeHelper:
    def test_single_and_list_targets(self):
        rule = exclude("auth", "anon", plan="premium", credits=["low", "high"])
        assert rule.source == ("auth", "anon")
        assert rule.implies_excluded == frozenset(
            {("plan", "premium"), ("credits", "low"), ("credits", "high")}
        )
        assert rule.description


class TestClosure:
    """Exclusion closure: symmetric edges plus forcing propagation."""

    def test_declared_edge_is_symmetric(self, auth_dimension, credits_dimension, auth_credits_guard):
        ev = ConditionEvaluator([auth_dimension, credits_dimension], [auth_credits_guard])
        assert ev.excludes(("auth", "unauthenticated"), ("credits", "exact"))
        assert ev.excludes(("credits", "exact"), ("auth", "unauthenticated"))
        assert not ev.excludes(("auth", "authenticated"), ("credits", "exact"))

    def test_forcing_propagates_exclusions(self, abc_dimensions):
        # a1 excludes b2, so a1 forces b1; b1 excludes c1, hence a1 excludes c1.
        rules = [exclude("a", "a1", b="b2"), exclude("b", "b1", c="c1")]
        ev = ConditionEvaluator(abc_dimensions, rules)
        assert ev.excludes(("a", "a1"), ("c", "c1"))
        assert ev.excludes(("c", "c1"), ("a", "a1"))
        assert not ev.is_possible({"a": "a1", "c": "c1"})
        assert ev.is_possible({"a": "a1", "c": "c2"})

    def test_closure_is_deterministic(self, abc_dimensions):
        rules = [exclude("a", "a1", b="b2"), exclude("b", "b1", c="c1")]
        first = ConditionEvaluator(abc_dimensions, rules).excluded_pairs()
        second = ConditionEvaluator(abc_dimensions, list(reversed(rules))).excluded_pairs()
        assert first == second

    def test_closure_is_sound(self, abc_dimensions):
        # Every derived pair must be absent from every valid full assignment.
        rules = [exclude("a", "a1", b="b2"), exclude("b", "b1", c="c1")]
        ev = ConditionEvaluator(abc_dimensions, rules)
        declared = ConditionEvaluator(abc_dimensions, rules)
        valid = [
            {"a": a, "b": b, "c": c}
            for a in ("a1", "a2")
            for b in ("b1", "b2")
            for c in ("c1", "c2")
            if not declared.excludes(("a", a), ("b", b))
            and not declared.excludes(("b", b), ("c", c))
        ]
        for pair in ev.excluded_pairs():
            (d1, v1), (d2, v2) = sorted(pair)
            assert not any(s[d1] == v1 and s[d2] == v2 for s in valid)

    def test_same_dimension_targets_ignored(self, abc_dimensions):
        ev = ConditionEvaluator(abc_dimensions, [exclude("a", "a1", a="a2")])
        assert ev.excluded_pairs() == set()

    def test_no_rules(self, abc_dimensions):
        ev = ConditionEvaluator(abc_dimensions)
        assert ev.excluded_pairs() == set()
        assert ev.is_possible({"a": "a1", "b": "b2", "c": "c1"})


class TestValidation:
    def test_undeclared_dimension(self, auth_dimension):
        with pytest.raises(ConfigurationError, match="undeclared dimension") as exc_info:
            ConditionEvaluator([auth_dimension], [exclude("auth", "unauthenticated", plan="pro")])
        assert exc_info.value.error_code is ErrorCode.UNKNOWN_REFERENCE

    def test_undeclared_value(self, auth_dimension, credits_dimension):
        with pytest.raises(ConfigurationError, match="undeclared value") as exc_info:
            ConditionEvaluator(
                [auth_dimension, credits_dimension],
                [exclude("auth", "guest", credits="exact")],
            )
        assert exc_info.value.error_code is ErrorCode.UNKNOWN_REFERENCE

    def test_wildcard_target_rejected(self, auth_dimension):
        plan = Dimension("plan", [Value("free"), Value("any", kind=ValueKind.WILDCARD)])
        rule = GuardRule("auth", "unauthenticated", frozenset({("plan", "any")}))
        with pytest.raises(ConfigurationError, match="wildcard") as exc_info:
            ConditionEvaluator([auth_dimension, plan], [rule])
        assert exc_info.value.error_code is ErrorCode.INVALID_CONFIG

    def test_unknown_dimension_lookup(self, auth_dimension):
        ev = ConditionEvaluator([auth_dimension])
        with pytest.raises(ConfigurationError) as exc_info:
            ev.get_dimension("plan")
        assert exc_info.value.error_code.value == "E202"


class TestAssignments:
    @pytest.fixture
    def ev(self, auth_dimension, credits_dimension, auth_credits_guard) -> ConditionEvaluator:
        return ConditionEvaluator([auth_dimension, credits_dimension], [auth_credits_guard])

    def test_partial_assignment(self, ev):
        assert ev.is_possible({"auth": "unauthenticated"})
        assert ev.is_possible({})

    def test_wildcards_never_excluded(self, ev):
        assert ev.is_possible({"auth": "unauthenticated", "credits": "*"})

    def test_is_compatible(self, ev):
        assert ev.is_compatible(("credits", "exact"), {"auth": "authenticated"})
        assert not ev.is_compatible(("credits", "exact"), {"auth": "unauthenticated"})

    def test_collapses(self, ev):
        assert ev.collapses(("auth", "unauthenticated"), "credits")
        assert not ev.collapses(("auth", "authenticated"), "credits")
        assert not ev.collapses(("credits", "exact"), "auth")

    def test_forced_wildcard(self, ev):
        assert ev.is_forced_wildcard("credits", {"auth": "unauthenticated"})
        assert not ev.is_forced_wildcard("credits", {"auth": "authenticated"})

    def test_valid_scenario(self, ev):
        assert ev.is_valid_scenario({"auth": "unauthenticated", "credits": "*"})
        assert ev.is_valid_scenario({"auth": "authenticated", "credits": "exact"})
        # Wildcard where a concrete value is possible is not a scenario.
        assert not ev.is_valid_scenario({"auth": "authenticated", "credits": "*"})
        assert not ev.is_valid_scenario({"auth": "unauthenticated", "credits": "exact"})

    def test_dimension_without_concrete_values_is_always_wildcard(self, auth_dimension):
        region = Dimension("region", [Value("any", kind=ValueKind.WILDCARD)])
        ev = ConditionEvaluator([auth_dimension, region])
        assert ev.is_forced_wildcard("region", {"auth": "authenticated"})
