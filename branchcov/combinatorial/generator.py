"""Scenario generation strategies.

- exhaustive: every valid combination (cross product filtered by the
  exclusion closure, with irrelevant dimensions collapsed to wildcards).
- pairwise: a covering array in which every valid pair of values from two
  distinct dimensions, and every single value, appears at least once.
- priority-bucketed: the exhaustive set split into P0 (happy path plus
  single failures), P1 (caller-selected), P2 (single boundary deviations);
  everything else is recorded as omitted.

Example:
    >>> from branchcov.combinatorial import CombinationGenerator, Strategy
    >>> from branchcov.model import Dimension, exclude
    >>>
    >>> gen = CombinationGenerator(
    ...     [
    ...         Dimension("auth", ["authenticated", "unauthenticated"]),
    ...         Dimension("credits", ["sufficient", "insufficient", "exact"]),
    ...     ],
    ...     [exclude("auth", "unauthenticated", credits=["sufficient", "insufficient", "exact"])],
    ... )
    >>> [s.context_key for s in gen.generate(Strategy.EXHAUSTIVE)][-1]
    'auth_unauthenticated_credits_*'

All strategies are deterministic: the same dimensions, guards and strategy
always yield the same ordered scenario ids.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from branchcov.errors import ConfigurationError, EmptyDimensionError, ErrorCode, ErrorContext
from branchcov.model.dimensions import Dimension, Value
from branchcov.model.guards import ConditionEvaluator, GuardRule, ValueRef
from branchcov.model.scenario import BELOW_PRIORITY_THRESHOLD, OmittedScenario, Scenario
from branchcov.priority import PriorityTier

logger = logging.getLogger(__name__)

ScenarioPredicate = Callable[[Scenario], bool]
Target = tuple[ValueRef, ...]


class Strategy(Enum):
    """Generation strategies."""

    EXHAUSTIVE = "exhaustive"
    PAIRWISE = "pairwise"
    PRIORITY_BUCKETED = "priority-bucketed"

    @classmethod
    def parse(cls, value: str | Strategy) -> Strategy:
        if isinstance(value, Strategy):
            return value
        normalized = str(value).lower().replace("_", "-")
        for member in cls:
            if member.value == normalized:
                return member
        raise ConfigurationError(
            f"Unknown generation strategy '{value}'. Valid: {[s.value for s in cls]}",
            error_code=ErrorCode.INVALID_STRATEGY,
        )


@dataclass
class GenerationResult:
    """Outcome of one generation run.

    Attributes:
        strategy: The strategy that produced the scenarios.
        scenarios: Generated scenarios, in deterministic order.
        omitted: Combinations intentionally left out, with reasons.
        infeasible_targets: Pair/value targets no valid scenario can contain.
    """

    strategy: Strategy
    scenarios: list[Scenario] = field(default_factory=list)
    omitted: list[OmittedScenario] = field(default_factory=list)
    infeasible_targets: int = 0

    @property
    def scenario_ids(self) -> list[str]:
        return [s.id for s in self.scenarios]

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "scenarios": [s.to_dict() for s in self.scenarios],
            "omitted": [o.to_dict() for o in self.omitted],
            "infeasible_targets": self.infeasible_targets,
        }


@dataclass
class CoverageStats:
    """How well a scenario set covers the valid value pairs.

    Attributes:
        total_pairs: Number of valid pairs in the space.
        covered_pairs: Number of valid pairs contained in some scenario.
        coverage_pct: Percentage coverage (0-100).
        test_count: Number of scenarios.
        excluded_by_guards: Pairs removed by the exclusion closure.
        uncovered: The valid pairs no scenario contains.
    """

    total_pairs: int
    covered_pairs: int
    coverage_pct: float
    test_count: int
    excluded_by_guards: int = 0
    uncovered: list[tuple[ValueRef, ValueRef]] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.covered_pairs == self.total_pairs

    def __repr__(self) -> str:
        return (
            f"CoverageStats({self.covered_pairs}/{self.total_pairs} pairs covered "
            f"({self.coverage_pct:.1f}%), {self.test_count} tests)"
        )


class CombinationGenerator:
    """Produces scenario sets from dimensions under a selected strategy.

    Attributes:
        dimensions: Dimensions in declaration order.
        evaluator: Condition evaluator holding the exclusion closure.
        candidate_limit: Number of seed targets tried per pairwise round.
    """

    def __init__(
        self,
        dimensions: Sequence[Dimension],
        guards: Iterable[GuardRule] = (),
        candidate_limit: int = 20,
        evaluator: ConditionEvaluator | None = None,
    ) -> None:
        if candidate_limit < 1:
            raise ValueError("candidate_limit must be at least 1")
        self.dimensions = list(dimensions)
        self.evaluator = evaluator or ConditionEvaluator(self.dimensions, guards)
        self.candidate_limit = candidate_limit
        self._position = {
            d.id: {v.id: i for i, v in enumerate(d.candidates)} for d in self.dimensions
        }
        self._collapsers = {
            d.id: {
                (other.id, v.id)
                for other in self.dimensions
                for v in other.concrete_values
                if self.evaluator.collapses((other.id, v.id), d.id)
            }
            for d in self.dimensions
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        strategy: Strategy | str = Strategy.EXHAUSTIVE,
        p1_predicate: ScenarioPredicate | None = None,
    ) -> list[Scenario]:
        """Generate the scenario list for a strategy."""
        return self.run(strategy, p1_predicate).scenarios

    def run(
        self,
        strategy: Strategy | str = Strategy.EXHAUSTIVE,
        p1_predicate: ScenarioPredicate | None = None,
    ) -> GenerationResult:
        """Generate scenarios plus omission/infeasibility bookkeeping.

        Raises:
            EmptyDimensionError: If a non-optional dimension has no values.
            ConfigurationError: If the strategy is unknown.
        """
        strategy = Strategy.parse(strategy)
        if not self._check_dimensions():
            return GenerationResult(strategy=strategy)

        if strategy is Strategy.EXHAUSTIVE:
            result = GenerationResult(strategy=strategy, scenarios=self.exhaustive())
        elif strategy is Strategy.PAIRWISE:
            result = self._pairwise()
        else:
            result = self._priority_bucketed(p1_predicate)

        logger.info(
            f"Generated {len(result.scenarios)} scenarios ({strategy.value}) for "
            f"{len(self.dimensions)} dimensions"
            + (f", {len(result.omitted)} omitted" if result.omitted else "")
        )
        return result

    def exhaustive(self) -> list[Scenario]:
        """All valid combinations, in declaration order."""
        if not self._check_dimensions():
            return []
        return [self._to_scenario(a) for a in self._search({})]

    def pairwise(self) -> list[Scenario]:
        """A pairwise covering array."""
        return self.run(Strategy.PAIRWISE).scenarios

    def priority_bucketed(self, p1_predicate: ScenarioPredicate | None = None) -> GenerationResult:
        """P0/P1/P2 buckets plus the omitted remainder."""
        return self.run(Strategy.PRIORITY_BUCKETED, p1_predicate)

    def coverage_stats(self, scenarios: Iterable[Scenario]) -> CoverageStats:
        """Pair coverage of a scenario set against all valid pairs."""
        scenarios = list(scenarios)
        all_pairs = self._all_pairs()
        valid = [p for p in all_pairs if not self.evaluator.excludes(*p)]
        covered = {p for p in valid if any(s.contains_pair(*p) for s in scenarios)}
        total = len(valid)
        return CoverageStats(
            total_pairs=total,
            covered_pairs=len(covered),
            coverage_pct=(len(covered) / total * 100) if total else 100.0,
            test_count=len(scenarios),
            excluded_by_guards=len(all_pairs) - total,
            uncovered=[p for p in valid if p not in covered],
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _check_dimensions(self) -> bool:
        """Return False when generation must yield an empty set."""
        if not self.dimensions:
            return False
        empty = [d for d in self.dimensions if d.is_empty]
        for dim in empty:
            if not dim.optional:
                raise EmptyDimensionError(
                    f"Dimension '{dim.id}' has no values",
                    context=ErrorContext(dimension_id=dim.id),
                )
        if empty:
            logger.warning(
                f"Optional dimension(s) {[d.id for d in empty]} have no values; "
                f"scenario set is empty"
            )
            return False
        return True

    def _search(
        self,
        fixed: Mapping[str, str],
        order: Callable[[Dimension, dict[str, str], list[Value]], list[Value]] | None = None,
    ) -> Iterator[dict[str, str]]:
        """Depth-first walk over valid full assignments.

        Dimensions are visited in declaration order; ``fixed`` pins values and
        ``order`` may reorder each dimension's candidates.
        """
        dims = self.dimensions
        ev = self.evaluator
        fixed_concrete = {
            d: v for d, v in fixed.items() if not ev.get_dimension(d).is_wildcard_id(v)
        }
        partial: dict[str, str] = {}

        def can_collapse(index: int, dim: Dimension) -> bool:
            collapsers = self._collapsers[dim.id]
            if not dim.concrete_values:
                return True
            if any(partial.get(d) == v or fixed_concrete.get(d) == v for d, v in collapsers):
                return True
            later = {d.id for d in dims[index + 1:] if d.id not in fixed}
            return any(d in later for d, _ in collapsers)

        def walk(index: int) -> Iterator[dict[str, str]]:
            if index == len(dims):
                if ev.is_valid_scenario(partial):
                    yield dict(partial)
                return
            dim = dims[index]
            if dim.id in fixed:
                values = [dim.get_value(fixed[dim.id])]
            else:
                values = dim.candidates
                if order is not None:
                    values = order(dim, partial, values)
            for value in values:
                if value.is_wildcard:
                    if not can_collapse(index, dim):
                        continue
                else:
                    ref = (dim.id, value.id)
                    if not ev.is_compatible(ref, partial) or not ev.is_compatible(ref, fixed_concrete):
                        continue
                partial[dim.id] = value.id
                yield from walk(index + 1)
                del partial[dim.id]

        yield from walk(0)

    def _to_scenario(self, assignment: Mapping[str, str]) -> Scenario:
        pairs = tuple((d.id, assignment[d.id]) for d in self.dimensions)
        wildcards = frozenset(
            d.id for d in self.dimensions if d.is_wildcard_id(assignment[d.id])
        )
        return Scenario(assignment=pairs, wildcards=wildcards)

    def _ordinal(self, scenario: Scenario) -> tuple[int, ...]:
        """Lexicographic position in declaration order."""
        return tuple(self._position[d][v] for d, v in scenario.assignment)

    # ------------------------------------------------------------------
    # Pairwise
    # ------------------------------------------------------------------

    def _all_pairs(self) -> list[tuple[ValueRef, ValueRef]]:
        pairs = []
        for i, a_dim in enumerate(self.dimensions):
            for b_dim in self.dimensions[i + 1:]:
                for a in a_dim.concrete_values:
                    for b in b_dim.concrete_values:
                        pairs.append(((a_dim.id, a.id), (b_dim.id, b.id)))
        return pairs

    def _targets(self) -> list[Target]:
        """Valid pairs first, then single values, in declaration order."""
        targets: list[Target] = [
            p for p in self._all_pairs() if not self.evaluator.excludes(*p)
        ]
        targets.extend(
            ((d.id, v.id),) for d in self.dimensions for v in d.concrete_values
        )
        return targets

    @staticmethod
    def _covers(scenario: Scenario, target: Target) -> bool:
        concrete = scenario.concrete
        return all(concrete.get(d) == v for d, v in target)

    def _pairwise(self) -> GenerationResult:
        targets = self._targets()
        uncovered: dict[Target, None] = dict.fromkeys(targets)
        result: list[Scenario] = []
        infeasible = 0

        logger.info(f"Need to cover {len(targets)} pair/value targets")

        while uncovered:
            candidates: list[Scenario] = []
            for target in list(uncovered)[: self.candidate_limit]:
                candidate = self._complete(target, uncovered)
                if candidate is None:
                    logger.warning(
                        f"Target {target} cannot appear in any valid scenario; dropping it"
                    )
                    del uncovered[target]
                    infeasible += 1
                    continue
                candidates.append(candidate)

            if not candidates:
                continue

            best = min(
                candidates,
                key=lambda s: (-self._score(s, uncovered), self._ordinal(s)),
            )
            newly_covered = [t for t in uncovered if self._covers(best, t)]
            for t in newly_covered:
                del uncovered[t]
            if best.id not in {s.id for s in result}:
                result.append(best)

            logger.debug(
                f"Added {best.id}, covered {len(newly_covered)} targets, "
                f"{len(uncovered)} remaining"
            )

        return GenerationResult(
            strategy=Strategy.PAIRWISE,
            scenarios=result,
            infeasible_targets=infeasible,
        )

    def _score(self, scenario: Scenario, uncovered: Mapping[Target, None]) -> int:
        return sum(1 for t in uncovered if self._covers(scenario, t))

    def _complete(self, target: Target, uncovered: Mapping[Target, None]) -> Scenario | None:
        """Extend a target to the valid scenario adding most uncovered targets.

        Each free dimension prefers the value that completes the most
        uncovered targets together with the values already chosen.
        """
        fixed = dict(target)
        by_ref: dict[ValueRef, list[Target]] = {}
        for t in uncovered:
            for ref in t:
                by_ref.setdefault(ref, []).append(t)

        def gain(dim: Dimension, partial: dict[str, str], value: Value) -> int:
            if value.is_wildcard:
                return -1
            chosen = {**fixed, **partial, dim.id: value.id}
            return sum(
                1
                for t in by_ref.get((dim.id, value.id), ())
                if all(chosen.get(d) == v for d, v in t)
            )

        def order(dim: Dimension, partial: dict[str, str], values: list[Value]) -> list[Value]:
            indexed = list(enumerate(values))
            indexed.sort(key=lambda iv: (-gain(dim, partial, iv[1]), iv[0]))
            return [v for _, v in indexed]

        assignment = next(self._search(fixed, order), None)
        if assignment is None:
            return None
        return self._to_scenario(assignment)

    # ------------------------------------------------------------------
    # Priority buckets
    # ------------------------------------------------------------------

    def _priority_bucketed(self, p1_predicate: ScenarioPredicate | None) -> GenerationResult:
        buckets: dict[PriorityTier, list[Scenario]] = {
            PriorityTier.P0: [],
            PriorityTier.P1: [],
            PriorityTier.P2: [],
        }
        omitted: list[OmittedScenario] = []

        for scenario in self.exhaustive():
            tier = self._bucket_for(scenario, p1_predicate)
            if tier is None:
                omitted.append(OmittedScenario(scenario, BELOW_PRIORITY_THRESHOLD))
                continue
            buckets[tier].append(scenario.with_priority(tier))

        if not buckets[PriorityTier.P0]:
            logger.warning("No valid happy-path scenario: the nominal combination is excluded")

        logger.debug(
            "Buckets: "
            + ", ".join(f"{t.value}={len(s)}" for t, s in buckets.items())
            + f", omitted={len(omitted)}"
        )
        return GenerationResult(
            strategy=Strategy.PRIORITY_BUCKETED,
            scenarios=[s for tier_scenarios in buckets.values() for s in tier_scenarios],
            omitted=omitted,
        )

    def _deviations(self, scenario: Scenario) -> list[tuple[Dimension, Value]]:
        """Concrete values that differ from their dimension's nominal value."""
        deviations = []
        concrete = scenario.concrete
        for dim in self.dimensions:
            value_id = concrete.get(dim.id)
            if value_id is None or value_id == dim.nominal:
                continue
            deviations.append((dim, dim.get_value(value_id)))
        return deviations

    def _bucket_for(
        self, scenario: Scenario, p1_predicate: ScenarioPredicate | None
    ) -> PriorityTier | None:
        deviations = self._deviations(scenario)
        if not deviations:
            return PriorityTier.P0
        if len(deviations) == 1:
            dim, value = deviations[0]
            if value in dim.failure_values:
                return PriorityTier.P0
        if p1_predicate is not None and p1_predicate(scenario):
            return PriorityTier.P1
        if len(deviations) == 1:
            dim, value = deviations[0]
            if value in dim.boundary_values:
                return PriorityTier.P2
        return None


def generate(
    dimensions: Sequence[Dimension],
    strategy: Strategy | str = Strategy.EXHAUSTIVE,
    guards: Iterable[GuardRule] = (),
    p1_predicate: ScenarioPredicate | None = None,
) -> list[Scenario]:
    """Generate scenarios for dimensions under a strategy."""
    return CombinationGenerator(dimensions, guards).generate(strategy, p1_predicate)


def merge_scenario_sets(*scenario_sets: Iterable[Scenario]) -> list[Scenario]:
    """Concatenate scenario sets, drop duplicate ids and sort by scenario id."""
    merged: dict[str, Scenario] = {}
    for scenarios in scenario_sets:
        for scenario in scenarios:
            merged.setdefault(scenario.id, scenario)
    return [merged[k] for k in sorted(merged)]


def _partition_guards(
    dimensions: Sequence[Dimension], guards: Iterable[GuardRule]
) -> list[GuardRule]:
    """Restrict guard rules to those that only touch the given dimensions."""
    ids = {d.id for d in dimensions}
    result = []
    for rule in guards:
        if rule.dimension_id not in ids:
            continue
        targets = frozenset(t for t in rule.implies_excluded if t[0] in ids)
        if targets:
            result.append(
                GuardRule(rule.dimension_id, rule.value_id, targets, rule.description)
            )
    return result


def generate_partitioned(
    partitions: Sequence[Sequence[Dimension]],
    strategy: Strategy | str = Strategy.EXHAUSTIVE,
    guards: Iterable[GuardRule] = (),
    max_workers: int | None = None,
    candidate_limit: int = 20,
    p1_predicate: ScenarioPredicate | None = None,
) -> GenerationResult:
    """Generate independent dimension partitions on a thread pool.

    Scenarios and omitted records are merged by concatenation and re-sorted
    by scenario id, so the output does not depend on which partition
    finishes first. Any failure in a partition fails the whole call.
    """
    guards = list(guards)
    strategy = Strategy.parse(strategy)

    def run_partition(dims: Sequence[Dimension]) -> GenerationResult:
        gen = CombinationGenerator(dims, _partition_guards(dims, guards), candidate_limit)
        return gen.run(strategy, p1_predicate)

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        results = list(pool.map(run_partition, partitions))

    omitted: dict[str, OmittedScenario] = {}
    for result in results:
        for record in result.omitted:
            omitted.setdefault(record.scenario.id, record)

    merged = GenerationResult(
        strategy=strategy,
        scenarios=merge_scenario_sets(*(r.scenarios for r in results)),
        omitted=[omitted[k] for k in sorted(omitted)],
        infeasible_targets=sum(r.infeasible_targets for r in results),
    )
    logger.info(
        f"Merged {len(partitions)} partitions into {len(merged.scenarios)} scenarios"
        + (f", {len(merged.omitted)} omitted" if merged.omitted else "")
    )
    return merged
