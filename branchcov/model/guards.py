"""Guard rules and the condition evaluator.

Guard rules declare value pairings that are logically impossible, e.g.
"unauthenticated excludes every credits value" (credits are irrelevant
without a session). Rules may be declared in one direction only; the
evaluator closes them once per model load:

1. Every declared edge is applied in both directions.
2. Forcing: if a value ``x`` excludes all but one concrete value ``v`` of
   another dimension, ``x`` implies ``v``, so everything excluded with ``v``
   is excluded with ``x`` as well.

Both steps repeat until nothing changes. Wildcard values never take part.

Example:
    >>> from branchcov.model import Dimension, ConditionEvaluator, exclude
    >>> auth = Dimension("auth", ["authenticated", "unauthenticated"])
    >>> credits = Dimension("credits", ["sufficient", "insufficient", "exact"])
    >>> rule = exclude("auth", "unauthenticated", credits=["sufficient", "insufficient", "exact"])
    >>> evaluator = ConditionEvaluator([auth, credits], [rule])
    >>> evaluator.is_possible({"auth": "unauthenticated", "credits": "exact"})
    False
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from branchcov.errors import ConfigurationError, ErrorCode, ErrorContext
from branchcov.model.dimensions import Dimension

logger = logging.getLogger(__name__)

ValueRef = tuple[str, str]


@dataclass(frozen=True)
class GuardRule:
    """Declares that ``dimension_id=value_id`` excludes a set of other values.

    Attributes:
        dimension_id: Dimension of the guarding value.
        value_id: The guarding value.
        implies_excluded: ``(dimension_id, value_id)`` pairs that can never
            co-occur with the guarding value.
        description: Why these pairings are impossible.
    """

    dimension_id: str
    value_id: str
    implies_excluded: frozenset[ValueRef] = field(default_factory=frozenset)
    description: str = ""

    @property
    def source(self) -> ValueRef:
        return (self.dimension_id, self.value_id)

    def __repr__(self) -> str:
        targets = ", ".join(f"{d}={v}" for d, v in sorted(self.implies_excluded))
        return f"GuardRule({self.dimension_id}={self.value_id} excludes [{targets}])"


def exclude(
    dimension_id: str,
    value_id: str,
    description: str = "",
    **targets: str | Sequence[str],
) -> GuardRule:
    """Create a guard rule from keyword targets.

    Example:
        >>> exclude("auth", "anon", plan="premium")
        >>> exclude("auth", "anon", credits=["low", "high"])
    """
    pairs: set[ValueRef] = set()
    for target_dim, target_values in targets.items():
        if isinstance(target_values, str):
            target_values = [target_values]
        pairs.update((target_dim, v) for v in target_values)
    return GuardRule(
        dimension_id=dimension_id,
        value_id=value_id,
        implies_excluded=frozenset(pairs),
        description=description or f"{dimension_id}={value_id} excludes {sorted(pairs)}",
    )


class ConditionEvaluator:
    """Decides whether (partial) assignments are logically possible.

    Attributes:
        dimensions: The participating dimensions, in declaration order.
        rules: The declared guard rules.
    """

    def __init__(self, dimensions: Sequence[Dimension], rules: Iterable[GuardRule] = ()) -> None:
        self.dimensions = list(dimensions)
        self.rules = list(rules)
        self._dim_by_id: dict[str, Dimension] = {d.id: d for d in self.dimensions}
        self._validate_rules()
        self._excluded = self._close(self._declared_edges())
        logger.debug(
            f"Exclusion closure: {len(self.rules)} rules -> "
            f"{len(self.excluded_pairs())} excluded pairs"
        )

    def _validate_rules(self) -> None:
        for rule in self.rules:
            self._check_ref(rule.source, rule)
            for target in rule.implies_excluded:
                self._check_ref(target, rule)

    def _check_ref(self, ref: ValueRef, rule: GuardRule) -> None:
        dim_id, value_id = ref
        dim = self._dim_by_id.get(dim_id)
        if dim is None:
            raise ConfigurationError(
                f"Guard rule {rule!r} references undeclared dimension '{dim_id}'",
                context=ErrorContext(dimension_id=dim_id, value_id=value_id),
                error_code=ErrorCode.UNKNOWN_REFERENCE,
            )
        if not dim.has_value(value_id):
            raise ConfigurationError(
                f"Guard rule {rule!r} references undeclared value '{value_id}' "
                f"of dimension '{dim_id}'",
                context=ErrorContext(dimension_id=dim_id, value_id=value_id),
                error_code=ErrorCode.UNKNOWN_REFERENCE,
            )
        if dim.get_value(value_id).is_wildcard:
            raise ConfigurationError(
                f"Guard rule {rule!r} references wildcard value '{value_id}'; "
                f"wildcards cannot be excluded",
                context=ErrorContext(dimension_id=dim_id, value_id=value_id),
            )

    def _declared_edges(self) -> dict[ValueRef, set[ValueRef]]:
        edges: dict[ValueRef, set[ValueRef]] = defaultdict(set)
        for rule in self.rules:
            for target in rule.implies_excluded:
                if target[0] == rule.dimension_id:
                    # Values of one dimension never co-occur anyway.
                    continue
                edges[rule.source].add(target)
                edges[target].add(rule.source)
        return edges

    def _close(self, edges: dict[ValueRef, set[ValueRef]]) -> dict[ValueRef, set[ValueRef]]:
        nodes = [
            (d.id, v.id) for d in self.dimensions for v in d.concrete_values
        ]
        changed = True
        rounds = 0
        while changed:
            changed = False
            rounds += 1
            for x in nodes:
                for dim in self.dimensions:
                    if dim.id == x[0]:
                        continue
                    forced = self._forced_value(x, dim, edges)
                    if forced is None:
                        continue
                    for y in sorted(edges.get(forced, ())):
                        if y[0] == x[0] or y in edges[x]:
                            continue
                        edges[x].add(y)
                        edges[y].add(x)
                        changed = True
        logger.debug(f"Exclusion closure reached fixed point after {rounds} round(s)")
        return {k: set(v) for k, v in edges.items() if v}

    @staticmethod
    def _forced_value(
        x: ValueRef, dim: Dimension, edges: Mapping[ValueRef, set[ValueRef]]
    ) -> ValueRef | None:
        excluded = edges.get(x, set())
        concrete = [(dim.id, v.id) for v in dim.concrete_values]
        remaining = [ref for ref in concrete if ref not in excluded]
        if len(remaining) == 1 and len(remaining) < len(concrete):
            return remaining[0]
        return None

    def get_dimension(self, dimension_id: str) -> Dimension:
        if dimension_id not in self._dim_by_id:
            raise ConfigurationError(
                f"Dimension '{dimension_id}' not found. Available: {list(self._dim_by_id)}",
                context=ErrorContext(dimension_id=dimension_id),
                error_code=ErrorCode.UNKNOWN_REFERENCE,
            )
        return self._dim_by_id[dimension_id]

    def excludes(self, a: ValueRef, b: ValueRef) -> bool:
        """Whether two values can never co-occur."""
        return b in self._excluded.get(a, ())

    def excluded_pairs(self) -> set[frozenset[ValueRef]]:
        """Every excluded pair in the closure, as unordered pairs."""
        return {
            frozenset((a, b)) for a, targets in self._excluded.items() for b in targets
        }

    def _is_wildcard(self, dimension_id: str, value_id: str) -> bool:
        dim = self._dim_by_id.get(dimension_id)
        return dim is not None and dim.is_wildcard_id(value_id)

    def is_possible(self, assignment: Mapping[str, str]) -> bool:
        """Check a partial assignment (dimension id -> value id).

        Wildcards are always possible and never take part in the check.
        """
        refs = [
            (d, v) for d, v in assignment.items() if not self._is_wildcard(d, v)
        ]
        for i, a in enumerate(refs):
            targets = self._excluded.get(a)
            if not targets:
                continue
            for b in refs[i + 1:]:
                if b in targets:
                    return False
        return True

    def is_compatible(self, ref: ValueRef, assignment: Mapping[str, str]) -> bool:
        """Whether ``ref`` can join an already possible partial assignment."""
        targets = self._excluded.get(ref)
        if not targets:
            return True
        return not any(
            (d, v) in targets for d, v in assignment.items() if not self._is_wildcard(d, v)
        )

    def collapses(self, ref: ValueRef, dimension_id: str) -> bool:
        """Whether ``ref`` excludes every concrete value of a dimension."""
        dim = self.get_dimension(dimension_id)
        if ref[0] == dimension_id:
            return False
        targets = self._excluded.get(ref, set())
        concrete = dim.concrete_values
        return bool(concrete) and all((dim.id, v.id) in targets for v in concrete)

    def is_forced_wildcard(self, dimension_id: str, assignment: Mapping[str, str]) -> bool:
        """Whether a dimension must hold its wildcard under this assignment.

        True when the dimension has no concrete values, or when some concrete
        value in the assignment makes the whole dimension irrelevant.
        """
        dim = self.get_dimension(dimension_id)
        if not dim.concrete_values:
            return True
        return any(
            self.collapses((d, v), dimension_id)
            for d, v in assignment.items()
            if d != dimension_id and not self._is_wildcard(d, v)
        )

    def is_valid_scenario(self, assignment: Mapping[str, str]) -> bool:
        """A full assignment is valid if possible and every wildcard is forced."""
        if not self.is_possible(assignment):
            return False
        return all(
            self.is_forced_wildcard(d, assignment)
            for d, v in assignment.items()
            if self._is_wildcard(d, v)
        )
