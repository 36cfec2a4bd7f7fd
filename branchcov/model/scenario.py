"""Scenarios: one concrete assignment of values to participating dimensions."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from branchcov.errors import ConfigurationError, ErrorCode
from branchcov.model.dimensions import WILDCARD_ID
from branchcov.priority import PriorityTier


class ScenarioStatus(Enum):
    """Execution status of a scenario."""

    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def parse(cls, value: str | ScenarioStatus) -> ScenarioStatus:
        if isinstance(value, ScenarioStatus):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError(
                f"Invalid scenario status '{value}'. Valid: {[s.value for s in cls]}",
                error_code=ErrorCode.INVALID_STATUS,
            ) from None


BELOW_PRIORITY_THRESHOLD = "below-priority-threshold"


@dataclass(frozen=True)
class Scenario:
    """A specific assignment of values to dimensions.

    Identity fields (``assignment``, ``wildcards``) never change after
    generation; ``priority``, ``status`` and ``reason`` are filled in later
    through the ``with_*`` copies.

    Attributes:
        assignment: ``(dimension_id, value_id)`` pairs in declaration order.
        wildcards: Dimension ids whose value is the wildcard.
        priority: Computed priority tier, if assigned.
        status: Current execution status.
        reason: Why the scenario was skipped or omitted.
        branches: Branch outcomes exercised, e.g. ``("B1:true", "B2:false")``.

    Example:
        >>> s = Scenario((("auth", "unauthenticated"), ("credits", "*")), frozenset({"credits"}))
        >>> s.id
        'auth=unauthenticated__credits=*'
        >>> s.context_key
        'auth_unauthenticated_credits_*'
    """

    assignment: tuple[tuple[str, str], ...]
    wildcards: frozenset[str] = frozenset()
    priority: PriorityTier | None = None
    status: ScenarioStatus = ScenarioStatus.PENDING
    reason: str | None = None
    branches: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        """Stable id from the ``dimension=value`` pairs sorted by dimension id."""
        parts = sorted(self.assignment)
        return "__".join(f"{d}={v}" for d, v in parts)

    @property
    def context_key(self) -> str:
        """``{dim1}_{val1}_..._{dimN}_{valN}`` in declaration order, ``*`` for wildcards."""
        parts = []
        for dim_id, value_id in self.assignment:
            parts.append(dim_id)
            parts.append(WILDCARD_ID if dim_id in self.wildcards else value_id)
        return "_".join(parts)

    @property
    def values(self) -> dict[str, str]:
        return dict(self.assignment)

    @property
    def concrete(self) -> dict[str, str]:
        """The assignment without wildcard dimensions."""
        return {d: v for d, v in self.assignment if d not in self.wildcards}

    @property
    def dimension_ids(self) -> list[str]:
        return [d for d, _ in self.assignment]

    def __getitem__(self, dimension_id: str) -> str:
        return self.values[dimension_id]

    def __contains__(self, dimension_id: str) -> bool:
        return any(d == dimension_id for d, _ in self.assignment)

    def is_wildcard(self, dimension_id: str) -> bool:
        return dimension_id in self.wildcards

    def matches(self, trace: Mapping[str, str], trace_wildcards: frozenset[str] = frozenset()) -> bool:
        """Check a concrete executed trace against this scenario.

        A wildcard on either side matches any value on the other. Dimensions
        missing from the trace are treated as wildcards.
        """
        for dim_id, value_id in self.assignment:
            if dim_id in self.wildcards:
                continue
            observed = trace.get(dim_id)
            if observed is None or observed == WILDCARD_ID or dim_id in trace_wildcards:
                continue
            if observed != value_id:
                return False
        return True

    def contains_pair(self, a: tuple[str, str], b: tuple[str, str]) -> bool:
        concrete = self.concrete
        return concrete.get(a[0]) == a[1] and concrete.get(b[0]) == b[1]

    def with_priority(self, priority: PriorityTier) -> Scenario:
        return dataclasses.replace(self, priority=priority)

    def with_status(self, status: ScenarioStatus, reason: str | None = None) -> Scenario:
        return dataclasses.replace(self, status=status, reason=reason)

    def with_branches(self, branches: tuple[str, ...]) -> Scenario:
        return dataclasses.replace(self, branches=branches)

    @property
    def description(self) -> str:
        return ", ".join(f"{d}={v}" for d, v in self.assignment)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "context_key": self.context_key,
            "values": self.values,
            "wildcards": sorted(self.wildcards),
            "priority": self.priority.value if self.priority else None,
            "status": self.status.value,
            "reason": self.reason,
            "branches": list(self.branches),
        }

    def __repr__(self) -> str:
        return f"Scenario({self.description})"


@dataclass(frozen=True)
class OmittedScenario:
    """A combination intentionally left out of a generated set."""

    scenario: Scenario
    reason: str = BELOW_PRIORITY_THRESHOLD

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.scenario.id, "context_key": self.scenario.context_key, "reason": self.reason}
