"""Dimension definitions for context-combination testing.

A Dimension represents one axis of variation in the code under change
(e.g. authentication state) and its discrete values or equivalence
classes. Values are ordered; the order drives deterministic generation.

Example:
    >>> from branchcov.model import Dimension, Value, ValueKind
    >>>
    >>> auth = Dimension("auth", ["authenticated", "unauthenticated"])
    >>> credits = Dimension(
    ...     "credits",
    ...     [
    ...         Value("sufficient"),
    ...         Value("insufficient", failure=True),
    ...         Value("exact", kind=ValueKind.BOUNDARY),
    ...     ],
    ... )
    >>> credits.nominal
    'sufficient'
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from branchcov.errors import ConfigurationError, ErrorCode, ErrorContext
from branchcov.priority import FactorScores, PriorityTier

WILDCARD_ID = "*"


class ValueKind(Enum):
    """How a value relates to the behavior it stands for."""

    BOUNDARY = "boundary"
    EQUIVALENCE = "equivalence"
    WILDCARD = "wildcard"


@dataclass(frozen=True)
class Value:
    """A single value (or equivalence class) within a dimension.

    Attributes:
        id: Identifier, unique within the parent dimension.
        kind: boundary, equivalence or wildcard.
        description: Optional extended description.
        failure: Marks the value as the dimension's failure/false side.
        factors: Priority factor scores contributed by this value.
    """

    id: str
    kind: ValueKind = ValueKind.EQUIVALENCE
    description: str = ""
    failure: bool = False
    factors: FactorScores = field(default_factory=FactorScores, compare=False)

    @property
    def is_wildcard(self) -> bool:
        return self.kind is ValueKind.WILDCARD

    def __repr__(self) -> str:
        return f"Value({self.id!r}, {self.kind.value})"


IMPLICIT_WILDCARD = Value(WILDCARD_ID, kind=ValueKind.WILDCARD, description="any value")


@dataclass
class Dimension:
    """A single axis of variation.

    Attributes:
        id: Unique identifier for this dimension.
        values: Ordered values; plain strings are promoted to equivalence values.
        label: Human-readable label.
        optional: Whether the dimension may legitimately have no values.
        nominal: Id of the nominal (happy-path) value. Defaults to the first
            non-wildcard value.
    """

    id: str
    values: list[Value] = field(default_factory=list)
    label: str = ""
    optional: bool = False
    nominal: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ConfigurationError("Dimension id cannot be empty")
        self.values = [v if isinstance(v, Value) else Value(str(v)) for v in self.values]
        if not self.label:
            self.label = self.id

        ids = [v.id for v in self.values]
        if len(ids) != len(set(ids)):
            duplicates = sorted({i for i in ids if ids.count(i) > 1})
            raise ConfigurationError(
                f"Dimension '{self.id}' contains duplicate value ids: {duplicates}",
                context=ErrorContext(dimension_id=self.id),
                error_code=ErrorCode.DUPLICATE_ID,
            )

        wildcards = [v for v in self.values if v.is_wildcard]
        if len(wildcards) > 1:
            raise ConfigurationError(
                f"Dimension '{self.id}' declares {len(wildcards)} wildcard values; "
                f"at most one is allowed",
                context=ErrorContext(dimension_id=self.id),
            )

        concrete = self.concrete_values
        if self.nominal is None:
            if concrete:
                self.nominal = concrete[0].id
        elif self.nominal not in {v.id for v in concrete}:
            raise ConfigurationError(
                f"Nominal value '{self.nominal}' is not a concrete value of "
                f"dimension '{self.id}'",
                context=ErrorContext(dimension_id=self.id, value_id=self.nominal),
                error_code=ErrorCode.UNKNOWN_REFERENCE,
            )

    @property
    def concrete_values(self) -> list[Value]:
        """Values that take part in exclusion checks (everything but the wildcard)."""
        return [v for v in self.values if not v.is_wildcard]

    @property
    def declared_wildcard(self) -> Value | None:
        for v in self.values:
            if v.is_wildcard:
                return v
        return None

    @property
    def wildcard(self) -> Value:
        """The declared wildcard value, or the implicit ``*``."""
        return self.declared_wildcard or IMPLICIT_WILDCARD

    @property
    def candidates(self) -> list[Value]:
        """Concrete values plus the effective wildcard, in declaration order.

        The implicit wildcard sorts after every declared value.
        """
        if self.declared_wildcard is not None:
            return list(self.values)
        return [*self.values, IMPLICIT_WILDCARD]

    @property
    def value_ids(self) -> list[str]:
        return [v.id for v in self.values]

    @property
    def size(self) -> int:
        """Number of declared values."""
        return len(self.values)

    @property
    def is_empty(self) -> bool:
        return not self.values

    def has_value(self, value_id: str) -> bool:
        return any(v.id == value_id for v in self.values)

    def get_value(self, value_id: str) -> Value:
        """Get a value by id; the wildcard id ``*`` always resolves.

        Raises:
            ConfigurationError: If the value is not declared.
        """
        for v in self.values:
            if v.id == value_id:
                return v
        if value_id == WILDCARD_ID:
            return self.wildcard
        raise ConfigurationError(
            f"Value '{value_id}' not found in dimension '{self.id}'. "
            f"Available: {self.value_ids}",
            context=ErrorContext(dimension_id=self.id, value_id=value_id),
            error_code=ErrorCode.UNKNOWN_REFERENCE,
        )

    def is_wildcard_id(self, value_id: str) -> bool:
        return value_id == WILDCARD_ID or value_id == self.wildcard.id

    @property
    def failure_values(self) -> list[Value]:
        """Values standing for the dimension's failure/false side.

        Explicitly flagged values win. Without any flag, every non-nominal
        equivalence value counts as a failure value.
        """
        concrete = self.concrete_values
        flagged = [v for v in concrete if v.failure]
        if flagged:
            return flagged
        return [
            v for v in concrete
            if v.id != self.nominal and v.kind is ValueKind.EQUIVALENCE
        ]

    @property
    def boundary_values(self) -> list[Value]:
        """Non-nominal boundary values."""
        return [
            v for v in self.concrete_values
            if v.kind is ValueKind.BOUNDARY and v.id != self.nominal
        ]

    def __repr__(self) -> str:
        return f"Dimension({self.id!r}, values={self.value_ids})"


@dataclass(frozen=True)
class Branch:
    """An atomic decision outcome in the code under change.

    Attributes:
        id: Unique branch identifier.
        condition: Free-text condition expression (e.g. ``user.credits >= cost``).
        when: Structured predicate mapping dimension id to the value ids that
            make the condition true. ``None`` when only free text is known.
        true_priority: Priority of exercising the true outcome.
        false_priority: Priority of exercising the false outcome.
    """

    id: str
    condition: str = ""
    when: Mapping[str, tuple[str, ...]] | None = None
    true_priority: PriorityTier = PriorityTier.P1
    false_priority: PriorityTier = PriorityTier.P1

    @property
    def is_mapped(self) -> bool:
        return bool(self.when)

    def outcome_for(self, assignment: Mapping[str, str], wildcards: Sequence[str] = ()) -> bool | None:
        """Which outcome an assignment exercises.

        Returns True when every predicate dimension matches (wildcards match),
        False when some predicate dimension holds a concrete non-matching
        value, and None for unmapped branches or dimensions the assignment
        does not cover.
        """
        if not self.when:
            return None
        for dim_id, accepted in self.when.items():
            if dim_id not in assignment:
                return None
            if dim_id in wildcards:
                continue
            if assignment[dim_id] not in accepted:
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "condition": self.condition,
            "when": {k: list(v) for k, v in self.when.items()} if self.when else None,
            "true_priority": self.true_priority.value,
            "false_priority": self.false_priority.value,
        }
