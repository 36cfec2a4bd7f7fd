"""Priority assignment for generated scenarios.

Each scenario is scored on four factors (impact, frequency, data risk,
security) and mapped to a tier P0-P3 by an ordered rule table. The worst
factor always wins: a scenario is never placed in a lower tier than its
most severe factor warrants.

Example:
    >>> from branchcov.priority import FactorScores, PriorityAssigner
    >>> assigner = PriorityAssigner()
    >>> assigner.tier_for(FactorScores.from_dict({"security": "vulnerability"}))
    <PriorityTier.P0: 'P0'>
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from branchcov.errors import ConfigurationError

if TYPE_CHECKING:
    from branchcov.model.scenario import Scenario

logger = logging.getLogger(__name__)


class PriorityTier(Enum):
    """Priority tiers, P0 being the most severe."""

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"

    @property
    def rank(self) -> int:
        """Numeric severity rank; lower is more severe."""
        return int(self.value[1:])

    @classmethod
    def parse(cls, value: str | PriorityTier) -> PriorityTier:
        if isinstance(value, PriorityTier):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ConfigurationError(
                f"Unknown priority tier '{value}'. Valid: {[t.value for t in cls]}"
            ) from None


class Impact(Enum):
    BLOCKING = "blocking"
    MAJOR = "major"
    MINOR = "minor"
    NONE = "none"


class Frequency(Enum):
    MOST_USERS = "mostUsers"
    SOME_USERS = "someUsers"
    RARE = "rare"


class DataRisk(Enum):
    LOSS = "loss"
    INCORRECT = "incorrect"
    INCOMPLETE = "incomplete"
    NONE = "none"


class Security(Enum):
    VULNERABILITY = "vulnerability"
    WEAKNESS = "weakness"
    HARDENING = "hardening"
    NONE = "none"


# Tier each factor level escalates to on its own.
_LEVEL_TIER: dict[Enum, PriorityTier] = {
    Impact.BLOCKING: PriorityTier.P0,
    Impact.MAJOR: PriorityTier.P1,
    Impact.MINOR: PriorityTier.P2,
    Impact.NONE: PriorityTier.P3,
    Frequency.MOST_USERS: PriorityTier.P1,
    Frequency.SOME_USERS: PriorityTier.P2,
    Frequency.RARE: PriorityTier.P3,
    DataRisk.LOSS: PriorityTier.P0,
    DataRisk.INCORRECT: PriorityTier.P1,
    DataRisk.INCOMPLETE: PriorityTier.P2,
    DataRisk.NONE: PriorityTier.P3,
    Security.VULNERABILITY: PriorityTier.P0,
    Security.WEAKNESS: PriorityTier.P1,
    Security.HARDENING: PriorityTier.P2,
    Security.NONE: PriorityTier.P3,
}

_FACTOR_KEYS: dict[str, tuple[str, type[Enum]]] = {
    "impact": ("impact", Impact),
    "frequency": ("frequency", Frequency),
    "dataRisk": ("data_risk", DataRisk),
    "data_risk": ("data_risk", DataRisk),
    "security": ("security", Security),
}


def _parse_level(enum_cls: type[Enum], raw: Any) -> Enum:
    if isinstance(raw, enum_cls):
        return raw
    for member in enum_cls:
        if member.value == raw or member.name.lower() == str(raw).lower():
            return member
    raise ConfigurationError(
        f"Unknown {enum_cls.__name__.lower()} level '{raw}'. "
        f"Valid: {[m.value for m in enum_cls]}"
    )


@dataclass(frozen=True)
class FactorScores:
    """Factor levels for one scenario.

    Attributes:
        impact: Functional impact of a defect in this scenario.
        frequency: How many users reach this scenario.
        data_risk: Risk to data integrity.
        security: Security exposure.
    """

    impact: Impact = Impact.NONE
    frequency: Frequency = Frequency.RARE
    data_risk: DataRisk = DataRisk.NONE
    security: Security = Security.NONE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> FactorScores:
        """Build scores from a mapping such as ``{"dataRisk": "loss"}``.

        Raises:
            ConfigurationError: On unknown factor names or levels.
        """
        kwargs: dict[str, Enum] = {}
        for key, raw in (data or {}).items():
            if key not in _FACTOR_KEYS:
                raise ConfigurationError(
                    f"Unknown priority factor '{key}'. "
                    f"Valid: impact, frequency, dataRisk, security"
                )
            attr, enum_cls = _FACTOR_KEYS[key]
            kwargs[attr] = _parse_level(enum_cls, raw)
        return cls(**kwargs)

    @property
    def levels(self) -> tuple[Enum, Enum, Enum, Enum]:
        return (self.impact, self.frequency, self.data_risk, self.security)

    @classmethod
    def worst(cls, scores: Iterable[FactorScores]) -> FactorScores:
        """Combine scores factor-wise, keeping the most severe level of each."""
        result = cls()
        for s in scores:
            result = cls(
                impact=_more_severe(result.impact, s.impact),
                frequency=_more_severe(result.frequency, s.frequency),
                data_risk=_more_severe(result.data_risk, s.data_risk),
                security=_more_severe(result.security, s.security),
            )
        return result

    def to_dict(self) -> dict[str, str]:
        return {
            "impact": self.impact.value,
            "frequency": self.frequency.value,
            "dataRisk": self.data_risk.value,
            "security": self.security.value,
        }


def _more_severe(a: Any, b: Any) -> Any:
    return a if _LEVEL_TIER[a].rank <= _LEVEL_TIER[b].rank else b


@dataclass(frozen=True)
class PriorityRule:
    """One row of the rule table: if ``matches`` then ``tier``."""

    tier: PriorityTier
    description: str
    matches: Callable[[FactorScores], bool]


def _any_at(tier: PriorityTier) -> Callable[[FactorScores], bool]:
    return lambda scores: any(_LEVEL_TIER[level] is tier for level in scores.levels)


# Ordered; first match wins.
PRIORITY_RULES: tuple[PriorityRule, ...] = (
    PriorityRule(
        PriorityTier.P0,
        "impact=blocking OR security=vulnerability OR dataRisk=loss",
        _any_at(PriorityTier.P0),
    ),
    PriorityRule(
        PriorityTier.P1,
        "any factor at major/mostUsers/incorrect/weakness",
        _any_at(PriorityTier.P1),
    ),
    PriorityRule(
        PriorityTier.P2,
        "any factor at minor/someUsers/incomplete/hardening",
        _any_at(PriorityTier.P2),
    ),
)


class PriorityAssigner:
    """Maps scenarios to priority tiers using an ordered rule table.

    Attributes:
        rules: Ordered rules; the first matching rule decides the tier.
        default_tier: Tier used when no rule matches.
    """

    def __init__(
        self,
        rules: tuple[PriorityRule, ...] = PRIORITY_RULES,
        default_tier: PriorityTier = PriorityTier.P3,
    ) -> None:
        self.rules = rules
        self.default_tier = default_tier

    def tier_for(self, factor_scores: FactorScores) -> PriorityTier:
        for rule in self.rules:
            if rule.matches(factor_scores):
                return rule.tier
        return self.default_tier

    def assign(self, scenario: Scenario, factor_scores: FactorScores) -> PriorityTier:
        """Compute the tier for one scenario."""
        tier = self.tier_for(factor_scores)
        logger.debug(f"Assigned {tier.value} to {scenario.id} ({factor_scores.to_dict()})")
        return tier

    def assign_all(
        self,
        scenarios: Iterable[Scenario],
        scores_for: Callable[[Scenario], FactorScores],
    ) -> list[Scenario]:
        """Return copies of ``scenarios`` with priorities filled in.

        A scenario that already carries a priority (e.g. from bucketed
        generation) keeps the more severe of that tier and its factor tier.
        """
        result = []
        for scenario in scenarios:
            tier = self.assign(scenario, scores_for(scenario))
            if scenario.priority is not None and scenario.priority.rank <= tier.rank:
                result.append(scenario)
                continue
            if scenario.priority is not None:
                logger.debug(
                    f"Raised {scenario.id} from {scenario.priority.value} to {tier.value}"
                )
            result.append(scenario.with_priority(tier))
        return result
