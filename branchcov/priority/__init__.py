"""Priority tiers and the factor rule table."""

from branchcov.priority.assigner import (
    PRIORITY_RULES,
    DataRisk,
    FactorScores,
    Frequency,
    Impact,
    PriorityAssigner,
    PriorityRule,
    PriorityTier,
    Security,
)

__all__ = [
    "PRIORITY_RULES",
    "DataRisk",
    "FactorScores",
    "Frequency",
    "Impact",
    "PriorityAssigner",
    "PriorityRule",
    "PriorityTier",
    "Security",
]
