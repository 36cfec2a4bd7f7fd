"""Change-impact analysis of behavior snapshots."""

from branchcov.impact.analyzer import (
    ABSENT,
    VERIFICATION,
    ImpactAnalyzer,
    ImpactCategory,
    ImpactRecord,
)
from branchcov.impact.diff import DiffConfig, DiffType, JSONDiff, JSONDiffItem

__all__ = [
    "ABSENT",
    "VERIFICATION",
    "DiffConfig",
    "DiffType",
    "ImpactAnalyzer",
    "ImpactCategory",
    "ImpactRecord",
    "JSONDiff",
    "JSONDiffItem",
]
