"""Combination generation for branchcov.

Dimension -> ConditionEvaluator (exclusion closure) -> CombinationGenerator
    -> Scenarios

Strategies:
    exhaustive: all valid combinations
    pairwise: greedy covering array over valid pairs
    priority-bucketed: P0/P1/P2 buckets, the rest recorded as omitted
"""

from branchcov.combinatorial.generator import (
    CombinationGenerator,
    CoverageStats,
    GenerationResult,
    ScenarioPredicate,
    Strategy,
    generate,
    generate_partitioned,
    merge_scenario_sets,
)

__all__ = [
    "CombinationGenerator",
    "CoverageStats",
    "GenerationResult",
    "ScenarioPredicate",
    "Strategy",
    "generate",
    "generate_partitioned",
    "merge_scenario_sets",
]
