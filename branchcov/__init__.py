"""branchcov - Branch Coverage & Context-Combination Engine.

Given a declarative Dimension Model of a code change (dimensions, their
equivalence classes and boundary values, guard rules, branches), branchcov
derives the logically meaningful test scenarios, assigns them priorities,
prunes impossible combinations, and tracks completion in a coverage ledger.

Example:
    >>> from branchcov import CoverageEngine
    >>> engine = CoverageEngine()
    >>> engine.load_model({
    ...     "dimensions": {
    ...         "auth": {
    ...             "values": ["authenticated", "unauthenticated"],
    ...             "guards": [{"value": "unauthenticated",
    ...                         "excludes": {"credits": ["sufficient", "insufficient", "exact"]}}],
    ...         },
    ...         "credits": {"values": ["sufficient", "insufficient", "exact"]},
    ...     }
    ... })
    >>> [s.context_key for s in engine.generate("exhaustive").scenarios][-1]
    'auth_unauthenticated_credits_*'

Core pieces:
    Dimension / Value: the axes of variation and their values
    ConditionEvaluator: guard closure and combination validity
    CombinationGenerator: exhaustive, pairwise and priority-bucketed sets
    PriorityAssigner: factor scores to P0-P3
    CoverageLedger: concurrent, replayable execution status
    ImpactAnalyzer: before/after behavior classification
"""

from branchcov.combinatorial import (
    CombinationGenerator,
    CoverageStats,
    GenerationResult,
    Strategy,
    generate,
    generate_partitioned,
    merge_scenario_sets,
)
from branchcov.config import EngineSettings, load_settings
from branchcov.engine import BranchCoverage, CoverageEngine, EngineReport, ReleaseDecision
from branchcov.errors import (
    BranchCovError,
    ConfigurationError,
    EmptyDimensionError,
    ErrorCode,
    StoreUnavailableError,
    UnknownScenarioError,
)
from branchcov.impact import ImpactAnalyzer, ImpactCategory, ImpactRecord
from branchcov.ledger import (
    CompletionSummary,
    CoverageLedger,
    InMemoryLedgerStore,
    JsonlLedgerStore,
    LedgerEvent,
)
from branchcov.model import (
    Branch,
    ConditionEvaluator,
    Dimension,
    DimensionModel,
    GuardRule,
    OmittedScenario,
    Scenario,
    ScenarioStatus,
    Value,
    ValueKind,
    exclude,
    load_model,
)
from branchcov.priority import FactorScores, PriorityAssigner, PriorityTier

__version__ = "0.1.0"

__all__ = [
    "Branch",
    "BranchCovError",
    "BranchCoverage",
    "CombinationGenerator",
    "CompletionSummary",
    "ConditionEvaluator",
    "ConfigurationError",
    "CoverageEngine",
    "CoverageLedger",
    "CoverageStats",
    "Dimension",
    "DimensionModel",
    "EmptyDimensionError",
    "EngineReport",
    "EngineSettings",
    "ErrorCode",
    "FactorScores",
    "GenerationResult",
    "GuardRule",
    "ImpactAnalyzer",
    "ImpactCategory",
    "ImpactRecord",
    "InMemoryLedgerStore",
    "JsonlLedgerStore",
    "LedgerEvent",
    "OmittedScenario",
    "PriorityAssigner",
    "PriorityTier",
    "ReleaseDecision",
    "Scenario",
    "ScenarioStatus",
    "Strategy",
    "StoreUnavailableError",
    "UnknownScenarioError",
    "Value",
    "ValueKind",
    "__version__",
    "exclude",
    "generate",
    "generate_partitioned",
    "load_model",
    "load_settings",
    "merge_scenario_sets",
]
