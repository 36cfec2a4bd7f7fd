"""Error hierarchy for branchcov."""

from branchcov.errors.base import (
    BranchCovError,
    ConfigurationError,
    EmptyDimensionError,
    ErrorCode,
    ErrorContext,
    StoreUnavailableError,
    UnknownScenarioError,
)

__all__ = [
    "BranchCovError",
    "ConfigurationError",
    "EmptyDimensionError",
    "ErrorCode",
    "ErrorContext",
    "StoreUnavailableError",
    "UnknownScenarioError",
]
