"""Custom exception hierarchy for branchcov.

All branchcov errors inherit from BranchCovError and include:
- error_code: A unique ErrorCode enum for categorization
- context: ErrorContext with model/scenario details
- suggestions: List of actionable steps to resolve the issue
- recoverable: Whether the caller may retry the operation

Example:
    try:
        engine.record_result("auth=anon__credits=*", "passed")
    except UnknownScenarioError as e:
        print(f"Error: {e}")
        print(f"Suggestions: {e.suggestions}")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for branchcov.

    Error codes are organized by category:
    - E2xx: Model/configuration errors
    - E3xx: Generation errors
    - E4xx: Ledger errors
    - E5xx: Store (external persistence) errors
    - E9xx: Unknown/internal errors
    """

    # Model/configuration errors (E2xx)
    INVALID_CONFIG = "E201"
    UNKNOWN_REFERENCE = "E202"
    DUPLICATE_ID = "E203"

    # Generation errors (E3xx)
    EMPTY_DIMENSION = "E301"
    INVALID_STRATEGY = "E302"

    # Ledger errors (E4xx)
    UNKNOWN_SCENARIO = "E401"
    INVALID_STATUS = "E402"

    # Store errors (E5xx)
    STORE_UNAVAILABLE = "E501"

    # Unknown/internal errors (E9xx)
    UNKNOWN = "E999"

    @property
    def category(self) -> str:
        """Get the error category name."""
        code_num = int(self.value[1:])
        if code_num < 300:
            return "configuration"
        elif code_num < 400:
            return "generation"
        elif code_num < 500:
            return "ledger"
        elif code_num < 600:
            return "store"
        else:
            return "unknown"


@dataclass
class ErrorContext:
    """Structured context for error logging and debugging.

    Attributes:
        dimension_id: Dimension involved in the error (if any).
        value_id: Dimension value involved in the error (if any).
        scenario_id: Scenario involved in the error (if any).
        extra: Additional context-specific information.
        timestamp: When the error occurred.
    """

    dimension_id: str | None = None
    value_id: str | None = None
    scenario_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for serialization."""
        result = {
            "dimension_id": self.dimension_id,
            "value_id": self.value_id,
            "scenario_id": self.scenario_id,
            "extra": self.extra,
            "timestamp": self.timestamp.isoformat(),
        }
        return {k: v for k, v in result.items() if v is not None}

    def format_location(self) -> str:
        """Format the error location as a readable string."""
        parts = []
        if self.dimension_id:
            parts.append(f"dimension={self.dimension_id}")
        if self.value_id:
            parts.append(f"value={self.value_id}")
        if self.scenario_id:
            parts.append(f"scenario={self.scenario_id}")
        return " > ".join(parts) if parts else "unknown location"


class BranchCovError(Exception):
    """Base exception for all branchcov errors.

    Attributes:
        error_code: Unique ErrorCode for this error type
        message: Human-readable error description
        context: ErrorContext with model/scenario details
        suggestions: List of actionable steps to resolve the issue
        recoverable: Whether the error can be retried
        cause: The underlying exception (if any)
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN
    default_message: str = "An unexpected error occurred"
    default_suggestions: list[str] = []
    default_recoverable: bool = False

    def __init__(
        self,
        message: str | None = None,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
        recoverable: bool | None = None,
        suggestions: list[str] | None = None,
        **extra_context: Any,
    ) -> None:
        self.message = message or self.default_message
        self.error_code = error_code or self.error_code
        self.context = context or ErrorContext()
        self.cause = cause
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self._suggestions = suggestions

        if extra_context:
            self.context.extra.update(extra_context)

        super().__init__(self.message)

    @property
    def suggestions(self) -> list[str]:
        """Get actionable suggestions for resolving this error."""
        if self._suggestions is not None:
            return self._suggestions
        return self.default_suggestions.copy()

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]

        location = self.context.format_location()
        if location != "unknown location":
            parts.append(f"at {location}")

        return " | ".join(parts)

    def format_verbose(self) -> str:
        """Format error with full details including suggestions."""
        lines = [
            f"Error [{self.error_code.value}]: {self.message}",
        ]

        location = self.context.format_location()
        if location != "unknown location":
            lines.append(f"Location: {location}")

        if self.cause is not None:
            lines.append(f"Caused by: {type(self.cause).__name__}: {self.cause}")

        if self.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  - {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(BranchCovError):
    """The dimension model is malformed or references undeclared ids.

    Raised immediately on model load and never retried. Common causes:
    - A guard rule names a dimension or value that is not declared
    - Duplicate value ids inside one dimension
    - More than one wildcard value in a dimension
    """

    error_code = ErrorCode.INVALID_CONFIG
    default_message = "Invalid dimension model"
    default_suggestions = [
        "Check that every guard rule references declared dimension and value ids",
        "Make sure value ids are unique within each dimension",
        "Declare at most one wildcard value per dimension",
    ]


class EmptyDimensionError(BranchCovError):
    """A dimension has no values and is not marked optional."""

    error_code = ErrorCode.EMPTY_DIMENSION
    default_message = "Dimension has no values"
    default_suggestions = [
        "Add at least one value to the dimension",
        "Mark the dimension as optional if it may legitimately be empty",
    ]


class UnknownScenarioError(BranchCovError):
    """A ledger operation referenced a scenario outside the active run."""

    error_code = ErrorCode.UNKNOWN_SCENARIO
    default_message = "Scenario was not generated for the active run"
    default_suggestions = [
        "Regenerate scenarios for the current model before recording results",
        "Use the scenario id exactly as printed by 'branchcov generate'",
    ]


class StoreUnavailableError(BranchCovError):
    """The external ledger store failed; the ledger operation was not applied.

    Callers may retry at their discretion. In-memory generation results are
    never affected.
    """

    error_code = ErrorCode.STORE_UNAVAILABLE
    default_message = "Ledger store is unavailable"
    default_recoverable = True
    default_suggestions = [
        "Check that the ledger file or backing store is reachable and writable",
        "Retry the operation once the store is available again",
    ]
