"""Dimension Model: dimensions, values, guard rules, branches and scenarios."""

from branchcov.model.dimensions import (
    IMPLICIT_WILDCARD,
    WILDCARD_ID,
    Branch,
    Dimension,
    Value,
    ValueKind,
)
from branchcov.model.guards import ConditionEvaluator, GuardRule, exclude
from branchcov.model.loader import DimensionModel, ModelDocument, load_model
from branchcov.model.scenario import (
    BELOW_PRIORITY_THRESHOLD,
    OmittedScenario,
    Scenario,
    ScenarioStatus,
)

__all__ = [
    "BELOW_PRIORITY_THRESHOLD",
    "IMPLICIT_WILDCARD",
    "WILDCARD_ID",
    "Branch",
    "ConditionEvaluator",
    "Dimension",
    "DimensionModel",
    "GuardRule",
    "ModelDocument",
    "OmittedScenario",
    "Scenario",
    "ScenarioStatus",
    "Value",
    "ValueKind",
    "exclude",
    "load_model",
]
