"""Loading Dimension Model documents.

A model document maps dimension ids to their label, values and guard
rules, plus a list of branches. It may be supplied as a mapping, a YAML
file or a JSON file:

    dimensions:
      auth:
        label: Auth state
        values:
          - id: authenticated
          - id: unauthenticated
            failure: true
            factors: {security: weakness}
        guards:
          - value: unauthenticated
            excludes: {credits: [sufficient, insufficient, exact]}
      credits:
        values: [sufficient, insufficient, {id: exact, kind: boundary}]
    branches:
      - id: B1
        condition: user.credits >= cost
        when: {credits: [sufficient, exact]}
        truePriority: P1
        falsePriority: P0
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from branchcov.errors import ConfigurationError, ErrorCode, ErrorContext
from branchcov.model.dimensions import Branch, Dimension, Value, ValueKind
from branchcov.model.guards import ConditionEvaluator, GuardRule
from branchcov.model.scenario import Scenario
from branchcov.priority import FactorScores, PriorityTier

logger = logging.getLogger(__name__)


class ValueSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    kind: ValueKind = ValueKind.EQUIVALENCE
    description: str = ""
    failure: bool = False
    factors: dict[str, str] = Field(default_factory=dict)


class GuardSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    value: str
    excludes: dict[str, list[str] | str]
    description: str = ""


class DimensionSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    label: str = ""
    values: list[ValueSpec | str] = Field(default_factory=list)
    optional: bool = False
    nominal: str | None = None
    guards: list[GuardSpec] = Field(default_factory=list)


class BranchSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str = Field(min_length=1)
    condition: str = Field(default="", alias="conditionExpr")
    when: dict[str, list[str] | str] | None = None
    true_priority: str = Field(default="P1", alias="truePriority")
    false_priority: str = Field(default="P1", alias="falsePriority")


class ModelDocument(BaseModel):
    """Schema of a Dimension Model document."""

    model_config = ConfigDict(extra="forbid")

    name: str = "model"
    dimensions: dict[str, DimensionSpec]
    branches: list[BranchSpec] = Field(default_factory=list)


@dataclass
class DimensionModel:
    """A loaded, validated Dimension Model.

    Immutable for the duration of a run: dimensions, guard rules and
    branches are authored once per change-set.

    Attributes:
        dimensions: Dimensions in declaration order.
        guards: Declared guard rules.
        branches: Branches the scenario set must cover.
        name: Model name used in reports.
    """

    dimensions: list[Dimension]
    guards: list[GuardRule] = field(default_factory=list)
    branches: list[Branch] = field(default_factory=list)
    name: str = "model"

    def __post_init__(self) -> None:
        ids = [d.id for d in self.dimensions]
        if len(ids) != len(set(ids)):
            duplicates = sorted({i for i in ids if ids.count(i) > 1})
            raise ConfigurationError(
                f"Duplicate dimension ids: {duplicates}", error_code=ErrorCode.DUPLICATE_ID
            )
        branch_ids = [b.id for b in self.branches]
        if len(branch_ids) != len(set(branch_ids)):
            duplicates = sorted({i for i in branch_ids if branch_ids.count(i) > 1})
            raise ConfigurationError(
                f"Duplicate branch ids: {duplicates}", error_code=ErrorCode.DUPLICATE_ID
            )
        for branch in self.branches:
            for dim_id, accepted in (branch.when or {}).items():
                dim = self.get_dimension(dim_id)
                for value_id in accepted:
                    dim.get_value(value_id)
        # Fails fast on undeclared guard references.
        _ = self.evaluator

    @cached_property
    def evaluator(self) -> ConditionEvaluator:
        return ConditionEvaluator(self.dimensions, self.guards)

    @property
    def dimension_ids(self) -> list[str]:
        return [d.id for d in self.dimensions]

    def get_dimension(self, dimension_id: str) -> Dimension:
        for d in self.dimensions:
            if d.id == dimension_id:
                return d
        raise ConfigurationError(
            f"Dimension '{dimension_id}' not found. Available: {self.dimension_ids}",
            context=ErrorContext(dimension_id=dimension_id),
            error_code=ErrorCode.UNKNOWN_REFERENCE,
        )

    def scores_for(self, scenario: Scenario) -> FactorScores:
        """Worst factor scores over the scenario's concrete values."""
        scores = []
        for dim_id, value_id in scenario.concrete.items():
            scores.append(self.get_dimension(dim_id).get_value(value_id).factors)
        return FactorScores.worst(scores)

    def branch_outcomes(self, scenario: Scenario) -> tuple[str, ...]:
        """Branch outcomes (``"<id>:true"`` / ``"<id>:false"``) a scenario exercises."""
        outcomes = []
        values = scenario.values
        for branch in self.branches:
            outcome = branch.outcome_for(values, tuple(scenario.wildcards))
            if outcome is not None:
                outcomes.append(f"{branch.id}:{'true' if outcome else 'false'}")
        return tuple(outcomes)

    @classmethod
    def from_document(cls, document: ModelDocument) -> DimensionModel:
        dimensions: list[Dimension] = []
        guards: list[GuardRule] = []

        for dim_id, entry in document.dimensions.items():
            values = []
            for raw in entry.values:
                if isinstance(raw, str):
                    values.append(Value(raw))
                    continue
                values.append(
                    Value(
                        id=raw.id,
                        kind=raw.kind,
                        description=raw.description,
                        failure=raw.failure,
                        factors=FactorScores.from_dict(raw.factors),
                    )
                )
            dimensions.append(
                Dimension(
                    id=dim_id,
                    values=values,
                    label=entry.label,
                    optional=entry.optional,
                    nominal=entry.nominal,
                )
            )
            for guard in entry.guards:
                targets = set()
                for target_dim, target_values in guard.excludes.items():
                    if isinstance(target_values, str):
                        target_values = [target_values]
                    targets.update((target_dim, v) for v in target_values)
                guards.append(
                    GuardRule(
                        dimension_id=dim_id,
                        value_id=guard.value,
                        implies_excluded=frozenset(targets),
                        description=guard.description,
                    )
                )

        branches = []
        for entry in document.branches:
            when = None
            if entry.when:
                when = {
                    k: (v,) if isinstance(v, str) else tuple(v)
                    for k, v in entry.when.items()
                }
            branches.append(
                Branch(
                    id=entry.id,
                    condition=entry.condition,
                    when=when,
                    true_priority=PriorityTier.parse(entry.true_priority),
                    false_priority=PriorityTier.parse(entry.false_priority),
                )
            )

        return cls(dimensions=dimensions, guards=guards, branches=branches, name=document.name)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DimensionModel:
        """Validate and build a model from plain data.

        Raises:
            ConfigurationError: If the document is malformed or references
                undeclared ids.
        """
        try:
            document = ModelDocument.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid dimension model: {e.error_count()} validation error(s)",
                cause=e,
                errors=[
                    {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                    for err in e.errors()
                ],
            ) from e
        return cls.from_document(document)


def load_model(source: str | Path | Mapping[str, Any] | DimensionModel) -> DimensionModel:
    """Load a Dimension Model from a path, a mapping, or pass one through.

    YAML and JSON files are both accepted.

    Raises:
        ConfigurationError: If the file cannot be read or the model is invalid.
    """
    if isinstance(source, DimensionModel):
        return source
    if isinstance(source, Mapping):
        model = DimensionModel.from_dict(source)
    else:
        path = Path(source)
        if not path.exists():
            raise ConfigurationError(f"Model file not found: {path}")
        try:
            with open(path, encoding="utf-8") as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not parse model file {path}: {e}", cause=e) from e
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Model file {path} must contain a mapping")
        model = DimensionModel.from_dict(data)

    logger.info(
        f"Loaded model '{model.name}': {len(model.dimensions)} dimensions, "
        f"{len(model.guards)} guard rules, {len(model.branches)} branches"
    )
    return model
