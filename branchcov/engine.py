"""CoverageEngine: the one-stop facade over model, generation, ledger and impact.

Example:
    >>> engine = CoverageEngine()
    >>> engine.load_model("checkout.yaml")
    >>> result = engine.generate("pairwise")
    >>> engine.record_result(result.scenarios[0].id, "passed")
    >>> report = engine.report()
    >>> report.release.blocking
    True
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from branchcov.combinatorial import (
    CombinationGenerator,
    GenerationResult,
    ScenarioPredicate,
    Strategy,
    generate_partitioned,
)
from branchcov.config import EngineSettings
from branchcov.errors import ConfigurationError
from branchcov.impact import DiffConfig, ImpactAnalyzer, ImpactRecord
from branchcov.ledger import (
    CompletionSummary,
    CoverageLedger,
    InMemoryLedgerStore,
    JsonlLedgerStore,
    LedgerEvent,
    LedgerStore,
)
from branchcov.model import DimensionModel, Scenario, ScenarioStatus, load_model
from branchcov.priority import PriorityAssigner, PriorityTier
from branchcov.reporters import REPORTERS

logger = logging.getLogger(__name__)


@dataclass
class BranchCoverage:
    """Coverage of one branch's true and false outcomes.

    Attributes:
        branch_id: Branch id.
        condition: Free-text condition expression.
        mapped: Whether the branch has a structured predicate.
        true_scenarios: Generated scenario ids exercising the true outcome.
        false_scenarios: Generated scenario ids exercising the false outcome.
        true_covered: Whether some covered scenario exercises the true outcome.
        false_covered: Whether some covered scenario exercises the false outcome.
    """

    branch_id: str
    condition: str
    mapped: bool
    true_priority: PriorityTier
    false_priority: PriorityTier
    true_scenarios: list[str] = field(default_factory=list)
    false_scenarios: list[str] = field(default_factory=list)
    true_covered: bool = False
    false_covered: bool = False

    @property
    def fully_covered(self) -> bool:
        return self.mapped and self.true_covered and self.false_covered

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.branch_id,
            "condition": self.condition,
            "mapped": self.mapped,
            "truePriority": self.true_priority.value,
            "falsePriority": self.false_priority.value,
            "true": {"scenarios": self.true_scenarios, "covered": self.true_covered},
            "false": {"scenarios": self.false_scenarios, "covered": self.false_covered},
        }


@dataclass
class ReleaseDecision:
    """Whether the change may ship, with every offending item named."""

    blocking: bool
    pending_p0: list[str] = field(default_factory=list)
    unresolved_breaking: list[str] = field(default_factory=list)

    @property
    def reasons(self) -> list[str]:
        reasons = [f"P0 scenario pending: {sid}" for sid in self.pending_p0]
        reasons.extend(
            f"Breaking impact without migration note: {fid}" for fid in self.unresolved_breaking
        )
        return reasons

    def to_dict(self) -> dict[str, Any]:
        return {
            "blocking": self.blocking,
            "pendingP0": self.pending_p0,
            "unresolvedBreaking": self.unresolved_breaking,
            "reasons": self.reasons,
        }


@dataclass
class EngineReport:
    """Everything the engine knows about the current run."""

    model: str
    strategy: str | None
    scenarios: list[Scenario]
    coverage: CompletionSummary
    impacts: list[ImpactRecord]
    branches: list[BranchCoverage]
    release: ReleaseDecision
    omitted: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "strategy": self.strategy,
            "scenarios": [s.to_dict() for s in self.scenarios],
            "omitted": self.omitted,
            "coverage": self.coverage.to_dict(),
            "impacts": [i.to_dict() for i in self.impacts],
            "branches": [b.to_dict() for b in self.branches],
            "release": self.release.to_dict(),
        }


def _default_store(settings: EngineSettings) -> LedgerStore:
    if settings.ledger_path:
        return JsonlLedgerStore(Path(settings.ledger_path))
    return InMemoryLedgerStore()


class CoverageEngine:
    """Facade over the Dimension Model, generator, assigner, ledger and analyzer.

    When the settings name a ledger path, the ledger is rebuilt from the
    persisted history before anything else happens.

    Attributes:
        settings: Engine settings.
        ledger: The coverage ledger for the active run.
        assigner: Priority assigner.
        analyzer: Impact analyzer.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        ledger: CoverageLedger | None = None,
        assigner: PriorityAssigner | None = None,
        analyzer: ImpactAnalyzer | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.ledger = ledger or CoverageLedger.from_store(_default_store(self.settings))
        self.assigner = assigner or PriorityAssigner()
        self.analyzer = analyzer or ImpactAnalyzer(
            DiffConfig(
                ignore_paths=list(self.settings.impact_ignore_paths),
                ignore_order=self.settings.impact_ignore_order,
                max_depth=self.settings.impact_max_depth,
            )
        )
        self._model: DimensionModel | None = None
        self._result: GenerationResult | None = None
        self._impacts: dict[str, ImpactRecord] = {}

    # ------------------------------------------------------------------
    # Model and generation
    # ------------------------------------------------------------------

    @property
    def model(self) -> DimensionModel:
        if self._model is None:
            raise ConfigurationError(
                "No dimension model loaded",
                suggestions=["Call load_model() with a model file or mapping first"],
            )
        return self._model

    def load_model(self, source: str | Path | Mapping[str, Any] | DimensionModel) -> DimensionModel:
        """Load and validate a Dimension Model; clears any previous generation."""
        self._model = load_model(source)
        self._result = None
        logger.info(
            f"Loaded model '{self._model.name}' with {len(self._model.dimensions)} dimensions"
        )
        return self._model

    def generate(
        self,
        strategy: Strategy | str | None = None,
        p1_predicate: ScenarioPredicate | None = None,
    ) -> GenerationResult:
        """Generate, prioritize and register the scenario set for the active run."""
        model = self.model
        generator = CombinationGenerator(
            model.dimensions,
            evaluator=model.evaluator,
            candidate_limit=self.settings.pairwise_candidate_limit,
        )
        result = generator.run(strategy or self.settings.default_strategy, p1_predicate)

        scenarios = self.assigner.assign_all(result.scenarios, model.scores_for)
        result.scenarios = [s.with_branches(model.branch_outcomes(s)) for s in scenarios]

        self.ledger.register(result.scenarios)
        self._result = result
        return result

    def generate_partitioned(
        self,
        partitions: Sequence[Sequence[str]],
        strategy: Strategy | str | None = None,
        p1_predicate: ScenarioPredicate | None = None,
    ) -> GenerationResult:
        """Generate independent groups of dimensions in parallel.

        Each partition names dimension ids of the loaded model. Guard rules
        are restricted to each partition; the merged set is prioritized and
        registered like a regular run.
        """
        model = self.model
        groups = [[model.get_dimension(dim_id) for dim_id in group] for group in partitions]
        result = generate_partitioned(
            groups,
            strategy or self.settings.default_strategy,
            model.guards,
            max_workers=self.settings.max_workers,
            candidate_limit=self.settings.pairwise_candidate_limit,
            p1_predicate=p1_predicate,
        )
        scenarios = self.assigner.assign_all(result.scenarios, model.scores_for)
        result.scenarios = [s.with_branches(model.branch_outcomes(s)) for s in scenarios]

        self.ledger.register(result.scenarios)
        self._result = result
        return result

    @property
    def scenarios(self) -> list[Scenario]:
        """Active scenarios with current status from the ledger."""
        return self.ledger.scenarios()

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def record_result(
        self,
        scenario_id: str,
        status: ScenarioStatus | str,
        reason: str | None = None,
    ) -> LedgerEvent | None:
        return self.ledger.record(scenario_id, status, reason)

    def record_trace(
        self,
        trace: Mapping[str, str],
        status: ScenarioStatus | str,
        reason: str | None = None,
    ) -> list[str]:
        """Record a result for every active scenario an executed trace matches."""
        matched = self.ledger.record_trace(trace, status, reason)
        if not matched:
            logger.warning(f"Trace {dict(trace)} matched no active scenario")
        return matched

    def reset_ledger(self) -> None:
        self.ledger.reset()

    # ------------------------------------------------------------------
    # Impact
    # ------------------------------------------------------------------

    def add_impact(
        self,
        feature_id: str,
        before: Any,
        after: Any,
        refactored: bool = False,
        migration_note: str | None = None,
    ) -> ImpactRecord:
        """Classify one feature's behavior change and keep the record for the report."""
        record = self.analyzer.analyze(feature_id, before, after, refactored, migration_note)
        self._impacts[feature_id] = record
        return record

    def analyze_impact(
        self,
        before: Mapping[str, Any],
        after: Mapping[str, Any],
        refactored: Iterable[str] = (),
        migration_notes: Mapping[str, str] | None = None,
    ) -> list[ImpactRecord]:
        """Classify whole behavior snapshots and keep the records."""
        records = self.analyzer.analyze_snapshots(before, after, refactored, migration_notes)
        for record in records:
            self._impacts[record.feature_id] = record
        return records

    def resolve_impact(self, feature_id: str, migration_note: str) -> ImpactRecord:
        """Attach a migration note to a recorded impact."""
        if feature_id not in self._impacts:
            raise ConfigurationError(
                f"No impact recorded for feature '{feature_id}'",
                suggestions=[f"Recorded features: {sorted(self._impacts)}"],
            )
        record = self._impacts[feature_id]
        record.migration_note = migration_note
        return record

    @property
    def impacts(self) -> list[ImpactRecord]:
        return [self._impacts[k] for k in sorted(self._impacts)]

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def branch_coverage(self) -> list[BranchCoverage]:
        """Per-branch true/false outcome coverage for the active run."""
        if self._model is None:
            return []
        scenarios = self.ledger.scenarios()
        covered = {
            s.id
            for s in scenarios
            if s.status is ScenarioStatus.PASSED
            or (s.status is ScenarioStatus.SKIPPED and s.reason)
        }
        result = []
        for branch in self._model.branches:
            entry = BranchCoverage(
                branch_id=branch.id,
                condition=branch.condition,
                mapped=branch.is_mapped,
                true_priority=branch.true_priority,
                false_priority=branch.false_priority,
            )
            for scenario in scenarios:
                if f"{branch.id}:true" in scenario.branches:
                    entry.true_scenarios.append(scenario.id)
                if f"{branch.id}:false" in scenario.branches:
                    entry.false_scenarios.append(scenario.id)
            entry.true_covered = any(sid in covered for sid in entry.true_scenarios)
            entry.false_covered = any(sid in covered for sid in entry.false_scenarios)
            result.append(entry)
        return result

    def release_decision(self) -> ReleaseDecision:
        """Blocking while any P0 scenario is pending or a breaking impact is unresolved."""
        pending_p0 = self.ledger.pending_ids(PriorityTier.P0)
        unresolved = [r.feature_id for r in self.impacts if r.is_unresolved]
        decision = ReleaseDecision(
            blocking=bool(pending_p0 or unresolved),
            pending_p0=pending_p0,
            unresolved_breaking=unresolved,
        )
        if decision.blocking:
            logger.info(f"Release blocked: {len(decision.reasons)} reason(s)")
        return decision

    def save_reports(
        self,
        directory: str | Path | None = None,
        formats: Iterable[str] | None = None,
    ) -> list[Path]:
        """Write the current report once per configured format.

        Files are named ``<model>-coverage<ext>`` inside ``directory``
        (default: ``settings.report_dir``).
        """
        directory = Path(directory or self.settings.report_dir)
        report = self.report()
        stem = f"{report.model or 'model'}-coverage"
        saved = []
        for fmt in formats or self.settings.report_formats:
            if fmt not in REPORTERS:
                raise ConfigurationError(
                    f"Unknown report format '{fmt}'. Valid: {sorted(REPORTERS)}"
                )
            reporter = REPORTERS[fmt]()
            saved.append(reporter.save(report, directory / f"{stem}{reporter.file_extension}"))
        logger.info(f"Saved {len(saved)} report(s) to {directory}")
        return saved

    def report(self) -> EngineReport:
        return EngineReport(
            model=self._model.name if self._model else "",
            strategy=self._result.strategy.value if self._result else None,
            scenarios=self.ledger.scenarios(),
            omitted=[o.to_dict() for o in self._result.omitted] if self._result else [],
            coverage=self.ledger.completion(),
            impacts=self.impacts,
            branches=self.branch_coverage(),
            release=self.release_decision(),
        )
