"""CLI commands for branchcov."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
import yaml
from rich.markup import escape

from branchcov.cli.output import (
    branch_table,
    console,
    coverage_table,
    err_console,
    impact_table,
    print_error,
    print_release,
    scenario_table,
)
from branchcov.config import EngineSettings, load_settings
from branchcov.engine import CoverageEngine
from branchcov.errors import (
    BranchCovError,
    ConfigurationError,
    EmptyDimensionError,
    StoreUnavailableError,
    UnknownScenarioError,
)
from branchcov.ledger import CoverageLedger, JsonlLedgerStore
from branchcov.model import ScenarioStatus
from branchcov.reporters import REPORTERS

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RELEASE_BLOCKED = 10
EXIT_CODES: dict[type[BranchCovError], int] = {
    ConfigurationError: 2,
    EmptyDimensionError: 3,
    UnknownScenarioError: 4,
    StoreUnavailableError: 5,
}

STRATEGY_CHOICE = click.Choice(["exhaustive", "pairwise", "priority-bucketed"])


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def exit_code_for(error: BranchCovError) -> int:
    for error_cls, code in EXIT_CODES.items():
        if isinstance(error, error_cls):
            return code
    return 1


@contextmanager
def handle_errors(ctx: click.Context) -> Iterator[None]:
    """Print engine errors and exit with their mapped code."""
    try:
        yield
    except BranchCovError as e:
        logger.debug("Command failed", exc_info=True)
        print_error(e, verbose=ctx.obj.get("verbose", False))
        sys.exit(exit_code_for(e))


def _parse_pairs(pairs: tuple[str, ...], option: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ConfigurationError(
                f"Invalid {option} '{pair}', expected KEY=VALUE",
                suggestions=[f"Example: {option} auth=authenticated"],
            )
        result[key.strip()] = value.strip()
    return result


def _read_data(path: str | Path) -> Any:
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                return json.load(f)
            return yaml.safe_load(f)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Could not parse {path}: {e}", cause=e) from e


def _build_engine(ctx: click.Context, ledger_path: str | None = None) -> CoverageEngine:
    settings: EngineSettings = ctx.obj["settings"]
    if ledger_path:
        settings = settings.model_copy(update={"ledger_path": ledger_path})
    return CoverageEngine(settings)


def _load_impacts(engine: CoverageEngine, path: str) -> None:
    """Feed an impact document into the engine.

    The document holds ``before`` and ``after`` snapshots (feature id ->
    behavior) plus optional ``refactored`` ids and ``migration_notes``.
    """
    data = _read_data(path)
    if not isinstance(data, dict) or "before" not in data or "after" not in data:
        raise ConfigurationError(
            f"Impact file {path} must be a mapping with 'before' and 'after' snapshots"
        )
    engine.analyze_impact(
        data.get("before") or {},
        data.get("after") or {},
        refactored=data.get("refactored") or (),
        migration_notes=data.get("migration_notes") or {},
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """branchcov - Branch Coverage & Context-Combination Engine."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    with handle_errors(ctx):
        settings = load_settings(config, verbose=True if verbose else None)

    ctx.obj["settings"] = settings
    setup_logging(settings.verbose)


@cli.command()
@click.argument("model_path", type=click.Path(exists=True))
@click.option("--strategy", "-s", type=STRATEGY_CHOICE, default=None, help="Generation strategy")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)
@click.option("--show-omitted", is_flag=True, help="List omitted combinations")
@click.option(
    "--partition",
    "partitions",
    multiple=True,
    help="Comma-separated dimension ids generated independently (repeatable)",
)
@click.pass_context
def generate(
    ctx: click.Context,
    model_path: str,
    strategy: str | None,
    output_format: str,
    show_omitted: bool,
    partitions: tuple[str, ...],
) -> None:
    """Generate the prioritized scenario set for a model.

    With --partition, each group of dimensions is generated on its own worker
    and the sets are merged.
    """
    with handle_errors(ctx):
        engine = _build_engine(ctx)
        engine.load_model(model_path)
        if partitions:
            groups = [[d.strip() for d in p.split(",") if d.strip()] for p in partitions]
            result = engine.generate_partitioned(groups, strategy)
        else:
            result = engine.generate(strategy)

    if output_format == "json":
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    console.print(scenario_table(result.scenarios, title=f"Scenarios ({result.strategy.value})"))
    console.print(f"{len(result.scenarios)} scenario(s)")
    if result.omitted:
        console.print(f"{len(result.omitted)} combination(s) omitted (below priority threshold)")
        if show_omitted:
            for omitted in result.omitted:
                console.print(f"  - {escape(omitted.scenario.context_key)}")
    if result.infeasible_targets:
        console.print(f"[yellow]{result.infeasible_targets} infeasible pair target(s) dropped[/yellow]")


@cli.command()
@click.argument("model_path", type=click.Path(exists=True))
@click.argument("status", type=click.Choice([s.value for s in ScenarioStatus]))
@click.option("--id", "scenario_ids", multiple=True, help="Scenario id (repeatable)")
@click.option("--trace", "trace", multiple=True, help="Executed trace as DIM=VALUE (repeatable)")
@click.option("--reason", "-r", default=None, help="Reason (required for a covered skip)")
@click.option("--strategy", "-s", type=STRATEGY_CHOICE, default=None, help="Generation strategy")
@click.option("--ledger", "ledger_path", type=click.Path(), default=None, help="Ledger file")
@click.pass_context
def record(
    ctx: click.Context,
    model_path: str,
    status: str,
    scenario_ids: tuple[str, ...],
    trace: tuple[str, ...],
    reason: str | None,
    strategy: str | None,
    ledger_path: str | None,
) -> None:
    """Record an execution result in the persisted ledger.

    Target scenarios by id (--id) or by an executed trace (--trace); a
    trace records every active scenario it matches, wildcards included.
    """
    with handle_errors(ctx):
        if not scenario_ids and not trace:
            raise ConfigurationError(
                "Nothing to record", suggestions=["Pass --id SCENARIO_ID or --trace DIM=VALUE"]
            )
        engine = _build_engine(ctx, ledger_path)
        if not engine.settings.ledger_path:
            raise ConfigurationError(
                "Recording needs a persisted ledger",
                suggestions=["Pass --ledger PATH or set BRANCHCOV_LEDGER_PATH"],
            )
        engine.load_model(model_path)
        engine.generate(strategy)

        recorded: list[str] = []
        for scenario_id in scenario_ids:
            engine.record_result(scenario_id, status, reason)
            recorded.append(scenario_id)
        if trace:
            recorded.extend(engine.record_trace(_parse_pairs(trace, "--trace"), status, reason))

    for scenario_id in recorded:
        console.print(f"{status}: {escape(scenario_id)}")
    if not recorded:
        console.print("[yellow]No scenario matched[/yellow]")


@cli.command()
@click.argument("model_path", type=click.Path(exists=True))
@click.option("--strategy", "-s", type=STRATEGY_CHOICE, default=None, help="Generation strategy")
@click.option("--ledger", "ledger_path", type=click.Path(), default=None, help="Ledger file")
@click.option(
    "--impacts", "impacts_path", type=click.Path(exists=True), default=None, help="Impact file"
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "markdown", "json"]),
    default="text",
    help="Report format",
)
@click.option(
    "--output", "-o", "output_path", type=click.Path(), default=None, help="Output file path"
)
@click.option(
    "--save",
    "save_dir",
    type=click.Path(),
    default=None,
    help="Also write every configured report format into this directory",
)
@click.pass_context
def report(
    ctx: click.Context,
    model_path: str,
    strategy: str | None,
    ledger_path: str | None,
    impacts_path: str | None,
    output_format: str,
    output_path: str | None,
    save_dir: str | None,
) -> None:
    """Report coverage, branches, impact and the release gate.

    Exits with code 10 when the release is blocked.
    """
    with handle_errors(ctx):
        engine = _build_engine(ctx, ledger_path)
        engine.load_model(model_path)
        engine.generate(strategy)
        if impacts_path:
            _load_impacts(engine, impacts_path)
        engine_report = engine.report()
        saved = engine.save_reports(save_dir) if save_dir else []

    if output_format == "text":
        console.print(scenario_table(engine_report.scenarios))
        console.print(coverage_table(engine_report.coverage))
        if engine_report.branches:
            console.print(branch_table(engine_report.branches))
        if engine_report.impacts:
            console.print(impact_table(engine_report.impacts))
        print_release(engine_report.release)
    else:
        reporter = REPORTERS[output_format]()
        if output_path:
            written = reporter.save(engine_report, output_path)
            click.echo(f"Report generated: {written}")
        else:
            click.echo(reporter.generate(engine_report))

    for path in saved:
        err_console.print(f"Report saved: {escape(str(path))}")

    sys.exit(EXIT_RELEASE_BLOCKED if engine_report.release.blocking else EXIT_OK)


@cli.command()
@click.argument("before_path", type=click.Path(exists=True))
@click.argument("after_path", type=click.Path(exists=True))
@click.option("--refactored", multiple=True, help="Feature id reached through a new path")
@click.option("--note", "notes", multiple=True, help="Migration note as FEATURE=TEXT")
@click.option("--ignore", "ignore_paths", multiple=True, help="Path glob to leave out of the diff")
@click.option("--ignore-order", is_flag=True, help="Compare lists regardless of element order")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)
@click.pass_context
def impact(
    ctx: click.Context,
    before_path: str,
    after_path: str,
    refactored: tuple[str, ...],
    notes: tuple[str, ...],
    ignore_paths: tuple[str, ...],
    ignore_order: bool,
    output_format: str,
) -> None:
    """Classify behavior changes between two snapshots.

    Exits with code 10 when a breaking change has no migration note.
    """
    with handle_errors(ctx):
        before = _read_data(before_path) or {}
        after = _read_data(after_path) or {}
        if not isinstance(before, dict) or not isinstance(after, dict):
            raise ConfigurationError("Snapshots must map feature ids to behaviors")
        settings = ctx.obj["settings"]
        engine = CoverageEngine(
            settings.model_copy(
                update={
                    "ledger_path": None,
                    "impact_ignore_paths": [*settings.impact_ignore_paths, *ignore_paths],
                    "impact_ignore_order": settings.impact_ignore_order or ignore_order,
                }
            )
        )
        records = engine.analyze_impact(
            before, after, refactored=refactored, migration_notes=_parse_pairs(notes, "--note")
        )

    if output_format == "json":
        click.echo(json.dumps([r.to_dict() for r in records], indent=2, default=str))
    else:
        console.print(impact_table(records))

    blocked = any(r.is_unresolved for r in records)
    sys.exit(EXIT_RELEASE_BLOCKED if blocked else EXIT_OK)


@cli.command()
@click.argument("ledger_path", type=click.Path(exists=True))
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)
@click.pass_context
def replay(ctx: click.Context, ledger_path: str, output_format: str) -> None:
    """Rebuild the ledger from its persisted history and verify determinism."""
    with handle_errors(ctx):
        ledger = CoverageLedger.from_store(JsonlLedgerStore(Path(ledger_path)))
        state = ledger.state()
        events = ledger.events()
        deterministic = ledger.verify_replay()

    if output_format == "json":
        click.echo(
            json.dumps(
                {
                    "events": len(events),
                    "deterministic": deterministic,
                    "state": {k: {"status": s, "reason": r} for k, (s, r) in state.items()},
                },
                indent=2,
            )
        )
    else:
        console.print(f"Replayed {len(events)} event(s) for {len(state)} scenario(s)")
        for scenario_id, (status, reason) in state.items():
            suffix = f" ({reason})" if reason else ""
            console.print(f"  {escape(scenario_id)}: {status}{escape(suffix)}")
        if deterministic:
            console.print("[green]Replay is deterministic[/green]")
        else:
            console.print("[red]Replay diverged from recorded state[/red]")

    sys.exit(EXIT_OK if deterministic else 1)
