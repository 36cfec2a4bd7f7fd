"""Rich terminal output for the branchcov CLI."""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from branchcov.engine import BranchCoverage, ReleaseDecision
from branchcov.errors import BranchCovError
from branchcov.impact import ImpactCategory, ImpactRecord
from branchcov.ledger import CategoryCounts, CompletionSummary
from branchcov.model import Scenario, ScenarioStatus

console = Console()
err_console = Console(stderr=True)

STATUS_STYLE = {
    ScenarioStatus.PASSED: "green",
    ScenarioStatus.FAILED: "red",
    ScenarioStatus.SKIPPED: "yellow",
    ScenarioStatus.PENDING: "dim",
}

IMPACT_STYLE = {
    ImpactCategory.BREAKING: "bold red",
    ImpactCategory.CHANGED: "yellow",
    ImpactCategory.NEW: "cyan",
    ImpactCategory.REFACTORED: "blue",
    ImpactCategory.NONE: "dim",
}


def scenario_table(scenarios: Iterable[Scenario], title: str = "Scenarios") -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Priority")
    table.add_column("Context key", style="bold")
    table.add_column("Status")
    table.add_column("Branches", style="dim")

    for i, scenario in enumerate(scenarios, 1):
        style = STATUS_STYLE[scenario.status]
        status = scenario.status.value
        if scenario.reason:
            status += f" ({scenario.reason})"
        table.add_row(
            str(i),
            scenario.priority.value if scenario.priority else "-",
            escape(scenario.context_key),
            f"[{style}]{escape(status)}[/{style}]",
            escape(", ".join(scenario.branches)),
        )
    return table


def coverage_table(summary: CompletionSummary) -> Table:
    table = Table(title="Coverage")
    for column in ("Category", "Total", "Covered", "Pending", "Failed", "Skipped", "Coverage"):
        table.add_column(column, justify="left" if column == "Category" else "right")

    def add(name: str, c: CategoryCounts) -> None:
        table.add_row(
            name,
            str(c.total),
            str(c.covered),
            str(c.pending),
            str(c.failed),
            str(c.skipped),
            f"{c.coverage_pct:.1f}%",
        )

    add("[bold]all[/bold]", summary)
    for key, counts in summary.by_category.items():
        add(key, counts)
    return table


def impact_table(records: Iterable[ImpactRecord]) -> Table:
    table = Table(title="Impact")
    table.add_column("Feature", style="bold")
    table.add_column("Impact")
    table.add_column("Verification")
    table.add_column("Migration note")

    for record in records:
        style = IMPACT_STYLE[record.category]
        if record.migration_note:
            note = escape(record.migration_note)
        else:
            note = "[red]missing[/red]" if record.is_breaking else ""
        table.add_row(
            escape(record.feature_id),
            f"[{style}]{record.category.value.upper()}[/{style}]",
            escape(record.verification),
            note,
        )
    return table


def branch_table(branches: Iterable[BranchCoverage]) -> Table:
    table = Table(title="Branches")
    table.add_column("Branch", style="bold")
    table.add_column("Condition")
    table.add_column("True")
    table.add_column("False")

    def mark(covered: bool, count: int) -> str:
        return "[green]covered[/green]" if covered else f"[yellow]open ({count})[/yellow]"

    for b in branches:
        if not b.mapped:
            table.add_row(escape(b.branch_id), escape(b.condition), "[dim]unmapped[/dim]", "[dim]unmapped[/dim]")
            continue
        table.add_row(
            escape(b.branch_id),
            escape(b.condition),
            mark(b.true_covered, len(b.true_scenarios)),
            mark(b.false_covered, len(b.false_scenarios)),
        )
    return table


def print_release(decision: ReleaseDecision) -> None:
    if not decision.blocking:
        console.print("[green]Release gate: no blocking items[/green]")
        return
    console.print("[bold red]Release blocked:[/bold red]")
    for reason in decision.reasons:
        console.print(f"  - {escape(reason)}")


def print_error(error: BranchCovError, verbose: bool = False) -> None:
    text = error.format_verbose() if verbose else str(error)
    err_console.print(f"[red]{escape(text)}[/red]")
