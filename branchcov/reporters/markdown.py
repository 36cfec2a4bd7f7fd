"""Markdown reporter for the human-readable coverage checklist."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from branchcov.impact import ImpactCategory
from branchcov.model import Scenario, ScenarioStatus
from branchcov.priority import PriorityTier
from branchcov.reporters.base import BaseReporter

if TYPE_CHECKING:
    from branchcov.engine import EngineReport

STATUS_MARK = {
    ScenarioStatus.PASSED: "[x]",
    ScenarioStatus.SKIPPED: "[~]",
    ScenarioStatus.FAILED: "[!]",
    ScenarioStatus.PENDING: "[ ]",
}


class MarkdownReporter(BaseReporter):
    """Generate a Markdown checklist of scenarios plus the release gate."""

    @property
    def file_extension(self) -> str:
        return ".md"

    def generate(self, report: EngineReport) -> str:
        sections = [
            self._generate_header(report),
            self._generate_summary(report),
            self._generate_checklist(report),
            self._generate_branches(report),
            self._generate_impacts(report),
            self._generate_release(report),
        ]
        return "\n\n".join(s for s in sections if s) + "\n"

    def _generate_header(self, report: EngineReport) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        status = "BLOCKED" if report.release.blocking else "READY"
        return f"""# Coverage Report: {report.model or "(no model)"}

**Generated:** {timestamp}
**Strategy:** {report.strategy or "-"}
**Release:** {status}"""

    def _generate_summary(self, report: EngineReport) -> str:
        c = report.coverage
        lines = [
            "## Summary",
            "",
            "| Category | Total | Covered | Pending | Failed | Skipped | Coverage |",
            "|----------|-------|---------|---------|--------|---------|----------|",
            f"| **All** | {c.total} | {c.covered} | {c.pending} | {c.failed} | {c.skipped} "
            f"| {c.coverage_pct:.1f}% |",
        ]
        for key, counts in c.by_category.items():
            if not counts.total and key not in {t.value for t in PriorityTier}:
                continue
            lines.append(
                f"| {key} | {counts.total} | {counts.covered} | {counts.pending} "
                f"| {counts.failed} | {counts.skipped} | {counts.coverage_pct:.1f}% |"
            )
        if report.omitted:
            lines.append("")
            lines.append(f"_{len(report.omitted)} combinations omitted (below priority threshold)._")
        return "\n".join(lines)

    def _generate_checklist(self, report: EngineReport) -> str:
        if not report.scenarios:
            return ""

        def tier_of(s: Scenario) -> str:
            return s.priority.value if s.priority else "unassigned"

        lines = ["## Scenarios"]
        for tier in [t.value for t in PriorityTier] + ["unassigned"]:
            group = [s for s in report.scenarios if tier_of(s) == tier]
            if not group:
                continue
            lines.append(f"\n### {tier}\n")
            for scenario in group:
                mark = STATUS_MARK[scenario.status]
                line = f"- {mark} `{scenario.context_key}`"
                if scenario.reason:
                    line += f" ({scenario.reason})"
                lines.append(line)
        return "\n".join(lines)

    def _generate_branches(self, report: EngineReport) -> str:
        if not report.branches:
            return ""
        lines = [
            "## Branches",
            "",
            "| Branch | Condition | True | False |",
            "|--------|-----------|------|-------|",
        ]
        for b in report.branches:
            if not b.mapped:
                lines.append(f"| {b.branch_id} | `{b.condition}` | unmapped | unmapped |")
                continue
            true_mark = "covered" if b.true_covered else f"open ({len(b.true_scenarios)})"
            false_mark = "covered" if b.false_covered else f"open ({len(b.false_scenarios)})"
            lines.append(f"| {b.branch_id} | `{b.condition}` | {true_mark} | {false_mark} |")
        return "\n".join(lines)

    def _generate_impacts(self, report: EngineReport) -> str:
        impacts = [i for i in report.impacts if i.category is not ImpactCategory.NONE]
        if not impacts:
            return ""
        lines = ["## Impact"]
        breaking = [i for i in impacts if i.is_breaking]
        if breaking:
            lines.append("\n### BREAKING\n")
            for record in breaking:
                note = record.migration_note or "**missing migration note**"
                lines.append(f"- `{record.feature_id}`: {note}")
        others = [i for i in impacts if not i.is_breaking]
        if others:
            lines.append("")
            lines.append("| Feature | Impact | Verification |")
            lines.append("|---------|--------|--------------|")
            for record in others:
                lines.append(
                    f"| {record.feature_id} | {record.category.value} | {record.verification} |"
                )
        return "\n".join(lines)

    def _generate_release(self, report: EngineReport) -> str:
        release = report.release
        if not release.blocking:
            return "## Release Gate\n\nNo blocking items."
        lines = ["## Release Gate", "", "**Release is blocked:**", ""]
        lines.extend(f"- {reason}" for reason in release.reasons)
        return "\n".join(lines)
