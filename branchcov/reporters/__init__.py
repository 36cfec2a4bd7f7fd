"""Reporters module for branchcov.

Provides report formats for engine reports:
- MarkdownReporter: Human-readable coverage checklist with release gate
- JSONReporter: Structured JSON output
"""

from branchcov.reporters.base import BaseReporter
from branchcov.reporters.json_report import JSONReporter
from branchcov.reporters.markdown import MarkdownReporter

REPORTERS: dict[str, type[BaseReporter]] = {
    "json": JSONReporter,
    "markdown": MarkdownReporter,
}

__all__ = [
    "REPORTERS",
    "BaseReporter",
    "JSONReporter",
    "MarkdownReporter",
]
