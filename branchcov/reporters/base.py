"""Abstract base reporter class for branchcov.

Reporters convert an EngineReport into an output format (Markdown, JSON).

Example:
    >>> class CustomReporter(BaseReporter):
    ...     @property
    ...     def file_extension(self) -> str:
    ...         return ".custom"
    ...
    ...     def generate(self, report: EngineReport) -> str:
    ...         return "custom format output"
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from branchcov.engine import EngineReport


class BaseReporter(ABC):
    """Abstract base class for all branchcov reporters.

    Attributes:
        output_path: Optional default path for saving reports.

    Example:
        >>> reporter = MarkdownReporter()
        >>> text = reporter.generate(engine.report())
        >>> reporter.save(engine.report(), path="coverage.md")
        PosixPath('coverage.md')
    """

    def __init__(self, output_path: str | Path | None = None) -> None:
        self.output_path = Path(output_path) if output_path else None

    @abstractmethod
    def generate(self, report: EngineReport) -> str:
        """Render an engine report.

        Implementations must produce a valid report even when no scenarios
        were generated.
        """
        ...

    @property
    @abstractmethod
    def file_extension(self) -> str:
        """File extension including the dot (e.g. '.md', '.json')."""
        ...

    def save(self, report: EngineReport, path: str | Path | None = None) -> Path:
        """Render the report and write it, creating parent directories.

        Raises:
            ValueError: If no output path is provided and none was set in constructor.
        """
        output_path = Path(path) if path else self.output_path
        if not output_path:
            raise ValueError(
                "Output path required for saving report. "
                "Provide 'path' argument or set 'output_path' in constructor."
            )

        content = self.generate(report)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(content)

        return output_path
