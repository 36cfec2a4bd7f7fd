"""JSON reporter for machine-readable coverage output.

Example:
    >>> from branchcov.reporters import JSONReporter
    >>> reporter = JSONReporter(indent=4)
    >>> data = json.loads(reporter.generate(engine.report()))
    >>> data["release"]["blocking"]
    False
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from branchcov.reporters.base import BaseReporter

if TYPE_CHECKING:
    from branchcov.engine import EngineReport

REPORT_VERSION = "1.0"


class JSONReporter(BaseReporter):
    """Generate JSON reports for programmatic consumption.

    The document holds report metadata plus the engine report sections:
    scenarios, omitted, coverage, impacts, branches and release.

    Attributes:
        output_path: Optional default path for saving reports.
        indent: Number of spaces for JSON indentation (default: 2).
    """

    @property
    def file_extension(self) -> str:
        return ".json"

    def __init__(
        self,
        output_path: str | Path | None = None,
        indent: int | None = 2,
    ) -> None:
        super().__init__(output_path)
        self.indent = indent

    def generate(self, report: EngineReport) -> str:
        return json.dumps(self.build(report), indent=self.indent, default=self._json_serializer)

    def build(self, report: EngineReport) -> dict[str, Any]:
        data = {
            "report": {
                "generated_at": datetime.now().isoformat(),
                "version": REPORT_VERSION,
            },
        }
        data.update(report.to_dict())
        return data

    @staticmethod
    def _json_serializer(obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return str(obj)
