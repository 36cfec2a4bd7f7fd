"""Change-impact classification for behavior snapshots.

Each feature's behavior before and after a change is compared by
structural and value equality:

| Before | After | Result |
|---|---|---|
| equal | equal | none (refactored when flagged by the caller) |
| absent | present | new |
| present | absent | breaking |
| key/element removed or type changed | | breaking |
| other value differences | | changed |

Breaking impacts gate release until a migration note is recorded.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from branchcov.impact.diff import DiffConfig, DiffType, JSONDiff, JSONDiffItem

logger = logging.getLogger(__name__)


class _Absent:
    """Marker for a behavior that does not exist on one side."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


class ImpactCategory(Enum):
    NONE = "none"
    CHANGED = "changed"
    BREAKING = "breaking"
    NEW = "new"
    REFACTORED = "refactored"


VERIFICATION: dict[ImpactCategory, str] = {
    ImpactCategory.NONE: "No action required",
    ImpactCategory.CHANGED: "Update expected values in affected tests and confirm the change is intended",
    ImpactCategory.BREAKING: "Record a migration note and notify consumers before release",
    ImpactCategory.NEW: "Add tests covering the new behavior",
    ImpactCategory.REFACTORED: "Re-run regression tests; observable behavior must stay identical",
}


@dataclass
class ImpactRecord:
    """Impact of a change on one feature.

    Attributes:
        feature_id: Feature the behavior belongs to.
        before: Behavior snapshot before the change (ABSENT if new).
        after: Behavior snapshot after the change (ABSENT if removed).
        category: Classified impact.
        verification: Required follow-up action.
        migration_note: Note that resolves a breaking impact.
        differences: Structural differences found.
    """

    feature_id: str
    before: Any
    after: Any
    category: ImpactCategory
    verification: str = ""
    migration_note: str | None = None
    differences: list[JSONDiffItem] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.verification:
            self.verification = VERIFICATION[self.category]

    @property
    def is_breaking(self) -> bool:
        return self.category is ImpactCategory.BREAKING

    @property
    def is_unresolved(self) -> bool:
        """A breaking impact without a migration note."""
        return self.is_breaking and not (self.migration_note and self.migration_note.strip())

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature_id": self.feature_id,
            "before": None if self.before is ABSENT else self.before,
            "after": None if self.after is ABSENT else self.after,
            "category": self.category.value,
            "verification": self.verification,
            "migration_note": self.migration_note,
            "differences": [d.to_dict() for d in self.differences],
        }


def _is_absent(value: Any) -> bool:
    return value is ABSENT or value is None


class ImpactAnalyzer:
    """Classifies before/after behavior snapshots per feature."""

    def __init__(self, config: DiffConfig | None = None) -> None:
        self._diff = JSONDiff(config)

    def differences(self, before: Any, after: Any) -> list[JSONDiffItem]:
        if _is_absent(before) or _is_absent(after):
            return []
        return self._diff.compare(before, after)

    def classify(self, before: Any, after: Any, refactored: bool = False) -> ImpactCategory:
        """Classify one behavior change.

        ``new`` applies to a whole feature only: a key or list element that
        appears inside an existing behavior is a ``changed`` impact, while
        one that disappears is ``breaking``.

        Args:
            before: Behavior before the change; None or ABSENT if it did not exist.
            after: Behavior after the change; None or ABSENT if it was removed.
            refactored: Caller-supplied flag that the (identical) value is now
                reached through a structurally different path.
        """
        if _is_absent(before) and _is_absent(after):
            return ImpactCategory.NONE
        if _is_absent(before):
            return ImpactCategory.NEW
        if _is_absent(after):
            return ImpactCategory.BREAKING
        return self._classify_diff(self._diff.compare(before, after), refactored)

    @staticmethod
    def _classify_diff(items: list[JSONDiffItem], refactored: bool) -> ImpactCategory:
        if not items:
            return ImpactCategory.REFACTORED if refactored else ImpactCategory.NONE
        if any(i.diff_type in (DiffType.REMOVED, DiffType.TYPE_CHANGED) for i in items):
            return ImpactCategory.BREAKING
        return ImpactCategory.CHANGED

    def analyze(
        self,
        feature_id: str,
        before: Any,
        after: Any,
        refactored: bool = False,
        migration_note: str | None = None,
    ) -> ImpactRecord:
        """Classify a change and build its impact record."""
        category = self.classify(before, after, refactored)
        record = ImpactRecord(
            feature_id=feature_id,
            before=before,
            after=after,
            category=category,
            migration_note=migration_note,
            differences=self.differences(before, after),
        )
        if record.is_breaking:
            logger.warning(
                f"Breaking impact on '{feature_id}'"
                + ("" if migration_note else " (no migration note)")
            )
        else:
            logger.debug(f"Impact on '{feature_id}': {category.value}")
        return record

    def analyze_snapshots(
        self,
        before: Mapping[str, Any],
        after: Mapping[str, Any],
        refactored: Iterable[str] = (),
        migration_notes: Mapping[str, str] | None = None,
    ) -> list[ImpactRecord]:
        """Compare whole snapshots (feature id -> behavior), sorted by feature id."""
        refactored = set(refactored)
        notes = migration_notes or {}
        records = []
        for feature_id in sorted(set(before) | set(after)):
            records.append(
                self.analyze(
                    feature_id,
                    before.get(feature_id, ABSENT),
                    after.get(feature_id, ABSENT),
                    refactored=feature_id in refactored,
                    migration_note=notes.get(feature_id),
                )
            )
        return records
