"""Structural differences between two behavior snapshots.

A behavior is any JSON-like value. The walk reports each leaf-level
difference with a dotted path (``body.items[2].price``); the impact
analyzer turns those into an impact category.

Example:
    >>> from branchcov.impact.diff import JSONDiff
    >>> items = JSONDiff().compare({"status": 200, "body": {"credits": 5}},
    ...                            {"status": 200, "body": {"credits": 4}})
    >>> [(i.path, i.diff_type.value) for i in items]
    [('body.credits', 'changed')]
"""

from __future__ import annotations

import fnmatch
import json
from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

ROOT_PATH = "(root)"


class DiffType(Enum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    TYPE_CHANGED = "type_changed"


@dataclass
class DiffConfig:
    """Knobs for snapshot comparison.

    Attributes:
        ignore_paths: Glob patterns matched against the full path or the
            last path segment (``"*.timestamp"``, ``"request_id"``).
        ignore_order: Compare lists as multisets.
        max_depth: Nesting level below which differences are not reported.
    """

    ignore_paths: list[str] = field(default_factory=list)
    ignore_order: bool = False
    max_depth: int = 50


@dataclass
class JSONDiffItem:
    """One difference: where it is, what kind, and both sides."""

    path: str
    diff_type: DiffType
    old_value: Any = None
    new_value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "type": self.diff_type.value,
            "old_value": self.old_value,
            "new_value": self.new_value,
        }


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


class JSONDiff:
    """Walks two snapshots in lockstep and collects their differences."""

    def __init__(self, config: DiffConfig | None = None) -> None:
        self.config = config or DiffConfig()

    def compare(self, old: Any, new: Any) -> list[JSONDiffItem]:
        return list(self._walk(old, new, "", 0))

    def is_ignored(self, path: str) -> bool:
        if not path or not self.config.ignore_paths:
            return False
        last = path.rsplit(".", 1)[-1]
        return any(
            fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(last, pattern)
            for pattern in self.config.ignore_paths
        )

    def _walk(self, old: Any, new: Any, path: str, depth: int) -> Iterator[JSONDiffItem]:
        if depth > self.config.max_depth or self.is_ignored(path):
            return
        here = path or ROOT_PATH
        if type(old) is not type(new):
            yield JSONDiffItem(here, DiffType.TYPE_CHANGED, old, new)
        elif isinstance(old, dict):
            yield from self._walk_mapping(old, new, path, depth)
        elif isinstance(old, list) and self.config.ignore_order:
            yield from self._walk_multiset(old, new, path)
        elif isinstance(old, list):
            yield from self._walk_sequence(old, new, path, depth)
        elif old != new:
            yield JSONDiffItem(here, DiffType.CHANGED, old, new)

    def _walk_mapping(
        self, old: dict[str, Any], new: dict[str, Any], path: str, depth: int
    ) -> Iterator[JSONDiffItem]:
        for key in sorted(old.keys() | new.keys(), key=str):
            child = f"{path}.{key}" if path else str(key)
            if key not in new:
                if not self.is_ignored(child):
                    yield JSONDiffItem(child, DiffType.REMOVED, old[key], None)
            elif key not in old:
                if not self.is_ignored(child):
                    yield JSONDiffItem(child, DiffType.ADDED, None, new[key])
            else:
                yield from self._walk(old[key], new[key], child, depth + 1)

    def _walk_sequence(
        self, old: list[Any], new: list[Any], path: str, depth: int
    ) -> Iterator[JSONDiffItem]:
        shared = min(len(old), len(new))
        for i in range(shared):
            yield from self._walk(old[i], new[i], f"{path}[{i}]", depth + 1)
        for i in range(shared, len(old)):
            yield JSONDiffItem(f"{path}[{i}]", DiffType.REMOVED, old[i], None)
        for i in range(shared, len(new)):
            yield JSONDiffItem(f"{path}[{i}]", DiffType.ADDED, None, new[i])

    def _walk_multiset(self, old: list[Any], new: list[Any], path: str) -> Iterator[JSONDiffItem]:
        before = Counter(_canonical(v) for v in old)
        after = Counter(_canonical(v) for v in new)
        for text in sorted((before - after).elements()):
            yield JSONDiffItem(f"{path}[]", DiffType.REMOVED, json.loads(text), None)
        for text in sorted((after - before).elements()):
            yield JSONDiffItem(f"{path}[]", DiffType.ADDED, None, json.loads(text))
