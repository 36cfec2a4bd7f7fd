"""Persistence backends for the coverage ledger.

The ledger talks to its store through a small get/set/append contract:

- ``append(key, event)``: persist one history event (append-only)
- ``events()``: every appended event, in append order (for replay)
- ``get(key)`` / ``set(key, value)``: per-scenario snapshot data such as the
  last-observed timestamp

Stores may raise ``OSError`` (or ``StoreUnavailableError``) when the backing
medium is unreachable; the ledger turns that into a failed operation
without touching its in-memory state.

Example:
    >>> from branchcov.ledger import CoverageLedger, JsonlLedgerStore
    >>> ledger = CoverageLedger(store=JsonlLedgerStore("reports/ledger.jsonl"))
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol

from branchcov.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    """Protocol for ledger persistence backends."""

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the snapshot stored under ``key``, or None."""
        ...

    def set(self, key: str, value: dict[str, Any]) -> None:
        """Replace the snapshot stored under ``key``."""
        ...

    def append(self, key: str, event: dict[str, Any]) -> None:
        """Append one history event for ``key``."""
        ...

    def events(self) -> list[dict[str, Any]]:
        """All appended events in append order."""
        ...


class InMemoryLedgerStore:
    """In-memory store for unit tests and single-process runs.

    Not persistent: everything is lost when the process exits.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, dict[str, Any]] = {}
        self._events: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            value = self._snapshots.get(key)
            return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        with self._lock:
            self._snapshots[key] = copy.deepcopy(value)

    def append(self, key: str, event: dict[str, Any]) -> None:
        with self._lock:
            self._events.append({"key": key, "event": copy.deepcopy(event)})

    def events(self) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(e["event"]) for e in self._events]

    def __len__(self) -> int:
        return len(self._events)


class JsonlLedgerStore:
    """Append-only JSON-lines file store.

    Each event is one line ``{"key": ..., "event": {...}}``. Snapshots are
    kept next to it in ``<name>.snapshots``.

    Attributes:
        path: Path of the event log.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.snapshot_path = self.path.with_suffix(self.path.suffix + ".snapshots")
        self._lock = threading.Lock()
        self._snapshots: dict[str, dict[str, Any]] | None = None

    def _load_snapshots(self) -> dict[str, dict[str, Any]]:
        if self._snapshots is None:
            if self.snapshot_path.exists():
                with open(self.snapshot_path, encoding="utf-8") as f:
                    self._snapshots = json.load(f)
            else:
                self._snapshots = {}
        return self._snapshots

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            value = self._load_snapshots().get(key)
            return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        with self._lock:
            snapshots = self._load_snapshots()
            snapshots[key] = copy.deepcopy(value)
            self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.snapshot_path, "w", encoding="utf-8") as f:
                json.dump(snapshots, f, indent=2, sort_keys=True)

    def append(self, key: str, event: dict[str, Any]) -> None:
        line = json.dumps({"key": key, "event": event}, sort_keys=True, default=str)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
                f.flush()

    def events(self) -> list[dict[str, Any]]:
        with self._lock:
            if not self.path.exists():
                return []
            result = []
            with open(self.path, encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        result.append(json.loads(line)["event"])
                    except (json.JSONDecodeError, KeyError) as e:
                        raise StoreUnavailableError(
                            f"Corrupt ledger line {lineno} in {self.path}",
                            cause=e,
                            recoverable=False,
                        ) from e
            logger.debug(f"Read {len(result)} events from {self.path}")
            return result
