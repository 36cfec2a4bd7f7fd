"""The coverage ledger: authoritative record of scenario execution results.

The ledger keeps, per scenario id, the current status plus an append-only
history of status-change events. It is safe to use from parallel test
runners:

- writers to different scenario ids never wait on each other (one lock per
  scenario id);
- writers to the same scenario id are serialized; every status change is
  appended to the history in arrival order and the latest one wins.

Counts are always recomputed from the records, never cached.

Example:
    >>> ledger = CoverageLedger()
    >>> ledger.register(scenarios)
    >>> ledger.record(scenarios[0].id, "passed")
    >>> ledger.completion().covered
    1
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from branchcov.errors import ErrorContext, StoreUnavailableError, UnknownScenarioError
from branchcov.ledger.store import InMemoryLedgerStore, LedgerStore
from branchcov.model.scenario import Scenario, ScenarioStatus
from branchcov.priority import PriorityTier

logger = logging.getLogger(__name__)

RESET_KEY = "*"
UNASSIGNED = "unassigned"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LedgerEvent:
    """One status change (or an explicit reset) in the ledger history.

    Attributes:
        sequence: Global receipt order.
        scenario_id: Scenario the event applies to, ``*`` for a reset.
        status: New status.
        reason: Reason given with the status (required for covered skips).
        timestamp: When the ledger received the event.
        previous: Status before the change.
    """

    sequence: int
    scenario_id: str
    status: ScenarioStatus
    reason: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    previous: ScenarioStatus | None = None

    @property
    def is_reset(self) -> bool:
        return self.scenario_id == RESET_KEY

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "scenario_id": self.scenario_id,
            "status": self.status.value,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
            "previous": self.previous.value if self.previous else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LedgerEvent:
        return cls(
            sequence=int(data["sequence"]),
            scenario_id=data["scenario_id"],
            status=ScenarioStatus.parse(data["status"]),
            reason=data.get("reason"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            previous=ScenarioStatus.parse(data["previous"]) if data.get("previous") else None,
        )


@dataclass
class ScenarioRecord:
    """Current state of one scenario in the ledger."""

    scenario_id: str
    priority: PriorityTier | None = None
    state: tuple[ScenarioStatus, str | None] = (ScenarioStatus.PENDING, None)
    last_observed: datetime | None = None
    history: list[LedgerEvent] = field(default_factory=list)

    @property
    def status(self) -> ScenarioStatus:
        return self.state[0]

    @property
    def reason(self) -> str | None:
        return self.state[1]

    @property
    def is_covered(self) -> bool:
        status, reason = self.state
        return status is ScenarioStatus.PASSED or (
            status is ScenarioStatus.SKIPPED and bool(reason)
        )


@dataclass
class CategoryCounts:
    """Status breakdown for a group of scenarios.

    ``covered`` counts passed scenarios and skips that carry a reason;
    ``skipped`` counts only skips without a reason, so
    ``total == covered + pending + failed + skipped`` always holds.
    """

    total: int = 0
    covered: int = 0
    pending: int = 0
    failed: int = 0
    skipped: int = 0

    def add(self, record: ScenarioRecord) -> None:
        self.total += 1
        if record.is_covered:
            self.covered += 1
        elif record.status is ScenarioStatus.PENDING:
            self.pending += 1
        elif record.status is ScenarioStatus.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    @property
    def coverage_pct(self) -> float:
        return (self.covered / self.total * 100) if self.total else 100.0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "covered": self.covered,
            "pending": self.pending,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass
class CompletionSummary(CategoryCounts):
    """Completion metrics for the active run, overall and per priority tier."""

    by_category: dict[str, CategoryCounts] = field(default_factory=dict)

    def category(self, tier: PriorityTier | str) -> CategoryCounts:
        key = tier.value if isinstance(tier, PriorityTier) else tier
        return self.by_category.get(key, CategoryCounts())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = super().to_dict()
        data["byCategory"] = {k: v.to_dict() for k, v in self.by_category.items()}
        return data


class CoverageLedger:
    """Tracks scenario execution status for the active run.

    Attributes:
        store: Persistence backend for history events and snapshots.
    """

    def __init__(
        self,
        store: LedgerStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store: LedgerStore = store if store is not None else InMemoryLedgerStore()
        self._clock = clock
        self._records: dict[str, ScenarioRecord] = {}
        self._scenarios: dict[str, Scenario] = {}
        self._active: set[str] = set()
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._events_lock = threading.Lock()
        self._events: list[LedgerEvent] = []
        self._sequence = itertools.count(1)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, scenarios: Iterable[Scenario]) -> None:
        """Make ``scenarios`` the active run.

        Records of scenarios seen before keep their status and history;
        nothing is reset.
        """
        scenarios = list(scenarios)
        with self._registry_lock:
            self._active = {s.id for s in scenarios}
            for scenario in scenarios:
                self._scenarios[scenario.id] = scenario
                record = self._records.get(scenario.id)
                if record is None:
                    self._records[scenario.id] = ScenarioRecord(
                        scenario_id=scenario.id, priority=scenario.priority
                    )
                    self._locks[scenario.id] = threading.Lock()
                elif scenario.priority is not None:
                    record.priority = scenario.priority
        logger.info(f"Ledger registered {len(self._active)} active scenarios")

    @property
    def active_ids(self) -> list[str]:
        return sorted(self._active)

    def _record_for(self, scenario_id: str) -> tuple[ScenarioRecord, threading.Lock]:
        with self._registry_lock:
            if scenario_id not in self._active:
                raise UnknownScenarioError(
                    f"Scenario '{scenario_id}' was not generated for the active run",
                    context=ErrorContext(scenario_id=scenario_id),
                )
            return self._records[scenario_id], self._locks[scenario_id]

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(
        self,
        scenario_id: str,
        status: ScenarioStatus | str,
        reason: str | None = None,
    ) -> LedgerEvent | None:
        """Record an execution result.

        Re-recording the current status and reason appends nothing to the
        history; it only updates the last-observed timestamp.

        Returns:
            The appended event, or None when the status did not change.

        Raises:
            UnknownScenarioError: If the id is not part of the active run.
            StoreUnavailableError: If the store failed; nothing was changed.
        """
        status = ScenarioStatus.parse(status)
        record, lock = self._record_for(scenario_id)

        with lock:
            now = self._clock()
            if record.state == (status, reason):
                self._store_call(
                    self.store.set,
                    scenario_id,
                    {"last_observed": now.isoformat(), "status": status.value},
                )
                record.last_observed = now
                logger.debug(f"{scenario_id}: {status.value} re-observed")
                return None

            with self._events_lock:
                sequence = next(self._sequence)
            event = LedgerEvent(
                sequence=sequence,
                scenario_id=scenario_id,
                status=status,
                reason=reason,
                timestamp=now,
                previous=record.status,
            )
            self._store_call(self.store.append, scenario_id, event.to_dict())
            with self._events_lock:
                self._events.append(event)

            record.history.append(event)
            record.state = (status, reason)
            record.last_observed = now

        logger.debug(f"{scenario_id}: {event.previous.value} -> {status.value}")
        return event

    def _store_call(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except StoreUnavailableError:
            raise
        except OSError as e:
            raise StoreUnavailableError(
                f"Ledger store failed: {e}",
                cause=e,
                context=ErrorContext(scenario_id=str(args[0]) if args else None),
            ) from e

    def match_trace(self, trace: Mapping[str, str]) -> list[str]:
        """Active scenario ids matching an executed trace (wildcards match anything)."""
        with self._registry_lock:
            active = [self._scenarios[i] for i in sorted(self._active)]
        return [s.id for s in active if s.matches(trace)]

    def record_trace(
        self,
        trace: Mapping[str, str],
        status: ScenarioStatus | str,
        reason: str | None = None,
    ) -> list[str]:
        """Record a result for every active scenario matching ``trace``."""
        matched = self.match_trace(trace)
        for scenario_id in matched:
            self.record(scenario_id, status, reason)
        return matched

    def reset(self) -> None:
        """Explicitly reset every record to pending.

        The reset itself is appended to the history so that replay reproduces it.
        """
        with self._registry_lock:
            locks = [self._locks[k] for k in sorted(self._locks)]
            for lock in locks:
                lock.acquire()
            try:
                with self._events_lock:
                    event = LedgerEvent(
                        sequence=next(self._sequence),
                        scenario_id=RESET_KEY,
                        status=ScenarioStatus.PENDING,
                        timestamp=self._clock(),
                    )
                    self._store_call(self.store.append, RESET_KEY, event.to_dict())
                    self._events.append(event)
                for record in self._records.values():
                    record.state = (ScenarioStatus.PENDING, None)
                    record.history.clear()
                    record.last_observed = None
            finally:
                for lock in reversed(locks):
                    lock.release()
        logger.info("Ledger reset")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, scenario_id: str) -> ScenarioStatus:
        record, _ = self._record_for(scenario_id)
        return record.status

    def reason(self, scenario_id: str) -> str | None:
        record, _ = self._record_for(scenario_id)
        return record.reason

    def last_observed(self, scenario_id: str) -> datetime | None:
        record, _ = self._record_for(scenario_id)
        return record.last_observed

    def history(self, scenario_id: str) -> list[LedgerEvent]:
        record, lock = self._record_for(scenario_id)
        with lock:
            return list(record.history)

    def events(self) -> list[LedgerEvent]:
        """Every event received, in receipt order."""
        with self._events_lock:
            return sorted(self._events, key=lambda e: e.sequence)

    def scenarios(self) -> list[Scenario]:
        """Active scenarios with their current status filled in."""
        with self._registry_lock:
            ids = sorted(self._active)
            pairs = [(self._scenarios[i], self._records[i]) for i in ids]
        result = []
        for scenario, record in pairs:
            status, reason = record.state
            scenario = scenario.with_status(status, reason)
            if record.priority is not None and scenario.priority is None:
                scenario = scenario.with_priority(record.priority)
            result.append(scenario)
        return result

    def pending_ids(self, tier: PriorityTier | None = None) -> list[str]:
        with self._registry_lock:
            records = [self._records[i] for i in sorted(self._active)]
        return [
            r.scenario_id
            for r in records
            if r.status is ScenarioStatus.PENDING and (tier is None or r.priority is tier)
        ]

    def completion(self) -> CompletionSummary:
        """Recompute completion metrics for the active run."""
        with self._registry_lock:
            records = [self._records[i] for i in sorted(self._active)]

        summary = CompletionSummary(
            by_category={tier.value: CategoryCounts() for tier in PriorityTier}
        )
        for record in records:
            summary.add(record)
            key = record.priority.value if record.priority else UNASSIGNED
            summary.by_category.setdefault(key, CategoryCounts()).add(record)
        return summary

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def _apply(self, event: LedgerEvent) -> None:
        """Apply a historical event without persisting it again."""
        with self._events_lock:
            self._events.append(event)
            self._sequence = itertools.count(event.sequence + 1)
        if event.is_reset:
            for record in self._records.values():
                record.state = (ScenarioStatus.PENDING, None)
                record.history.clear()
                record.last_observed = None
            return
        record = self._records.get(event.scenario_id)
        if record is None:
            record = ScenarioRecord(scenario_id=event.scenario_id)
            self._records[event.scenario_id] = record
            self._locks[event.scenario_id] = threading.Lock()
        record.history.append(event)
        record.state = (event.status, event.reason)
        record.last_observed = event.timestamp

    @classmethod
    def replay(
        cls,
        events: Iterable[LedgerEvent | Mapping[str, Any]],
        scenarios: Iterable[Scenario] = (),
        store: LedgerStore | None = None,
    ) -> CoverageLedger:
        """Rebuild a ledger from an event history, starting from empty.

        Events are applied in sequence order. ``store`` is attached for
        future writes but is not written during replay.
        """
        ledger = cls(store=store)
        ledger.register(scenarios)
        parsed = [e if isinstance(e, LedgerEvent) else LedgerEvent.from_dict(e) for e in events]
        for event in sorted(parsed, key=lambda e: e.sequence):
            ledger._apply(event)
        logger.info(f"Replayed {len(parsed)} ledger events")
        return ledger

    @classmethod
    def from_store(cls, store: LedgerStore, scenarios: Iterable[Scenario] = ()) -> CoverageLedger:
        """Rebuild a ledger from everything persisted in ``store``."""
        scenarios = list(scenarios)
        try:
            events = store.events()
        except OSError as e:
            raise StoreUnavailableError(f"Could not read ledger store: {e}", cause=e) from e
        ledger = cls.replay(events, scenarios, store=store)
        for scenario in scenarios:
            snapshot = store.get(scenario.id)
            if snapshot and snapshot.get("last_observed"):
                ledger._records[scenario.id].last_observed = datetime.fromisoformat(
                    snapshot["last_observed"]
                )
        return ledger

    def state(self) -> dict[str, tuple[str, str | None]]:
        """Current ``(status, reason)`` per active or previously recorded scenario id."""
        with self._registry_lock:
            records = {
                k: r for k, r in self._records.items() if k in self._active or r.history
            }
        return {k: (r.status.value, r.reason) for k, r in sorted(records.items())}

    def verify_replay(self) -> bool:
        """Replay this ledger's own history from empty and compare the result."""
        with self._registry_lock:
            scenarios = [self._scenarios[i] for i in sorted(self._active)]
        replayed = CoverageLedger.replay(self.events(), scenarios)
        ok = replayed.state() == self.state()
        if not ok:
            logger.warning("Ledger replay diverged from the live ledger state")
        return ok
