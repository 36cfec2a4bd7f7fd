"""Coverage ledger and its persistence backends."""

from branchcov.ledger.ledger import (
    CategoryCounts,
    CompletionSummary,
    CoverageLedger,
    LedgerEvent,
    ScenarioRecord,
)
from branchcov.ledger.store import InMemoryLedgerStore, JsonlLedgerStore, LedgerStore

__all__ = [
    "CategoryCounts",
    "CompletionSummary",
    "CoverageLedger",
    "InMemoryLedgerStore",
    "JsonlLedgerStore",
    "LedgerEvent",
    "LedgerStore",
    "ScenarioRecord",
]
