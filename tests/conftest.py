"""Pytest fixtures for branchcov tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from branchcov.combinatorial import CombinationGenerator
from branchcov.model import Dimension, GuardRule, Scenario, Value, ValueKind, exclude
from branchcov.priority import PriorityTier

FIXTURES = Path(__file__).parent / "fixtures"

AUTH_ID = "auth=authenticated__credits=sufficient"
UNAUTH_ID = "auth=unauthenticated__credits=*"

CHECKOUT_MODEL: dict[str, Any] = {
    "name": "checkout",
    "dimensions": {
        "auth": {
            "label": "Auth state",
            "nominal": "authenticated",
            "values": [
                {"id": "authenticated"},
                {
                    "id": "unauthenticated",
                    "failure": True,
                    "factors": {"security": "vulnerability"},
                },
            ],
            "guards": [
                {
                    "value": "unauthenticated",
                    "excludes": {"credits": ["sufficient", "insufficient", "exact"]},
                }
            ],
        },
        "credits": {
            "values": [
                {"id": "sufficient", "factors": {"frequency": "mostUsers"}},
                {"id": "insufficient", "failure": True, "factors": {"impact": "major"}},
                {"id": "exact", "kind": "boundary", "factors": {"impact": "minor"}},
            ],
        },
    },
    "branches": [
        {
            "id": "B1",
            "condition": "user.is_authenticated",
            "when": {"auth": "authenticated"},
            "truePriority": "P1",
            "falsePriority": "P0",
        },
        {"id": "B2", "condition": "user.credits >= cost", "when": {"credits": ["sufficient", "exact"]}},
        {"id": "B3", "condition": "feature_flag('fast_checkout')"},
    ],
}


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class FailingStore:
    """Ledger store whose medium is unreachable."""

    def get(self, key: str) -> dict[str, Any] | None:
        return None

    def set(self, key: str, value: dict[str, Any]) -> None:
        raise OSError("disk unplugged")

    def append(self, key: str, event: dict[str, Any]) -> None:
        raise OSError("disk unplugged")

    def events(self) -> list[dict[str, Any]]:
        return []


@pytest.fixture
def auth_dimension() -> Dimension:
    return Dimension("auth", ["authenticated", "unauthenticated"])


@pytest.fixture
def credits_dimension() -> Dimension:
    return Dimension(
        "credits",
        [
            Value("sufficient"),
            Value("insufficient", failure=True),
            Value("exact", kind=ValueKind.BOUNDARY),
        ],
    )


@pytest.fixture
def auth_credits_guard() -> GuardRule:
    return exclude(
        "auth",
        "unauthenticated",
        credits=["sufficient", "insufficient", "exact"],
    )


@pytest.fixture
def auth_credits_generator(auth_dimension, credits_dimension, auth_credits_guard) -> CombinationGenerator:
    return CombinationGenerator([auth_dimension, credits_dimension], [auth_credits_guard])


@pytest.fixture
def auth_credits_scenarios(auth_credits_generator) -> list[Scenario]:
    """The four exhaustive Auth/Credits scenarios, unauthenticated one at P0."""
    scenarios = auth_credits_generator.exhaustive()
    return [
        s.with_priority(PriorityTier.P0 if s.id == UNAUTH_ID else PriorityTier.P1)
        for s in scenarios
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def checkout_model() -> dict[str, Any]:
    return CHECKOUT_MODEL


@pytest.fixture
def checkout_model_path() -> Path:
    return FIXTURES / "checkout.yaml"
