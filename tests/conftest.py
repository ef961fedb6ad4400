from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Dict, Optional

import pytest

os.environ.setdefault("KEYDOJO_DATABASE_URL", "sqlite://")
os.environ.setdefault("KEYDOJO_PERSISTENCE_MODE", "database")

from keydojo.cache import SnapshotCache  # noqa: E402
from keydojo.clock import DayPolicy, FixedClock  # noqa: E402
from keydojo.engine import ProgressionEngine  # noqa: E402
from keydojo.errors import PersistenceFailure  # noqa: E402
from keydojo.progression import ProgressionSnapshot  # noqa: E402
from keydojo.telemetry import TelemetryEvent  # noqa: E402


class MemoryStore:
    """Dict-backed snapshot store; ``fail_saves`` simulates an unavailable backend."""

    def __init__(self) -> None:
        self.snapshots: Dict[str, ProgressionSnapshot] = {}
        self.saves = 0
        self.fail_saves = False

    def load(self, account_id: str) -> Optional[ProgressionSnapshot]:
        snapshot = self.snapshots.get(account_id)
        return snapshot.model_copy(deep=True) if snapshot is not None else None

    def save(self, account_id: str, snapshot: ProgressionSnapshot) -> ProgressionSnapshot:
        if self.fail_saves:
            raise PersistenceFailure("store offline")
        self.saves += 1
        self.snapshots[account_id] = snapshot.model_copy(deep=True)
        return snapshot.model_copy(deep=True)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def published() -> list[TelemetryEvent]:
    return []


@pytest.fixture
def engine(store: MemoryStore, clock: FixedClock, published: list[TelemetryEvent]) -> ProgressionEngine:
    return ProgressionEngine(
        store,
        clock=clock,
        day_policy=DayPolicy("UTC"),
        cache=SnapshotCache(),
        publisher=published.append,
    )
