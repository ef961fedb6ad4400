from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from keydojo import telemetry_pipeline
from keydojo.cache import SnapshotCache
from keydojo.clock import DayPolicy, FixedClock
from keydojo.engine import ProgressionEngine
from keydojo.errors import PersistenceFailure
from keydojo.progress_store import ProgressStore
from keydojo.progression import new_snapshot

NOW = datetime(2026, 2, 1, 10, 0, tzinfo=timezone.utc)


def test_legacy_store_round_trip(tmp_path) -> None:
    store = ProgressStore(tmp_path / "progressions.json", mode="legacy")
    assert store.mode == "legacy"
    assert store.load("legacy-user") is None

    snapshot = new_snapshot("Legacy-User", NOW)
    snapshot.streak.freezes_available = 2
    store.save("Legacy-User", snapshot)

    loaded = store.load("legacy-user")
    assert loaded is not None
    assert loaded.account_id == "legacy-user"
    assert loaded.streak.freezes_available == 2
    assert loaded.hearts.last_regeneration == NOW

    assert store.delete("legacy-user")
    assert store.load("legacy-user") is None
    assert not store.delete("legacy-user")


def test_legacy_events_are_newest_first(tmp_path) -> None:
    store = ProgressStore(tmp_path / "progressions.json", mode="legacy")
    store.record_event("learner", "level_up", {"new_level": 2, "timestamp": "t1"})
    store.record_event("learner", "level_up", {"new_level": 3, "timestamp": "t2"})

    events = store.recent_events("learner", limit=1)
    assert len(events) == 1
    assert events[0]["payload"]["new_level"] == 3


def test_backend_errors_surface_as_persistence_failure(tmp_path) -> None:
    # A directory cannot be parsed as the JSON store.
    store = ProgressStore(tmp_path, mode="legacy")
    with pytest.raises(PersistenceFailure):
        store.load("learner")


def test_database_store_round_trip() -> None:
    store = ProgressStore(mode="database")
    snapshot = new_snapshot("db-round-trip", NOW)
    snapshot.experience.total_experience = 260
    store.save("db-round-trip", snapshot)

    loaded = store.load("db-round-trip")
    assert loaded is not None
    assert loaded.total_experience == 260
    assert loaded.level == 3
    assert loaded.created_at == NOW

    assert store.delete("db-round-trip")
    assert store.load("db-round-trip") is None


def test_engine_state_survives_a_restart_on_the_database() -> None:
    clock = FixedClock(NOW)
    first = ProgressionEngine(ProgressStore(mode="database"), clock=clock, day_policy=DayPolicy("UTC"))
    first.grant_experience("restart-user", 120, "test")
    first.record_practice("restart-user")

    second = ProgressionEngine(ProgressStore(mode="database"), clock=clock, day_policy=DayPolicy("UTC"))
    snapshot = second.get_snapshot("restart-user", initialize=False)
    assert snapshot.total_experience == 130
    assert snapshot.streak.current == 1
    assert snapshot.currency.balance == 15
    assert snapshot.streak.last_practice_day == NOW.date()


def test_engine_saves_and_audit_listener_share_the_legacy_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / "progressions.json"
    monkeypatch.setattr(telemetry_pipeline, "_store", ProgressStore(path, mode="legacy"))
    telemetry_pipeline.install()
    engine = ProgressionEngine(
        ProgressStore(path, mode="legacy"),
        clock=FixedClock(NOW),
        day_policy=DayPolicy("UTC"),
        cache=SnapshotCache(),
    )
    accounts = [f"legacy-racer-{index}" for index in range(6)]
    errors: list[Exception] = []

    def worker(account: str) -> None:
        try:
            for _ in range(10):
                engine.grant_experience(account, 120, "drill")
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(account,)) for account in accounts]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    reader = ProgressStore(path, mode="legacy")
    for account in accounts:
        snapshot = reader.load(account)
        assert snapshot is not None
        assert snapshot.total_experience == 1200
        level_ups = [e for e in reader.recent_events(account, limit=200) if e["event_type"] == "level_up"]
        assert len(level_ups) == snapshot.level - 1
    assert list(tmp_path.glob("*.tmp")) == []
