from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from keydojo.achievements import ACHIEVEMENTS_BY_ID, pending_unlocks, progress_value
from keydojo.errors import InvalidInput
from keydojo.item_shop import STORE_ITEMS, boost_remaining, is_boost_active, resolve_purchase
from keydojo.progression import (
    AchievementUnlock,
    ActiveBoost,
    ActivityCounters,
    InventoryItem,
    ProgressionSnapshot,
    StreakState,
)

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def test_pending_unlocks_skips_already_unlocked() -> None:
    snapshot = ProgressionSnapshot(
        account_id="learner",
        counters=ActivityCounters(practice_sessions=10),
    )
    assert {a.id for a in pending_unlocks(snapshot)} == {"practice-1", "practice-2"}

    snapshot.achievements["practice-1"] = AchievementUnlock(unlocked_at=NOW)
    assert [a.id for a in pending_unlocks(snapshot)] == ["practice-2"]


def test_streak_achievements_use_longest_streak() -> None:
    snapshot = ProgressionSnapshot(account_id="learner", streak=StreakState(current=1, longest=7))
    assert progress_value(snapshot, "streak") == 7
    assert {"streak-1", "streak-2"} <= {a.id for a in pending_unlocks(snapshot)}


def test_level_achievement_catalog_targets() -> None:
    assert ACHIEVEMENTS_BY_ID["level-5"].target == 5
    assert ACHIEVEMENTS_BY_ID["level-10"].kind == "level"


def test_resolve_purchase_rejects_unknown_and_owned_one_time_items() -> None:
    snapshot = ProgressionSnapshot(account_id="learner")
    with pytest.raises(InvalidInput):
        resolve_purchase(snapshot, "golden_keyboard")

    assert resolve_purchase(snapshot, "dark_theme").price == 50
    snapshot.inventory["dark_theme"] = InventoryItem(quantity=1, first_purchased_at=NOW)
    with pytest.raises(InvalidInput):
        resolve_purchase(snapshot, "dark_theme")

    snapshot.inventory["streak_freeze"] = InventoryItem(quantity=3, first_purchased_at=NOW)
    assert resolve_purchase(snapshot, "streak_freeze") is STORE_ITEMS["streak_freeze"]


def test_boost_window() -> None:
    snapshot = ProgressionSnapshot(account_id="learner")
    snapshot.active_boosts["xp_boost"] = ActiveBoost(started_at=NOW, ends_at=NOW + timedelta(hours=24))

    assert is_boost_active(snapshot, "xp_boost", NOW + timedelta(hours=1))
    assert boost_remaining(snapshot, "xp_boost", NOW + timedelta(hours=23)) == timedelta(hours=1)
    assert not is_boost_active(snapshot, "xp_boost", NOW + timedelta(hours=24))
    assert boost_remaining(snapshot, "xp_boost", NOW + timedelta(days=2)) == timedelta(0)
