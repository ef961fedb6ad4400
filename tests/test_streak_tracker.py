from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from keydojo.clock import DayPolicy
from keydojo.errors import FreezeNotApplicable
from keydojo.progression import StreakState
from keydojo.streak_tracker import StreakTracker, reward_schedule

DAY_ONE = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


def test_same_day_practice_is_a_noop() -> None:
    state = StreakState()
    tracker = StreakTracker(state)
    first = tracker.record_practice(DAY_ONE)
    second = tracker.record_practice(DAY_ONE + timedelta(hours=10))

    assert not first.already_practiced_today
    assert second.already_practiced_today
    assert second.rewards == []
    assert len(state.history) == 1
    assert state.current == 1


def test_consecutive_days_increment_and_gap_resets() -> None:
    state = StreakState()
    tracker = StreakTracker(state)
    for offset in range(3):
        result = tracker.record_practice(DAY_ONE + timedelta(days=offset))
        assert result.new_streak == offset + 1
    result = tracker.record_practice(DAY_ONE + timedelta(days=5))
    assert result.new_streak == 1
    assert not result.continued
    assert state.longest == 3


def test_reward_schedule_milestones() -> None:
    assert [reward.source for reward in reward_schedule(1)] == ["daily_streak"]
    assert [reward.source for reward in reward_schedule(7)] == ["daily_streak", "weekly_streak"]
    assert [reward.source for reward in reward_schedule(30)] == ["daily_streak", "monthly_streak"]
    assert [reward.source for reward in reward_schedule(210)] == ["daily_streak", "weekly_streak", "monthly_streak"]


def test_day_boundary_follows_configured_zone() -> None:
    # 23:30 UTC on Jan 5 is already Jan 6 in Tokyo.
    instant = datetime(2026, 1, 5, 23, 30, tzinfo=timezone.utc)
    utc_state, tokyo_state = StreakState(), StreakState()
    StreakTracker(utc_state, DayPolicy("UTC")).record_practice(instant)
    StreakTracker(tokyo_state, DayPolicy("Asia/Tokyo")).record_practice(instant)
    assert utc_state.last_practice_day == date(2026, 1, 5)
    assert tokyo_state.last_practice_day == date(2026, 1, 6)


def test_unknown_zone_falls_back_to_utc() -> None:
    assert str(DayPolicy("Mars/Olympus").zone) == "UTC"


def test_freeze_covers_exactly_one_missed_day() -> None:
    state = StreakState(freezes_available=1)
    tracker = StreakTracker(state)
    tracker.record_practice(DAY_ONE)
    tracker.record_practice(DAY_ONE + timedelta(days=1))

    frozen = tracker.consume_freeze(DAY_ONE + timedelta(days=3))
    assert frozen == date(2026, 1, 7)
    assert state.freezes_available == 0
    assert state.history[-1].frozen

    result = tracker.record_practice(DAY_ONE + timedelta(days=3))
    assert result.continued
    assert result.new_streak == 3


def test_freeze_rejected_when_not_applicable() -> None:
    state = StreakState()
    tracker = StreakTracker(state)
    with pytest.raises(FreezeNotApplicable):
        tracker.consume_freeze(DAY_ONE)

    tracker.add_freezes(1)
    with pytest.raises(FreezeNotApplicable):
        tracker.consume_freeze(DAY_ONE)

    tracker.record_practice(DAY_ONE)
    with pytest.raises(FreezeNotApplicable):
        tracker.consume_freeze(DAY_ONE + timedelta(days=5))
    assert state.freezes_available == 1
