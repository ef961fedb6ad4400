"""Daily practice streaks and the milestone reward schedule."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional

from .clock import DayPolicy
from .errors import FreezeNotApplicable, require_positive
from .progression import StreakDay, StreakState

WEEKLY_MILESTONE = 7
MONTHLY_MILESTONE = 30


@dataclass(frozen=True)
class StreakReward:
    source: str
    experience: int
    currency: int
    description: str


DAILY_REWARD = StreakReward("daily_streak", 10, 5, "Daily practice")
WEEKLY_REWARD = StreakReward("weekly_streak", 50, 15, "7-day streak bonus")
MONTHLY_REWARD = StreakReward("monthly_streak", 200, 50, "30-day streak bonus")


@dataclass
class PracticeResult:
    already_practiced_today: bool
    day: date
    new_streak: int
    continued: bool = False
    rewards: List[StreakReward] = field(default_factory=list)


def reward_schedule(streak_length: int) -> List[StreakReward]:
    """Rewards owed for a practice that brought the streak to ``streak_length``."""
    rewards = [DAILY_REWARD]
    if streak_length % WEEKLY_MILESTONE == 0:
        rewards.append(WEEKLY_REWARD)
    if streak_length % MONTHLY_MILESTONE == 0:
        rewards.append(MONTHLY_REWARD)
    return rewards


class StreakTracker:
    def __init__(self, state: StreakState, day_policy: Optional[DayPolicy] = None) -> None:
        self._state = state
        self._days = day_policy or DayPolicy()

    @property
    def state(self) -> StreakState:
        return self._state

    def has_practiced_today(self, now: datetime) -> bool:
        return self._state.last_practice_day == self._days.day_of(now)

    def record_practice(self, now: datetime) -> PracticeResult:
        state = self._state
        today, yesterday = self._days.today_and_yesterday(now)
        if state.last_practice_day == today:
            return PracticeResult(already_practiced_today=True, day=today, new_streak=state.current)

        continued = state.last_practice_day == yesterday
        state.current = state.current + 1 if continued else 1
        state.longest = max(state.longest, state.current)
        state.history.append(StreakDay(day=today, practiced=True))
        state.last_practice_day = today
        return PracticeResult(
            already_practiced_today=False,
            day=today,
            new_streak=state.current,
            continued=continued,
            rewards=reward_schedule(state.current),
        )

    def consume_freeze(self, now: datetime) -> date:
        """Cover yesterday with a freeze so today's practice continues the streak."""
        state = self._state
        today, yesterday = self._days.today_and_yesterday(now)
        if state.freezes_available <= 0:
            raise FreezeNotApplicable("No streak freezes available.")
        if state.last_practice_day is None or state.current == 0:
            raise FreezeNotApplicable("There is no active streak to protect.")
        if state.last_practice_day != yesterday - timedelta(days=1):
            raise FreezeNotApplicable(
                f"A freeze covers exactly one missed day; last practice was {state.last_practice_day}."
            )
        state.freezes_available -= 1
        state.history.append(StreakDay(day=yesterday, practiced=False, frozen=True))
        state.last_practice_day = yesterday
        return yesterday

    def add_freezes(self, count: int) -> int:
        require_positive(count, "count")
        self._state.freezes_available += count
        return self._state.freezes_available

    def history_between(self, start: date, end: date) -> List[StreakDay]:
        return [entry for entry in self._state.history if start <= entry.day <= end]


__all__ = [
    "DAILY_REWARD",
    "MONTHLY_REWARD",
    "PracticeResult",
    "StreakReward",
    "StreakTracker",
    "WEEKLY_REWARD",
    "reward_schedule",
]
