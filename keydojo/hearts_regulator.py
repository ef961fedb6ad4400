"""Bounded life counter with time-based regeneration."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from .errors import InsufficientHearts, require_positive
from .progression import HeartsState

DEFAULT_REGENERATION_MINUTES = 30


class HeartsRegulator:
    """Applies consume/regenerate/grant transitions to a :class:`HeartsState`.

    Limited mode regenerates one heart per ``regeneration_minutes`` counted
    from ``last_regeneration``. Unlimited mode pins ``current`` at ``max``.
    """

    def __init__(self, state: HeartsState, *, regeneration_minutes: int = DEFAULT_REGENERATION_MINUTES) -> None:
        if regeneration_minutes <= 0:
            raise ValueError("regeneration_minutes must be positive")
        self._state = state
        self._interval = timedelta(minutes=regeneration_minutes)

    @property
    def state(self) -> HeartsState:
        return self._state

    @property
    def interval(self) -> timedelta:
        return self._interval

    def consume(self, count: int, *, at: datetime) -> int:
        require_positive(count, "count")
        state = self._state
        if state.unlimited:
            return state.current
        if state.current < count:
            raise InsufficientHearts(count, state.current)
        was_full = state.current >= state.max
        state.current -= count
        if was_full or state.last_regeneration is None:
            state.last_regeneration = at
        self._refresh_due()
        return state.current

    def regenerate(self, now: datetime) -> int:
        """Credit whole intervals elapsed since the anchor; returns hearts added."""
        state = self._state
        if state.unlimited:
            state.current = state.max
            state.next_regeneration_due = None
            return 0
        if state.current >= state.max:
            state.next_regeneration_due = None
            return 0
        if state.last_regeneration is None:
            state.last_regeneration = now
            self._refresh_due()
            return 0
        elapsed = now - state.last_regeneration
        minutes_elapsed = max(int(elapsed.total_seconds() // 60), 0)
        hearts_to_add = minutes_elapsed // int(self._interval.total_seconds() // 60)
        added = 0
        if hearts_to_add > 0:
            before = state.current
            state.current = min(state.current + hearts_to_add, state.max)
            state.last_regeneration = now
            added = state.current - before
        self._refresh_due()
        return added

    def grant(self, count: int, *, at: datetime) -> int:
        require_positive(count, "count")
        state = self._state
        if state.unlimited:
            return 0
        before = state.current
        state.current = min(state.current + count, state.max)
        if state.last_regeneration is None or (before < state.max and state.current >= state.max):
            state.last_regeneration = at
        self._refresh_due()
        return state.current - before

    def refill(self, *, at: datetime) -> int:
        state = self._state
        before = state.current
        state.current = state.max
        state.last_regeneration = at
        state.next_regeneration_due = None
        return state.current - before

    def set_unlimited(self, flag: bool, *, at: datetime) -> None:
        state = self._state
        state.unlimited = flag
        if flag:
            state.current = state.max
            state.next_regeneration_due = None
            return
        state.last_regeneration = at
        self._refresh_due()

    def time_until_next_heart(self, now: datetime) -> Optional[timedelta]:
        due = self._state.next_regeneration_due
        if due is None:
            return None
        return max(due - now, timedelta(0))

    def _refresh_due(self) -> None:
        state = self._state
        if state.unlimited or state.current >= state.max or state.last_regeneration is None:
            state.next_regeneration_due = None
        else:
            state.next_regeneration_due = state.last_regeneration + self._interval


__all__ = ["DEFAULT_REGENERATION_MINUTES", "HeartsRegulator"]
