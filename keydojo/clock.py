"""Clock provider and calendar-day policy.

Every temporal decision in the engine goes through a :class:`Clock` so tests
can simulate elapsed time and day-boundary crossings.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:  # pragma: no cover - protocol definition
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Manually driven clock used by tests and replay tooling."""

    def __init__(self, start: datetime) -> None:
        self._now = _ensure_aware(start)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = _ensure_aware(value)

    def advance(self, **delta: float) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def resolve_timezone(raw: Optional[str]) -> ZoneInfo:
    """Return the configured day-boundary zone, falling back to UTC."""
    trimmed = (raw or "").strip()
    if not trimmed:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(trimmed)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Ignoring unsupported day boundary timezone: %s", trimmed)
        return ZoneInfo("UTC")


class DayPolicy:
    """Maps instants to calendar days in a fixed zone."""

    def __init__(self, zone: Optional[str] = None) -> None:
        self.zone = resolve_timezone(zone)

    def day_of(self, instant: datetime) -> date:
        return _ensure_aware(instant).astimezone(self.zone).date()

    def today_and_yesterday(self, instant: datetime) -> tuple[date, date]:
        today = self.day_of(instant)
        return today, today - timedelta(days=1)


__all__ = ["Clock", "DayPolicy", "FixedClock", "SystemClock", "resolve_timezone"]
