"""Progression snapshot models."""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, computed_field

from .level_table import level_progress, title_for

DEFAULT_MAX_HEARTS = 5


def normalize_account_id(value: str) -> str:
    normalized = value.strip().lower()
    if not normalized:
        raise ValueError("Account id cannot be empty.")
    return normalized


class ExperienceEntry(BaseModel):
    timestamp: datetime
    amount: int = Field(gt=0)
    source: str
    description: Optional[str] = None


class LevelEntry(BaseModel):
    timestamp: datetime
    level: int = Field(ge=1)


class ExperienceState(BaseModel):
    total_experience: int = Field(default=0, ge=0)
    history: List[ExperienceEntry] = Field(default_factory=list)
    level_history: List[LevelEntry] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def level(self) -> int:
        return level_progress(self.total_experience).level

    @computed_field  # type: ignore[prop-decorator]
    @property
    def title(self) -> str:
        return title_for(self.level)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def current_level_experience(self) -> int:
        return level_progress(self.total_experience).current_level_experience

    @computed_field  # type: ignore[prop-decorator]
    @property
    def next_level_experience_gap(self) -> int:
        return level_progress(self.total_experience).next_level_experience_gap


class HeartsState(BaseModel):
    current: int = Field(default=DEFAULT_MAX_HEARTS, ge=0)
    max: int = Field(default=DEFAULT_MAX_HEARTS, ge=1)
    # None until the first hearts transition anchors it.
    last_regeneration: Optional[datetime] = None
    next_regeneration_due: Optional[datetime] = None
    unlimited: bool = False


class CurrencyTransaction(BaseModel):
    timestamp: datetime
    amount: int = Field(gt=0)
    kind: Literal["earn", "spend"]
    source: str
    description: Optional[str] = None


class CurrencyState(BaseModel):
    balance: int = Field(default=0, ge=0)
    total_earned: int = Field(default=0, ge=0)
    transactions: List[CurrencyTransaction] = Field(default_factory=list)


class StreakDay(BaseModel):
    day: date
    practiced: bool = True
    frozen: bool = False


class StreakState(BaseModel):
    current: int = Field(default=0, ge=0)
    longest: int = Field(default=0, ge=0)
    last_practice_day: Optional[date] = None
    freezes_available: int = Field(default=0, ge=0)
    history: List[StreakDay] = Field(default_factory=list)


class InventoryItem(BaseModel):
    quantity: int = Field(default=0, ge=0)
    first_purchased_at: datetime


class ActiveBoost(BaseModel):
    started_at: datetime
    ends_at: datetime


class AchievementUnlock(BaseModel):
    unlocked_at: datetime


class ActivityCounters(BaseModel):
    practice_sessions: int = Field(default=0, ge=0)
    lessons_completed: int = Field(default=0, ge=0)
    challenges_completed: int = Field(default=0, ge=0)


class ProgressionSnapshot(BaseModel):
    account_id: str
    experience: ExperienceState = Field(default_factory=ExperienceState)
    hearts: HeartsState = Field(default_factory=HeartsState)
    currency: CurrencyState = Field(default_factory=CurrencyState)
    streak: StreakState = Field(default_factory=StreakState)
    inventory: Dict[str, InventoryItem] = Field(default_factory=dict)
    active_boosts: Dict[str, ActiveBoost] = Field(default_factory=dict)
    achievements: Dict[str, AchievementUnlock] = Field(default_factory=dict)
    counters: ActivityCounters = Field(default_factory=ActivityCounters)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def total_experience(self) -> int:
        return self.experience.total_experience

    @property
    def level(self) -> int:
        return self.experience.level


def new_snapshot(
    account_id: str,
    now: datetime,
    *,
    max_hearts: int = DEFAULT_MAX_HEARTS,
) -> ProgressionSnapshot:
    """Return the defaults used for an account's first use."""
    return ProgressionSnapshot(
        account_id=normalize_account_id(account_id),
        hearts=HeartsState(current=max_hearts, max=max_hearts, last_regeneration=now),
        created_at=now,
        updated_at=now,
    )


__all__ = [
    "AchievementUnlock",
    "ActiveBoost",
    "ActivityCounters",
    "CurrencyState",
    "CurrencyTransaction",
    "ExperienceEntry",
    "ExperienceState",
    "HeartsState",
    "InventoryItem",
    "LevelEntry",
    "ProgressionSnapshot",
    "StreakDay",
    "StreakState",
    "new_snapshot",
    "normalize_account_id",
]
