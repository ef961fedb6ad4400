"""Cumulative experience thresholds and level titles."""

from __future__ import annotations

from typing import Tuple

from pydantic import BaseModel

from .errors import InvalidInput

LEVEL_THRESHOLDS: Tuple[int, ...] = (
    0,
    100,
    250,
    500,
    1000,
    1750,
    2750,
    4000,
    5500,
    7500,
    10000,
    13000,
    16500,
    20500,
    25000,
)

LEVEL_TITLES: Tuple[str, ...] = (
    "Keyboard Novice",
    "Shortcut Apprentice",
    "Key Combo Adept",
    "Hotkey Enthusiast",
    "Shortcut Specialist",
    "Keyboard Tactician",
    "Efficiency Expert",
    "Shortcut Virtuoso",
    "Keyboard Maestro",
    "Shortcut Sensei",
    "Keyboard Wizard",
    "Shortcut Grandmaster",
    "Keyboard Sage",
    "Shortcut Legend",
    "Keyboard Dojo Master",
)

MAX_LEVEL = len(LEVEL_THRESHOLDS)


class LevelProgress(BaseModel):
    level: int
    title: str
    current_level_experience: int
    next_level_experience_gap: int
    is_max_level: bool


def level_for_experience(total: int) -> int:
    """Return the highest level whose threshold is at or below ``total``.

    Experience past the last threshold stays at ``MAX_LEVEL``.
    """
    if total < 0:
        raise InvalidInput(f"Total experience cannot be negative: {total}")
    level = 1
    for index, threshold in enumerate(LEVEL_THRESHOLDS):
        if total >= threshold:
            level = index + 1
        else:
            break
    return level


def threshold_for(level: int) -> int:
    if level < 1 or level > MAX_LEVEL:
        raise InvalidInput(f"Level must be between 1 and {MAX_LEVEL}, got {level}")
    return LEVEL_THRESHOLDS[level - 1]


def title_for(level: int) -> str:
    index = min(max(level, 1), MAX_LEVEL) - 1
    return LEVEL_TITLES[index]


def level_progress(total: int) -> LevelProgress:
    level = level_for_experience(total)
    floor = threshold_for(level)
    if level < MAX_LEVEL:
        gap = LEVEL_THRESHOLDS[level] - floor
        current = total - floor
    else:
        # Top band keeps the final band width so the bar stays bounded.
        gap = LEVEL_THRESHOLDS[-1] - LEVEL_THRESHOLDS[-2]
        current = min(total - floor, gap - 1)
    return LevelProgress(
        level=level,
        title=title_for(level),
        current_level_experience=current,
        next_level_experience_gap=gap,
        is_max_level=level == MAX_LEVEL,
    )


__all__ = [
    "LEVEL_THRESHOLDS",
    "LEVEL_TITLES",
    "LevelProgress",
    "MAX_LEVEL",
    "level_for_experience",
    "level_progress",
    "threshold_for",
    "title_for",
]
