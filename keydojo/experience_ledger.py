"""Experience accumulation and level-up detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .errors import require_positive
from .level_table import level_for_experience, title_for
from .progression import ExperienceEntry, ExperienceState, LevelEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelUpSignal:
    old_level: int
    new_level: int
    title: str
    timestamp: datetime


@dataclass
class GrantResult:
    new_total: int
    new_level: int
    leveled_up: bool
    level_ups: List[LevelUpSignal] = field(default_factory=list)

    @property
    def levels_gained(self) -> List[int]:
        return [signal.new_level for signal in self.level_ups]


class ExperienceLedger:
    """Mutates an :class:`ExperienceState` in place through ``grant`` only."""

    def __init__(self, state: ExperienceState) -> None:
        self._state = state

    @property
    def state(self) -> ExperienceState:
        return self._state

    def grant(
        self,
        amount: int,
        source: str,
        description: Optional[str] = None,
        *,
        at: datetime,
    ) -> GrantResult:
        require_positive(amount, "amount")
        state = self._state
        old_level = level_for_experience(state.total_experience)

        state.total_experience += amount
        state.history.append(
            ExperienceEntry(timestamp=at, amount=amount, source=source, description=description)
        )

        new_level = level_for_experience(state.total_experience)
        signals: List[LevelUpSignal] = []
        for level in range(old_level + 1, new_level + 1):
            state.level_history.append(LevelEntry(timestamp=at, level=level))
            signals.append(
                LevelUpSignal(old_level=level - 1, new_level=level, title=title_for(level), timestamp=at)
            )
        if signals:
            logger.debug("Experience grant from %s crossed %d level(s)", source, len(signals))
        return GrantResult(
            new_total=state.total_experience,
            new_level=new_level,
            leveled_up=bool(signals),
            level_ups=signals,
        )


__all__ = ["ExperienceLedger", "GrantResult", "LevelUpSignal"]
