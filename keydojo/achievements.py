"""Achievement catalog and unlock detection."""

from __future__ import annotations

from typing import Dict, List, Literal

from pydantic import BaseModel, Field

from .progression import ProgressionSnapshot

ACHIEVEMENT_CURRENCY_REWARD = 20

AchievementKind = Literal["practice", "streak", "lessons", "challenges", "level"]


class Achievement(BaseModel):
    id: str
    title: str
    description: str
    kind: AchievementKind
    target: int = Field(ge=1)
    xp_reward: int = Field(ge=0)
    secret: bool = False


ACHIEVEMENTS: List[Achievement] = [
    Achievement(id="practice-1", title="First Steps", description="Complete your first practice session", kind="practice", target=1, xp_reward=100),
    Achievement(id="practice-2", title="Practice Makes Perfect", description="Complete 10 practice sessions", kind="practice", target=10, xp_reward=100),
    Achievement(id="practice-3", title="Dedicated Learner", description="Complete 50 practice sessions", kind="practice", target=50, xp_reward=250),
    Achievement(id="practice-4", title="Keyboard Warrior", description="Complete 100 practice sessions", kind="practice", target=100, xp_reward=500),
    Achievement(id="streak-1", title="Getting Into Rhythm", description="Maintain a 3-day practice streak", kind="streak", target=3, xp_reward=75),
    Achievement(id="streak-2", title="Weekly Warrior", description="Maintain a 7-day practice streak", kind="streak", target=7, xp_reward=100),
    Achievement(id="streak-3", title="Monthly Master", description="Maintain a 30-day practice streak", kind="streak", target=30, xp_reward=500),
    Achievement(id="streak-4", title="Unstoppable", description="Maintain a 100-day practice streak", kind="streak", target=100, xp_reward=1000),
    Achievement(id="lessons-1", title="Lesson Learned", description="Complete your first lesson", kind="lessons", target=1, xp_reward=50),
    Achievement(id="lessons-2", title="Shortcut Scholar", description="Complete 25 lessons", kind="lessons", target=25, xp_reward=250),
    Achievement(id="challenge-1", title="Mastery Begins", description="Complete your first mastery challenge", kind="challenges", target=1, xp_reward=150),
    Achievement(id="level-5", title="Rising Specialist", description="Reach level 5", kind="level", target=5, xp_reward=100),
    Achievement(id="level-10", title="Sensei in Training", description="Reach level 10", kind="level", target=10, xp_reward=300),
]

ACHIEVEMENTS_BY_ID: Dict[str, Achievement] = {achievement.id: achievement for achievement in ACHIEVEMENTS}


def progress_value(snapshot: ProgressionSnapshot, kind: AchievementKind) -> int:
    if kind == "practice":
        return snapshot.counters.practice_sessions
    if kind == "streak":
        # Longest covers streaks that were reached and later broken.
        return snapshot.streak.longest
    if kind == "lessons":
        return snapshot.counters.lessons_completed
    if kind == "challenges":
        return snapshot.counters.challenges_completed
    return snapshot.level


def pending_unlocks(snapshot: ProgressionSnapshot) -> List[Achievement]:
    """Achievements whose targets are met but which have not been unlocked yet."""
    return [
        achievement
        for achievement in ACHIEVEMENTS
        if achievement.id not in snapshot.achievements
        and progress_value(snapshot, achievement.kind) >= achievement.target
    ]


__all__ = [
    "ACHIEVEMENTS",
    "ACHIEVEMENTS_BY_ID",
    "ACHIEVEMENT_CURRENCY_REWARD",
    "Achievement",
    "pending_unlocks",
    "progress_value",
]
