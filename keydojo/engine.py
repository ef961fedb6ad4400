"""Progression engine: the single writer for each account's snapshot.

Each operation runs as one transition:

1. take the account lock,
2. load the snapshot (or the defaults on first use) and work on a deep copy,
3. apply the rule through the sub-ledgers, routing secondary signals
   (level-up credits, streak milestone rewards) inside the same transition,
4. save the whole copy in one write,
5. publish the collected events.

A business-rule failure or a failed save discards the copy, so neither memory
nor the store ever holds a partially applied transition.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Collection, Dict, Iterable, Iterator, List, Optional

from .achievements import ACHIEVEMENT_CURRENCY_REWARD, Achievement, pending_unlocks
from .cache import SnapshotCache, snapshot_cache
from .clock import Clock, DayPolicy, SystemClock
from .config import get_settings
from .currency_ledger import CurrencyLedger
from .errors import AccountNotInitialized, InvalidInput, PersistenceFailure
from .experience_ledger import ExperienceLedger, GrantResult
from .hearts_regulator import DEFAULT_REGENERATION_MINUTES, HeartsRegulator
from .item_shop import ShopItem, is_boost_active, resolve_purchase
from .progress_store import ProgressStore, SnapshotStore
from .progression import (
    DEFAULT_MAX_HEARTS,
    AchievementUnlock,
    ActiveBoost,
    InventoryItem,
    ProgressionSnapshot,
    StreakDay,
    new_snapshot,
    normalize_account_id,
)
from .streak_tracker import StreakTracker
from .telemetry import TelemetryEvent, publish
from .unlock_graph import NodeInput, UnlockDecision, evaluate_curriculum

logger = logging.getLogger(__name__)

LEVEL_UP_CURRENCY_REWARD = 10
LESSON_EXPERIENCE = 50
PERFECT_LESSON_EXPERIENCE = 25
PERFECT_LESSON_CURRENCY = 3
CHALLENGE_EXPERIENCE = 75
CHALLENGE_CURRENCY = 5
BOOST_ITEM_ID = "xp_boost"
BOOST_MULTIPLIER = 2


@dataclass
class ExperienceGrantOutcome:
    new_total: int
    new_level: int
    leveled_up: bool
    levels_gained: List[int]
    snapshot: ProgressionSnapshot


@dataclass
class ActivityOutcome:
    experience_awarded: int
    currency_awarded: int
    leveled_up: bool
    snapshot: ProgressionSnapshot


@dataclass
class CurrencyOutcome:
    new_balance: int
    snapshot: ProgressionSnapshot


@dataclass
class HeartsOutcome:
    current: int
    max: int
    unlimited: bool
    next_regeneration_due: Optional[datetime]
    regenerated: int
    snapshot: ProgressionSnapshot


@dataclass
class PracticeOutcome:
    already_practiced_today: bool
    new_streak: int
    milestone_rewards_granted: List[str]
    snapshot: ProgressionSnapshot


@dataclass
class FreezeOutcome:
    frozen_day: date
    freezes_remaining: int
    snapshot: ProgressionSnapshot


@dataclass
class PurchaseOutcome:
    item_id: str
    new_balance: int
    snapshot: ProgressionSnapshot


@dataclass
class AchievementOutcome:
    unlocked: List[Achievement]
    snapshot: ProgressionSnapshot


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


@dataclass
class _Transition:
    """Working copy plus the ledgers bound to it for one operation."""

    account_id: str
    snapshot: ProgressionSnapshot
    now: datetime
    experience: ExperienceLedger
    currency: CurrencyLedger
    hearts: HeartsRegulator
    streak: StreakTracker
    committed: Optional[ProgressionSnapshot] = None
    created: bool = False
    events: List[TelemetryEvent] = field(default_factory=list)
    dirty: bool = True

    def emit(self, event_type: str, **payload: Any) -> None:
        self.events.append(
            TelemetryEvent(
                type=event_type,
                account_id=self.account_id,
                payload={key: _json_safe(value) for key, value in payload.items()},
                timestamp=self.now,
            )
        )

    def grant_experience(self, amount: int, source: str, description: Optional[str] = None) -> GrantResult:
        result = self.experience.grant(amount, source, description, at=self.now)
        self.emit(
            "experience_granted",
            amount=amount,
            source=source,
            new_total=result.new_total,
            new_level=result.new_level,
        )
        for signal in result.level_ups:
            self.emit(
                "level_up",
                old_level=signal.old_level,
                new_level=signal.new_level,
                title=signal.title,
            )
            self.credit(LEVEL_UP_CURRENCY_REWARD, "level_up", f"Reached level {signal.new_level}")
        return result

    def credit(self, amount: int, source: str, description: Optional[str] = None) -> int:
        balance = self.currency.credit(amount, source, description, at=self.now)
        self.emit("currency_earned", amount=amount, source=source, new_balance=balance)
        return balance

    def debit(self, amount: int, source: str, description: Optional[str] = None) -> int:
        balance = self.currency.debit(amount, source, description, at=self.now)
        self.emit("currency_spent", amount=amount, source=source, new_balance=balance)
        return balance

    def regenerate_hearts(self) -> int:
        added = self.hearts.regenerate(self.now)
        if added:
            self.emit("hearts_regenerated", added=added, current=self.snapshot.hearts.current)
        return added


class ProgressionEngine:
    def __init__(
        self,
        store: SnapshotStore,
        *,
        clock: Optional[Clock] = None,
        day_policy: Optional[DayPolicy] = None,
        max_hearts: int = DEFAULT_MAX_HEARTS,
        regeneration_minutes: int = DEFAULT_REGENERATION_MINUTES,
        cache: Optional[SnapshotCache] = None,
        publisher: Callable[[TelemetryEvent], None] = publish,
    ) -> None:
        self._store = store
        self._clock: Clock = clock or SystemClock()
        self._days = day_policy or DayPolicy()
        self._max_hearts = max_hearts
        self._regeneration_minutes = regeneration_minutes
        self._cache = cache if cache is not None else SnapshotCache()
        self._publish = publisher
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_snapshot(self, account_id: str, *, initialize: bool = True) -> ProgressionSnapshot:
        """Return a committed snapshot copy, creating defaults on first use."""
        key = self._key(account_id)
        with self._transition(key) as tx:
            tx.dirty = tx.created
            if tx.created:
                if not initialize:
                    raise AccountNotInitialized(f"No progression recorded for '{key}'.")
                tx.emit("progression_initialized", max_hearts=tx.snapshot.hearts.max)
            else:
                self._cache.set(tx.committed)
        return tx.snapshot.model_copy(deep=True)

    def cached_snapshot(self, account_id: str) -> ProgressionSnapshot:
        """Lock-free display read; may lag the store by one transition."""
        cached = self._cache.get(self._key(account_id))
        if cached is not None:
            return cached
        return self.get_snapshot(account_id)

    def evaluate_unlocks(
        self,
        account_id: str,
        nodes: Iterable[NodeInput],
        completed_node_ids: Collection[str],
    ) -> Dict[str, UnlockDecision]:
        snapshot = self.get_snapshot(account_id)
        return evaluate_curriculum(nodes, snapshot, completed_node_ids)

    def streak_history(self, account_id: str, start: date, end: date) -> List[StreakDay]:
        """Practiced and frozen days recorded between ``start`` and ``end`` inclusive."""
        if end < start:
            raise InvalidInput("end must not be before start.")
        snapshot = self.get_snapshot(account_id)
        return StreakTracker(snapshot.streak, self._days).history_between(start, end)

    def is_boost_active(self, account_id: str, item_id: str = BOOST_ITEM_ID) -> bool:
        snapshot = self.get_snapshot(account_id)
        return is_boost_active(snapshot, item_id, self._clock.now())

    def recent_events(self, account_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Audit trail from stores that keep one; empty otherwise."""
        reader = getattr(self._store, "recent_events", None)
        if reader is None:
            return []
        return reader(self._key(account_id), limit)

    # ------------------------------------------------------------------
    # Experience and currency
    # ------------------------------------------------------------------

    def grant_experience(
        self,
        account_id: str,
        amount: int,
        source: str,
        description: Optional[str] = None,
    ) -> ExperienceGrantOutcome:
        with self._transition(account_id) as tx:
            result = tx.grant_experience(amount, source, description)
        return ExperienceGrantOutcome(
            new_total=result.new_total,
            new_level=result.new_level,
            leveled_up=result.leveled_up,
            levels_gained=result.levels_gained,
            snapshot=tx.snapshot,
        )

    def credit_currency(
        self,
        account_id: str,
        amount: int,
        source: str,
        description: Optional[str] = None,
    ) -> CurrencyOutcome:
        with self._transition(account_id) as tx:
            balance = tx.credit(amount, source, description)
        return CurrencyOutcome(new_balance=balance, snapshot=tx.snapshot)

    def debit_currency(
        self,
        account_id: str,
        amount: int,
        source: str,
        description: Optional[str] = None,
    ) -> CurrencyOutcome:
        with self._transition(account_id) as tx:
            balance = tx.debit(amount, source, description)
        return CurrencyOutcome(new_balance=balance, snapshot=tx.snapshot)

    def complete_lesson(self, account_id: str, lesson_id: str, *, perfect: bool = False) -> ActivityOutcome:
        if not lesson_id or not lesson_id.strip():
            raise InvalidInput("lesson_id cannot be empty.")
        with self._transition(account_id) as tx:
            multiplier = self._boost_multiplier(tx)
            experience = LESSON_EXPERIENCE * multiplier
            result = tx.grant_experience(experience, "lesson", f"Completed {lesson_id}")
            leveled_up = result.leveled_up
            currency = 0
            if perfect:
                bonus = PERFECT_LESSON_EXPERIENCE * multiplier
                leveled_up = tx.grant_experience(bonus, "perfect_lesson", f"Perfect score on {lesson_id}").leveled_up or leveled_up
                experience += bonus
                tx.credit(PERFECT_LESSON_CURRENCY, "perfect_lesson", f"Perfect score on {lesson_id}")
                currency += PERFECT_LESSON_CURRENCY
            tx.snapshot.counters.lessons_completed += 1
            tx.emit("lesson_completed", lesson_id=lesson_id, perfect=perfect)
        return ActivityOutcome(
            experience_awarded=experience,
            currency_awarded=currency,
            leveled_up=leveled_up,
            snapshot=tx.snapshot,
        )

    def complete_challenge(self, account_id: str, challenge_id: str) -> ActivityOutcome:
        if not challenge_id or not challenge_id.strip():
            raise InvalidInput("challenge_id cannot be empty.")
        with self._transition(account_id) as tx:
            experience = CHALLENGE_EXPERIENCE * self._boost_multiplier(tx)
            result = tx.grant_experience(experience, "challenge", f"Completed {challenge_id}")
            tx.credit(CHALLENGE_CURRENCY, "challenge", f"Completed {challenge_id}")
            tx.snapshot.counters.challenges_completed += 1
            tx.emit("challenge_completed", challenge_id=challenge_id)
        return ActivityOutcome(
            experience_awarded=experience,
            currency_awarded=CHALLENGE_CURRENCY,
            leveled_up=result.leveled_up,
            snapshot=tx.snapshot,
        )

    # ------------------------------------------------------------------
    # Hearts
    # ------------------------------------------------------------------

    def consume_hearts(self, account_id: str, count: int = 1) -> HeartsOutcome:
        with self._transition(account_id) as tx:
            regenerated = tx.regenerate_hearts()
            remaining = tx.hearts.consume(count, at=tx.now)
            tx.emit("hearts_consumed", count=count, current=remaining, unlimited=tx.snapshot.hearts.unlimited)
        return self._hearts_outcome(tx, regenerated)

    def regenerate_hearts(self, account_id: str) -> HeartsOutcome:
        with self._transition(account_id) as tx:
            regenerated = tx.regenerate_hearts()
            if not regenerated:
                tx.dirty = tx.created or tx.snapshot.hearts != tx.committed.hearts
        return self._hearts_outcome(tx, regenerated)

    def grant_hearts(self, account_id: str, count: int, source: str = "grant") -> HeartsOutcome:
        with self._transition(account_id) as tx:
            regenerated = tx.regenerate_hearts()
            added = tx.hearts.grant(count, at=tx.now)
            tx.emit("hearts_granted", count=count, added=added, source=source, current=tx.snapshot.hearts.current)
        return self._hearts_outcome(tx, regenerated)

    def set_unlimited_hearts(self, account_id: str, unlimited: bool) -> HeartsOutcome:
        with self._transition(account_id) as tx:
            regenerated = tx.regenerate_hearts()
            tx.hearts.set_unlimited(unlimited, at=tx.now)
            tx.emit("hearts_mode_changed", unlimited=unlimited, current=tx.snapshot.hearts.current)
        return self._hearts_outcome(tx, regenerated)

    # ------------------------------------------------------------------
    # Streaks
    # ------------------------------------------------------------------

    def record_practice(self, account_id: str) -> PracticeOutcome:
        with self._transition(account_id) as tx:
            result = tx.streak.record_practice(tx.now)
            granted: List[str] = []
            if result.already_practiced_today:
                tx.dirty = tx.created
            else:
                tx.snapshot.counters.practice_sessions += 1
                tx.emit(
                    "practice_recorded",
                    day=result.day,
                    streak=result.new_streak,
                    continued=result.continued,
                    longest=tx.snapshot.streak.longest,
                )
                for reward in result.rewards:
                    tx.grant_experience(reward.experience, reward.source, reward.description)
                    tx.credit(reward.currency, reward.source, reward.description)
                    granted.append(reward.source)
        return PracticeOutcome(
            already_practiced_today=result.already_practiced_today,
            new_streak=result.new_streak,
            milestone_rewards_granted=granted,
            snapshot=tx.snapshot,
        )

    def consume_freeze(self, account_id: str) -> FreezeOutcome:
        with self._transition(account_id) as tx:
            frozen_day = tx.streak.consume_freeze(tx.now)
            remaining = tx.snapshot.streak.freezes_available
            tx.emit("streak_freeze_consumed", day=frozen_day, freezes_remaining=remaining)
        return FreezeOutcome(frozen_day=frozen_day, freezes_remaining=remaining, snapshot=tx.snapshot)

    # ------------------------------------------------------------------
    # Shop and achievements
    # ------------------------------------------------------------------

    def purchase_item(self, account_id: str, item_id: str) -> PurchaseOutcome:
        with self._transition(account_id) as tx:
            item = resolve_purchase(tx.snapshot, item_id)
            balance = tx.debit(item.price, "item_purchase", f"Purchased {item.name}")
            self._apply_item(tx, item)
            tx.emit("item_purchased", item_id=item.id, price=item.price)
        return PurchaseOutcome(item_id=item.id, new_balance=balance, snapshot=tx.snapshot)

    def check_achievements(self, account_id: str) -> AchievementOutcome:
        with self._transition(account_id) as tx:
            unlocked: List[Achievement] = []
            pending = pending_unlocks(tx.snapshot)
            while pending:
                for achievement in pending:
                    tx.snapshot.achievements[achievement.id] = AchievementUnlock(unlocked_at=tx.now)
                    if achievement.xp_reward:
                        tx.grant_experience(achievement.xp_reward, "achievement", achievement.title)
                    tx.credit(ACHIEVEMENT_CURRENCY_REWARD, "achievement", achievement.title)
                    tx.emit("achievement_unlocked", achievement_id=achievement.id, title=achievement.title)
                    unlocked.append(achievement)
                pending = pending_unlocks(tx.snapshot)
            if not unlocked:
                tx.dirty = tx.created
        return AchievementOutcome(unlocked=unlocked, snapshot=tx.snapshot)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def reset(self, account_id: str) -> ProgressionSnapshot:
        key = self._key(account_id)
        with self._transition(key) as tx:
            tx.snapshot = new_snapshot(key, tx.now, max_hearts=self._max_hearts)
            tx.emit("progression_reset")
        return tx.snapshot

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _key(account_id: str) -> str:
        try:
            return normalize_account_id(account_id)
        except (ValueError, AttributeError) as exc:
            raise InvalidInput(f"Invalid account id: {account_id!r}") from exc

    def _lock_for(self, key: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def _transition(self, account_id: str) -> Iterator[_Transition]:
        key = self._key(account_id)
        with self._lock_for(key):
            now = self._clock.now()
            stored = self._store.load(key)
            created = stored is None
            base = stored if stored is not None else new_snapshot(key, now, max_hearts=self._max_hearts)
            working = base.model_copy(deep=True)
            tx = _Transition(
                account_id=key,
                snapshot=working,
                now=now,
                committed=base,
                created=created,
                experience=ExperienceLedger(working.experience),
                currency=CurrencyLedger(working.currency),
                hearts=HeartsRegulator(working.hearts, regeneration_minutes=self._regeneration_minutes),
                streak=StreakTracker(working.streak, self._days),
            )
            yield tx

            if not tx.dirty:
                return
            if tx.snapshot.created_at is None:
                tx.snapshot.created_at = now
            tx.snapshot.updated_at = now
            try:
                saved = self._store.save(key, tx.snapshot)
            except PersistenceFailure:
                logger.error("Discarding transition for %s after failed save", key)
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("Discarding transition for %s after failed save: %s", key, exc)
                raise PersistenceFailure(f"Failed to save progression for '{key}': {exc}") from exc
            if saved is not None:
                tx.snapshot = saved
            self._cache.set(tx.snapshot)

        for event in tx.events:
            try:
                self._publish(event)
            except Exception:  # noqa: BLE001
                logger.exception("Failed to publish %s for %s", event.type, key)

    def _boost_multiplier(self, tx: _Transition) -> int:
        return BOOST_MULTIPLIER if is_boost_active(tx.snapshot, BOOST_ITEM_ID, tx.now) else 1

    def _apply_item(self, tx: _Transition, item: ShopItem) -> None:
        if item.id == "streak_freeze":
            tx.streak.add_freezes(1)
            return
        if item.id == "heart_refill":
            tx.hearts.refill(at=tx.now)
            return
        entry = tx.snapshot.inventory.get(item.id)
        if entry is None:
            entry = InventoryItem(quantity=0, first_purchased_at=tx.now)
            tx.snapshot.inventory[item.id] = entry
        entry.quantity += 1
        if item.category == "boost" and item.duration_hours:
            current = tx.snapshot.active_boosts.get(item.id)
            running = current is not None and current.ends_at > tx.now
            # A repeat purchase extends a running window.
            tx.snapshot.active_boosts[item.id] = ActiveBoost(
                started_at=current.started_at if running else tx.now,
                ends_at=(current.ends_at if running else tx.now) + timedelta(hours=item.duration_hours),
            )

    def _hearts_outcome(self, tx: _Transition, regenerated: int) -> HeartsOutcome:
        hearts = tx.snapshot.hearts
        return HeartsOutcome(
            current=hearts.current,
            max=hearts.max,
            unlimited=hearts.unlimited,
            next_regeneration_due=hearts.next_regeneration_due,
            regenerated=regenerated,
            snapshot=tx.snapshot,
        )


_engine: Optional[ProgressionEngine] = None
_engine_guard = threading.Lock()


def build_progression_engine(store: Optional[SnapshotStore] = None, *, clock: Optional[Clock] = None) -> ProgressionEngine:
    settings = get_settings()
    return ProgressionEngine(
        store or ProgressStore(),
        clock=clock,
        day_policy=DayPolicy(settings.day_boundary_timezone),
        max_hearts=settings.max_hearts,
        regeneration_minutes=settings.heart_regeneration_minutes,
        cache=snapshot_cache,
    )


def get_progression_engine() -> ProgressionEngine:
    global _engine
    with _engine_guard:
        if _engine is None:
            _engine = build_progression_engine()
        return _engine


def reset_progression_engine() -> None:
    global _engine
    with _engine_guard:
        _engine = None


__all__ = [
    "AchievementOutcome",
    "ActivityOutcome",
    "CurrencyOutcome",
    "ExperienceGrantOutcome",
    "FreezeOutcome",
    "HeartsOutcome",
    "LEVEL_UP_CURRENCY_REWARD",
    "PracticeOutcome",
    "ProgressionEngine",
    "PurchaseOutcome",
    "build_progression_engine",
    "get_progression_engine",
    "reset_progression_engine",
]
