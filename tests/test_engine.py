from __future__ import annotations

import threading

import pytest

from keydojo.errors import (
    AccountNotInitialized,
    FreezeNotApplicable,
    InsufficientFunds,
    InsufficientHearts,
    InvalidInput,
    PersistenceFailure,
)
from keydojo.level_table import level_for_experience
from keydojo.progression import HeartsState, ProgressionSnapshot


def test_fresh_account_defaults(engine) -> None:
    snapshot = engine.get_snapshot("Learner")
    assert snapshot.account_id == "learner"
    assert snapshot.total_experience == 0
    assert snapshot.level == 1
    assert (snapshot.hearts.current, snapshot.hearts.max) == (5, 5)
    assert snapshot.currency.balance == 0
    assert snapshot.streak.current == 0


def test_uninitialized_account_can_be_probed(engine) -> None:
    with pytest.raises(AccountNotInitialized):
        engine.get_snapshot("nobody", initialize=False)


def test_blank_account_id_is_invalid(engine) -> None:
    with pytest.raises(InvalidInput):
        engine.get_snapshot("   ")


def test_level_up_credits_currency(engine, published) -> None:
    outcome = engine.grant_experience("learner", 120, "test")

    assert outcome.new_total == 120
    assert outcome.new_level == 2
    assert outcome.levels_gained == [2]
    snapshot = outcome.snapshot
    assert len(snapshot.experience.level_history) == 1
    assert [(tx.source, tx.amount) for tx in snapshot.currency.transactions] == [("level_up", 10)]
    assert snapshot.currency.balance == 10

    types = [event.type for event in published]
    assert "level_up" in types
    credit_events = [event for event in published if event.type == "currency_earned"]
    assert credit_events[0].payload["source"] == "level_up"
    assert all(event.account_id == "learner" for event in published)


def test_rejected_debit_leaves_state(engine, store) -> None:
    engine.get_snapshot("learner")
    saves_before = store.saves

    with pytest.raises(InsufficientFunds):
        engine.debit_currency("learner", 10, "shop")

    snapshot = engine.get_snapshot("learner")
    assert snapshot.currency.balance == 0
    assert snapshot.currency.transactions == []
    assert store.saves == saves_before


def test_consume_more_hearts_than_available(engine) -> None:
    engine.consume_hearts("learner", 4)
    with pytest.raises(InsufficientHearts):
        engine.consume_hearts("learner", 2)
    assert engine.get_snapshot("learner").hearts.current == 1


def test_hearts_regenerate_with_elapsed_time(engine, clock) -> None:
    engine.consume_hearts("learner", 3)
    clock.advance(minutes=61)

    outcome = engine.regenerate_hearts("learner")
    assert outcome.regenerated == 2
    assert outcome.current == 4

    clock.advance(days=1)
    outcome = engine.consume_hearts("learner", 1)
    assert outcome.regenerated == 1
    assert outcome.current == 4


def test_unlimited_hearts_skip_consumption(engine) -> None:
    engine.set_unlimited_hearts("learner", True)
    outcome = engine.consume_hearts("learner", 5)
    assert outcome.current == 5
    assert outcome.unlimited


def test_failed_save_discards_transition(engine, store, published) -> None:
    engine.grant_experience("learner", 50, "warmup")
    published.clear()
    store.fail_saves = True

    with pytest.raises(PersistenceFailure):
        engine.grant_experience("learner", 500, "big")

    store.fail_saves = False
    snapshot = engine.get_snapshot("learner")
    assert snapshot.total_experience == 50
    assert snapshot.currency.balance == 0
    assert published == []


def test_unexpected_store_errors_become_persistence_failures(engine, store, monkeypatch) -> None:
    def explode(account_id, snapshot):  # type: ignore[no-untyped-def]
        raise OSError("disk full")

    monkeypatch.setattr(store, "save", explode)
    with pytest.raises(PersistenceFailure):
        engine.credit_currency("learner", 5, "gift")


def test_same_day_practice_is_not_saved_twice(engine, store, clock) -> None:
    first = engine.record_practice("learner")
    saves = store.saves
    clock.advance(hours=6)
    second = engine.record_practice("learner")

    assert not first.already_practiced_today
    assert second.already_practiced_today
    assert second.milestone_rewards_granted == []
    assert store.saves == saves
    assert len(engine.get_snapshot("learner").streak.history) == 1


def test_weekly_bonus_granted_exactly_once(engine, clock) -> None:
    for _ in range(6):
        engine.record_practice("learner")
        clock.advance(days=1)
    before = engine.get_snapshot("learner")

    outcome = engine.record_practice("learner")

    after = outcome.snapshot
    assert outcome.new_streak == 7
    assert outcome.milestone_rewards_granted == ["daily_streak", "weekly_streak"]
    assert len(after.experience.history) - len(before.experience.history) == 2
    streak_credits = [
        tx.source
        for tx in after.currency.transactions[len(before.currency.transactions):]
        if tx.source.endswith("_streak")
    ]
    assert streak_credits == ["daily_streak", "weekly_streak"]
    assert after.total_experience == 6 * 10 + 10 + 50
    assert after.level == level_for_experience(after.total_experience)
    assert after.counters.practice_sessions == 7


def test_gap_resets_streak(engine, clock) -> None:
    engine.record_practice("learner")
    clock.advance(days=1)
    engine.record_practice("learner")
    clock.advance(days=2)
    assert engine.record_practice("learner").new_streak == 1


def test_purchased_freeze_bridges_a_missed_day(engine, clock) -> None:
    engine.credit_currency("learner", 30, "gift")
    purchase = engine.purchase_item("learner", "streak_freeze")
    assert purchase.new_balance == 0
    assert purchase.snapshot.streak.freezes_available == 1

    engine.record_practice("learner")
    clock.advance(days=1)
    engine.record_practice("learner")
    clock.advance(days=2)

    freeze = engine.consume_freeze("learner")
    assert freeze.freezes_remaining == 0
    assert engine.record_practice("learner").new_streak == 3


def test_freeze_without_stock_is_rejected(engine) -> None:
    engine.record_practice("learner")
    with pytest.raises(FreezeNotApplicable):
        engine.consume_freeze("learner")


def test_one_time_items_cannot_be_bought_twice(engine) -> None:
    engine.credit_currency("learner", 200, "gift")
    engine.purchase_item("learner", "dark_theme")
    with pytest.raises(InvalidInput):
        engine.purchase_item("learner", "dark_theme")
    snapshot = engine.get_snapshot("learner")
    assert snapshot.currency.balance == 150
    assert snapshot.inventory["dark_theme"].quantity == 1


def test_purchase_without_funds_changes_nothing(engine) -> None:
    engine.credit_currency("learner", 10, "gift")
    with pytest.raises(InsufficientFunds):
        engine.purchase_item("learner", "heart_refill")
    snapshot = engine.get_snapshot("learner")
    assert snapshot.currency.balance == 10
    assert snapshot.inventory == {}


def test_heart_refill_restores_hearts(engine) -> None:
    engine.credit_currency("learner", 20, "gift")
    engine.consume_hearts("learner", 4)
    outcome = engine.purchase_item("learner", "heart_refill")
    assert outcome.snapshot.hearts.current == 5


def test_xp_boost_doubles_lesson_experience_while_active(engine, clock) -> None:
    engine.credit_currency("learner", 40, "gift")
    engine.purchase_item("learner", "xp_boost")
    assert engine.is_boost_active("learner")

    boosted = engine.complete_lesson("learner", "copy-paste")
    assert boosted.experience_awarded == 100

    clock.advance(hours=25)
    assert not engine.is_boost_active("learner")
    plain = engine.complete_lesson("learner", "undo-redo")
    assert plain.experience_awarded == 50


def test_perfect_lesson_and_challenge_rewards(engine) -> None:
    lesson = engine.complete_lesson("learner", "select-all", perfect=True)
    assert lesson.experience_awarded == 75
    assert lesson.currency_awarded == 3

    challenge = engine.complete_challenge("learner", "speed-run")
    assert challenge.experience_awarded == 75
    assert challenge.currency_awarded == 5
    assert challenge.leveled_up

    counters = challenge.snapshot.counters
    assert (counters.lessons_completed, counters.challenges_completed) == (1, 1)


def test_blank_lesson_id_is_rejected(engine) -> None:
    with pytest.raises(InvalidInput):
        engine.complete_lesson("learner", "  ")


def test_check_achievements_unlocks_once(engine) -> None:
    engine.complete_lesson("learner", "first")
    outcome = engine.check_achievements("learner")

    assert [achievement.id for achievement in outcome.unlocked] == ["lessons-1"]
    snapshot = outcome.snapshot
    assert "lessons-1" in snapshot.achievements
    assert snapshot.total_experience == 100
    # 20 for the achievement plus 10 for reaching level 2.
    assert snapshot.currency.balance == 30

    assert engine.check_achievements("learner").unlocked == []


def test_evaluate_unlocks_uses_current_progress(engine) -> None:
    nodes = [
        {"id": "basics"},
        {"id": "advanced", "prerequisites": {"previous_node_ids": ["basics"], "min_level": 2}},
    ]
    decisions = engine.evaluate_unlocks("learner", nodes, {"basics"})
    assert not decisions["advanced"].reachable

    engine.grant_experience("learner", 100, "test")
    decisions = engine.evaluate_unlocks("learner", nodes, {"basics"})
    assert decisions["advanced"].reachable


def test_reset_restores_defaults(engine, published) -> None:
    engine.grant_experience("learner", 300, "test")
    snapshot = engine.reset("learner")
    assert snapshot.total_experience == 0
    assert snapshot.currency.transactions == []
    assert published[-1].type == "progression_reset"


def test_concurrent_credits_are_serialized(engine) -> None:
    def worker() -> None:
        for _ in range(25):
            engine.credit_currency("learner", 1, "tick")

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snapshot = engine.get_snapshot("learner")
    assert snapshot.currency.balance == 100
    assert len(snapshot.currency.transactions) == 100


def test_concurrent_first_reads_initialize_once(engine, store, published) -> None:
    barrier = threading.Barrier(8)

    def reader() -> None:
        barrier.wait()
        engine.get_snapshot("newcomer")

    threads = [threading.Thread(target=reader) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.saves == 1
    assert [event.type for event in published] == ["progression_initialized"]


def test_probing_an_unknown_account_writes_nothing(engine, store, published) -> None:
    with pytest.raises(AccountNotInitialized):
        engine.get_snapshot("nobody", initialize=False)
    assert store.saves == 0
    assert store.snapshots == {}
    assert published == []


def test_cached_snapshot_reflects_last_commit(engine) -> None:
    engine.credit_currency("learner", 7, "gift")
    assert engine.cached_snapshot("learner").currency.balance == 7


def test_unanchored_hearts_take_their_anchor_from_the_clock(engine, store, clock) -> None:
    store.snapshots["restored"] = ProgressionSnapshot(account_id="restored", hearts=HeartsState(current=2))

    first = engine.regenerate_hearts("restored")
    assert first.regenerated == 0
    assert first.snapshot.hearts.last_regeneration == clock.now()
    assert first.snapshot.created_at == clock.now()

    clock.advance(minutes=30)
    assert engine.regenerate_hearts("restored").regenerated == 1
