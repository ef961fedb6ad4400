"""REST endpoints exposing the progression engine to the Keyboard Dojo client."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from .achievements import ACHIEVEMENTS, ACHIEVEMENTS_BY_ID
from .config import get_settings
from .engine import HeartsOutcome, ProgressionEngine, get_progression_engine
from .errors import (
    AccountNotInitialized,
    InsufficientFunds,
    InsufficientHearts,
    InvalidInput,
    PersistenceFailure,
)
from .item_shop import STORE_ITEMS, boost_remaining
from .level_table import level_progress
from .progression import ProgressionSnapshot


router = APIRouter(prefix="/api/progression", tags=["progression"])
logger = logging.getLogger(__name__)


class ExperienceRequest(BaseModel):
    amount: int = Field(..., gt=0)
    source: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = Field(default=None, max_length=160)


class CurrencyRequest(BaseModel):
    amount: int = Field(..., gt=0)
    source: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = Field(default=None, max_length=160)


class LessonRequest(BaseModel):
    lesson_id: str = Field(..., min_length=1)
    perfect: bool = False


class ChallengeRequest(BaseModel):
    challenge_id: str = Field(..., min_length=1)


class HeartsRequest(BaseModel):
    count: int = Field(default=1, gt=0)


class UnlimitedHeartsRequest(BaseModel):
    unlimited: bool


class PurchaseRequest(BaseModel):
    item_id: str = Field(..., min_length=1)


class UnlockRequest(BaseModel):
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    completed_node_ids: List[str] = Field(default_factory=list)


@contextmanager
def _http_errors(account_id: str) -> Iterator[None]:
    try:
        yield
    except InvalidInput as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except (InsufficientHearts, InsufficientFunds) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except AccountNotInitialized as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PersistenceFailure as exc:
        logger.error("Persistence unavailable for account=%s: %s", account_id, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress could not be saved. Try again shortly.",
        ) from exc


def _snapshot_payload(snapshot: ProgressionSnapshot, engine: ProgressionEngine) -> Dict[str, Any]:
    now = engine.clock.now()
    payload = snapshot.model_dump(mode="json")
    payload["level_progress"] = level_progress(snapshot.total_experience).model_dump()
    payload["boosts_remaining_seconds"] = {
        item_id: int(boost_remaining(snapshot, item_id, now).total_seconds())
        for item_id in snapshot.active_boosts
    }
    return payload


@router.get("/catalog/items")
def list_store_items() -> List[Dict[str, Any]]:
    return [item.model_dump() for item in STORE_ITEMS.values()]


@router.get("/catalog/achievements")
def list_achievements() -> List[Dict[str, Any]]:
    return [achievement.model_dump() for achievement in ACHIEVEMENTS if not achievement.secret]


@router.get("/catalog/achievements/{achievement_id}")
def get_achievement(achievement_id: str) -> Dict[str, Any]:
    achievement = ACHIEVEMENTS_BY_ID.get(achievement_id)
    if achievement is None or achievement.secret:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown achievement")
    return achievement.model_dump()


@router.get("/{account_id}")
def get_progression(
    account_id: str,
    initialize: bool = Query(default=True),
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        snapshot = engine.get_snapshot(account_id, initialize=initialize)
    return _snapshot_payload(snapshot, engine)


@router.post("/{account_id}/experience")
def grant_experience(
    account_id: str,
    payload: ExperienceRequest,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.grant_experience(account_id, payload.amount, payload.source, payload.description)
    return {
        "new_total": outcome.new_total,
        "new_level": outcome.new_level,
        "leveled_up": outcome.leveled_up,
        "levels_gained": outcome.levels_gained,
        "progression": _snapshot_payload(outcome.snapshot, engine),
    }


@router.post("/{account_id}/lessons")
def complete_lesson(
    account_id: str,
    payload: LessonRequest,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.complete_lesson(account_id, payload.lesson_id, perfect=payload.perfect)
    return {
        "experience_awarded": outcome.experience_awarded,
        "currency_awarded": outcome.currency_awarded,
        "leveled_up": outcome.leveled_up,
        "progression": _snapshot_payload(outcome.snapshot, engine),
    }


@router.post("/{account_id}/challenges")
def complete_challenge(
    account_id: str,
    payload: ChallengeRequest,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.complete_challenge(account_id, payload.challenge_id)
    return {
        "experience_awarded": outcome.experience_awarded,
        "currency_awarded": outcome.currency_awarded,
        "leveled_up": outcome.leveled_up,
        "progression": _snapshot_payload(outcome.snapshot, engine),
    }


@router.post("/{account_id}/currency/credit")
def credit_currency(
    account_id: str,
    payload: CurrencyRequest,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.credit_currency(account_id, payload.amount, payload.source, payload.description)
    return {"new_balance": outcome.new_balance}


@router.post("/{account_id}/currency/debit")
def debit_currency(
    account_id: str,
    payload: CurrencyRequest,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.debit_currency(account_id, payload.amount, payload.source, payload.description)
    return {"new_balance": outcome.new_balance}


def _hearts_payload(outcome: HeartsOutcome) -> Dict[str, Any]:
    due = outcome.next_regeneration_due
    return {
        "current": outcome.current,
        "max": outcome.max,
        "unlimited": outcome.unlimited,
        "regenerated": outcome.regenerated,
        "next_regeneration_due": due.isoformat() if due else None,
    }


@router.post("/{account_id}/hearts/consume")
def consume_hearts(
    account_id: str,
    payload: HeartsRequest,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.consume_hearts(account_id, payload.count)
    return _hearts_payload(outcome)


@router.post("/{account_id}/hearts/regenerate")
def regenerate_hearts(
    account_id: str,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.regenerate_hearts(account_id)
    return _hearts_payload(outcome)


@router.post("/{account_id}/hearts/grant")
def grant_hearts(
    account_id: str,
    payload: HeartsRequest,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.grant_hearts(account_id, payload.count)
    return _hearts_payload(outcome)


@router.put("/{account_id}/hearts/unlimited")
def set_unlimited_hearts(
    account_id: str,
    payload: UnlimitedHeartsRequest,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.set_unlimited_hearts(account_id, payload.unlimited)
    return _hearts_payload(outcome)


@router.post("/{account_id}/practice")
def record_practice(
    account_id: str,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.record_practice(account_id)
    return {
        "already_practiced_today": outcome.already_practiced_today,
        "new_streak": outcome.new_streak,
        "milestone_rewards_granted": outcome.milestone_rewards_granted,
        "progression": _snapshot_payload(outcome.snapshot, engine),
    }


@router.post("/{account_id}/streak/freeze")
def consume_freeze(
    account_id: str,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.consume_freeze(account_id)
    return {
        "frozen_day": outcome.frozen_day.isoformat(),
        "freezes_remaining": outcome.freezes_remaining,
        "streak": outcome.snapshot.streak.current,
    }


@router.get("/{account_id}/streak/history")
def streak_history(
    account_id: str,
    start: date = Query(...),
    end: date = Query(...),
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> List[Dict[str, Any]]:
    with _http_errors(account_id):
        days = engine.streak_history(account_id, start, end)
    return [day.model_dump(mode="json") for day in days]


@router.post("/{account_id}/purchases")
def purchase_item(
    account_id: str,
    payload: PurchaseRequest,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.purchase_item(account_id, payload.item_id)
    return {
        "item_id": outcome.item_id,
        "new_balance": outcome.new_balance,
        "progression": _snapshot_payload(outcome.snapshot, engine),
    }


@router.post("/{account_id}/achievements/check")
def check_achievements(
    account_id: str,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        outcome = engine.check_achievements(account_id)
    return {
        "unlocked": [achievement.model_dump() for achievement in outcome.unlocked],
        "progression": _snapshot_payload(outcome.snapshot, engine),
    }


@router.post("/{account_id}/unlocks")
def evaluate_unlocks(
    account_id: str,
    payload: UnlockRequest,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    with _http_errors(account_id):
        decisions = engine.evaluate_unlocks(account_id, payload.nodes, set(payload.completed_node_ids))
    return {node_id: decision.model_dump() for node_id, decision in decisions.items()}


@router.get("/{account_id}/events")
def recent_events(
    account_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> List[Dict[str, Any]]:
    with _http_errors(account_id):
        return engine.recent_events(account_id, limit)


@router.post("/{account_id}/reset")
def reset_progression(
    account_id: str,
    engine: ProgressionEngine = Depends(get_progression_engine),
) -> Dict[str, Any]:
    if not get_settings().debug_endpoints:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    with _http_errors(account_id):
        snapshot = engine.reset(account_id)
    logger.info("Progression reset for account=%s", account_id)
    return _snapshot_payload(snapshot, engine)


__all__ = ["router"]
