"""Telemetry listener that persists key progression events to the audit trail."""

from __future__ import annotations

import logging
from typing import Optional, Set

from .progress_store import ProgressStore
from .telemetry import TelemetryEvent, register_listener, unregister_listener

logger = logging.getLogger(__name__)

_MONITORED_EVENTS: Set[str] = {
    "level_up",
    "achievement_unlocked",
    "item_purchased",
    "streak_freeze_consumed",
    "progression_reset",
}

_store: Optional[ProgressStore] = None


def _get_store() -> ProgressStore:
    global _store
    if _store is None:
        _store = ProgressStore()
    return _store


def _persist_event(event: TelemetryEvent) -> None:
    if event.type not in _MONITORED_EVENTS:
        return
    account_id = event.account_id
    if not isinstance(account_id, str) or not account_id.strip():
        return
    payload = dict(event.payload)
    payload.setdefault("timestamp", event.timestamp.isoformat())
    try:
        _get_store().record_event(account_id, event.type, payload)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to persist telemetry event for account=%s", account_id)


def install() -> None:
    """Register the audit listener once; safe to call repeatedly."""
    unregister_listener(_persist_event)
    register_listener(_persist_event)


def reset_store() -> None:
    global _store
    _store = None


install()

__all__ = ["_MONITORED_EVENTS", "install", "reset_store"]
