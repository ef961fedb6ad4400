"""Lightweight telemetry helpers for progression events."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("keydojo.telemetry")


@dataclass(frozen=True)
class TelemetryEvent:
    type: str
    account_id: Optional[str]
    payload: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "account_id": self.account_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


_listeners: List[Callable[[TelemetryEvent], None]] = []
_lock = RLock()


def register_listener(listener: Callable[[TelemetryEvent], None]) -> None:
    """Register an in-process listener (used in tests)."""
    with _lock:
        _listeners.append(listener)


def unregister_listener(listener: Callable[[TelemetryEvent], None]) -> None:
    with _lock:
        if listener in _listeners:
            _listeners.remove(listener)


def clear_listeners() -> None:
    """Remove all registered listeners. Mainly used to reset test state."""
    with _lock:
        _listeners.clear()


def publish(event: TelemetryEvent) -> None:
    """Fan a prepared event out to listeners and the structured log."""
    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", event.type)

    logger.info("TELEMETRY %s", json.dumps(event.as_dict(), default=_json_default))


def emit_event(
    name: str,
    *,
    account_id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
    **fields: Any,
) -> TelemetryEvent:
    """Emit a structured telemetry event and fan it out to listeners."""
    event = TelemetryEvent(
        type=name,
        account_id=account_id,
        payload=_sanitize(fields),
        timestamp=timestamp or datetime.now(timezone.utc),
    )
    publish(event)
    return event


def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, (datetime, date)):
            sanitized[key] = value.isoformat()
        else:
            sanitized[key] = value
    return sanitized


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


__all__ = [
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "publish",
    "register_listener",
    "unregister_listener",
]
