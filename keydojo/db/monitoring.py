"""Connection pool counters surfaced through telemetry and the health endpoint."""

from __future__ import annotations

import os
import time
from dataclasses import asdict, dataclass
from typing import Dict

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..telemetry import emit_event


@dataclass
class PoolCounters:
    connects: int = 0
    checkouts: int = 0
    checkins: int = 0
    invalidations: int = 0
    last_emit: float = 0.0

    def public(self) -> Dict[str, int]:
        values = asdict(self)
        values.pop("last_emit")
        return values


_COUNTERS: Dict[int, PoolCounters] = {}
_TELEMETRY_INTERVAL = float(os.getenv("KEYDOJO_DB_TELEMETRY_INTERVAL", "30"))


def instrument_engine(engine: Engine) -> None:
    """Attach pool listeners; repeated calls for the same engine are ignored."""
    key = id(engine)
    if key in _COUNTERS:
        return
    counters = PoolCounters()
    _COUNTERS[key] = counters

    def report(trigger: str) -> None:
        now = time.time()
        if _TELEMETRY_INTERVAL > 0 and (now - counters.last_emit) < _TELEMETRY_INTERVAL:
            return
        counters.last_emit = now
        emit_event("db_pool_status", trigger=trigger, status=_pool_status(engine), **counters.public())

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        counters.connects += 1
        report("connect")

    @event.listens_for(engine, "checkout")
    def _on_checkout(dbapi_connection, connection_record, connection_proxy) -> None:  # type: ignore[no-untyped-def]
        counters.checkouts += 1
        report("checkout")

    @event.listens_for(engine, "checkin")
    def _on_checkin(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        counters.checkins += 1

    @event.listens_for(engine, "invalidate")
    def _on_invalidate(dbapi_connection, connection_record, exception) -> None:  # type: ignore[no-untyped-def]
        counters.invalidations += 1
        report("invalidate")


def get_pool_snapshot(engine: Engine) -> Dict[str, object]:
    counters = _COUNTERS.get(id(engine), PoolCounters())
    return {"status": _pool_status(engine), **counters.public()}


def forget_engine(engine: Engine) -> None:
    _COUNTERS.pop(id(engine), None)


def _pool_status(engine: Engine) -> str:
    try:
        return engine.pool.status()  # type: ignore[no-untyped-call]
    except Exception as exc:  # pragma: no cover - pool implementations vary
        return f"unavailable: {exc}"


__all__ = [
    "PoolCounters",
    "forget_engine",
    "get_pool_snapshot",
    "instrument_engine",
]
