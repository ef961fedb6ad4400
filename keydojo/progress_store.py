"""Persistence collaborators for progression snapshots."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .config import get_settings
from .db.session import session_scope
from .errors import PersistenceFailure
from .progression import ProgressionSnapshot, normalize_account_id
from .repositories.progressions import progressions

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"

_PATH_LOCKS: Dict[Path, threading.RLock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def _lock_for_path(path: Path) -> threading.RLock:
    """Every store instance on the same file shares one lock."""
    key = path.resolve()
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = threading.RLock()
            _PATH_LOCKS[key] = lock
        return lock


class SnapshotStore(Protocol):
    def load(self, account_id: str) -> Optional[ProgressionSnapshot]:  # pragma: no cover - protocol definition
        ...

    def save(self, account_id: str, snapshot: ProgressionSnapshot) -> ProgressionSnapshot:  # pragma: no cover
        ...


class _DatabaseProgressStore:
    """SQL persistence through the progression repository."""

    def load(self, account_id: str) -> Optional[ProgressionSnapshot]:
        with session_scope(commit=False) as session:
            return progressions.get(session, account_id)

    def save(self, account_id: str, snapshot: ProgressionSnapshot) -> ProgressionSnapshot:
        with session_scope() as session:
            return progressions.save(session, snapshot)

    def delete(self, account_id: str) -> bool:
        with session_scope() as session:
            return progressions.delete(session, account_id)

    def record_event(self, account_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        with session_scope() as session:
            progressions.record_event(session, account_id, event_type, payload)

    def recent_events(self, account_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        with session_scope(commit=False) as session:
            return [
                {
                    "event_type": record.event_type,
                    "payload": dict(record.payload or {}),
                    "created_at": record.created_at.isoformat(),
                }
                for record in progressions.recent_events(session, account_id, limit)
            ]


class _LegacyProgressStore:
    """JSON-file persistence used for offline and single-process installs."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or DATA_DIR / "progressions.json"
        self._lock = _lock_for_path(self._path)

    def _load_unlocked(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {"snapshots": {}, "events": {}}
        with self._path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
        raw.setdefault("snapshots", {})
        raw.setdefault("events", {})
        return raw

    def _write_unlocked(self, payload: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self._path.parent,
            prefix=f"{self._path.stem}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            json.dump(payload, handle, indent=2)
        try:
            os.replace(handle.name, self._path)
        except OSError:
            Path(handle.name).unlink(missing_ok=True)
            raise

    def load(self, account_id: str) -> Optional[ProgressionSnapshot]:
        key = normalize_account_id(account_id)
        with self._lock:
            raw = self._load_unlocked()["snapshots"].get(key)
        if raw is None:
            return None
        return ProgressionSnapshot.model_validate(raw)

    def save(self, account_id: str, snapshot: ProgressionSnapshot) -> ProgressionSnapshot:
        key = normalize_account_id(account_id)
        clone = snapshot.model_copy(deep=True)
        clone.account_id = key
        with self._lock:
            payload = self._load_unlocked()
            payload["snapshots"][key] = clone.model_dump(mode="json")
            self._write_unlocked(payload)
        return clone

    def delete(self, account_id: str) -> bool:
        key = normalize_account_id(account_id)
        with self._lock:
            payload = self._load_unlocked()
            removed = payload["snapshots"].pop(key, None) is not None
            payload["events"].pop(key, None)
            if removed:
                self._write_unlocked(payload)
        return removed

    def record_event(self, account_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        key = normalize_account_id(account_id)
        with self._lock:
            data = self._load_unlocked()
            events = data["events"].setdefault(key, [])
            events.append({"event_type": event_type, "payload": payload, "created_at": payload.get("timestamp")})
            data["events"][key] = events[-200:]
            self._write_unlocked(data)

    def recent_events(self, account_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        key = normalize_account_id(account_id)
        with self._lock:
            events = list(self._load_unlocked()["events"].get(key, []))
        return list(reversed(events))[:limit]


class ProgressStore:
    """Facade that delegates to database or legacy persistence based on configuration.

    Every backend error is surfaced as :class:`PersistenceFailure` so the
    engine can discard the in-memory transition.
    """

    def __init__(self, legacy_path: Path | None = None, *, mode: Optional[str] = None) -> None:
        settings = get_settings()
        self._mode = mode or settings.persistence_mode
        if legacy_path is None and settings.legacy_store_path:
            legacy_path = Path(settings.legacy_store_path)
        self._db_store = _DatabaseProgressStore()
        self._legacy_store = _LegacyProgressStore(path=legacy_path)

    @property
    def mode(self) -> str:
        return self._mode

    def _backend(self):
        return self._legacy_store if self._mode == "legacy" else self._db_store

    def _call(self, method: str, *args, **kwargs):
        try:
            return getattr(self._backend(), method)(*args, **kwargs)
        except PersistenceFailure:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Progress store %s failed in %s mode: %s", method, self._mode, exc)
            raise PersistenceFailure(f"Progress store {method} failed: {exc}") from exc

    def load(self, account_id: str) -> Optional[ProgressionSnapshot]:
        return self._call("load", account_id)

    def save(self, account_id: str, snapshot: ProgressionSnapshot) -> ProgressionSnapshot:
        return self._call("save", account_id, snapshot)

    def delete(self, account_id: str) -> bool:
        return self._call("delete", account_id)

    def record_event(self, account_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        self._call("record_event", account_id, event_type, payload)

    def recent_events(self, account_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return self._call("recent_events", account_id, limit)


__all__ = ["ProgressStore", "SnapshotStore"]
