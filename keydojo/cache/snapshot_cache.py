"""Process-local cache of committed progression snapshots for display reads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Dict, Optional

from ..progression import ProgressionSnapshot, normalize_account_id


@dataclass
class _SnapshotEntry:
    snapshot: ProgressionSnapshot
    cached_at: datetime


class SnapshotCache:
    """Holds deep copies so readers never observe an in-flight transition."""

    def __init__(self) -> None:
        self._entries: Dict[str, _SnapshotEntry] = {}
        self._lock = RLock()

    def get(self, account_id: str) -> Optional[ProgressionSnapshot]:
        key = normalize_account_id(account_id)
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        return entry.snapshot.model_copy(deep=True)

    def set(self, snapshot: ProgressionSnapshot) -> None:
        key = normalize_account_id(snapshot.account_id)
        entry = _SnapshotEntry(
            snapshot=snapshot.model_copy(deep=True),
            cached_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, account_id: str) -> None:
        key = normalize_account_id(account_id)
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


snapshot_cache = SnapshotCache()

__all__ = ["SnapshotCache", "snapshot_cache"]
