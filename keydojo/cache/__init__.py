"""In-memory caches shared across backend services."""

from .snapshot_cache import SnapshotCache, snapshot_cache

__all__ = ["SnapshotCache", "snapshot_cache"]
