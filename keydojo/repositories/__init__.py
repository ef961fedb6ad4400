"""SQL repositories for progression snapshots."""

from .progressions import ProgressionRepository, progressions

__all__ = ["ProgressionRepository", "progressions"]
