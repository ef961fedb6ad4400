"""Database-backed progression snapshot repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import ProgressionAuditEventModel, ProgressionModel
from ..progression import ProgressionSnapshot, normalize_account_id


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ProgressionRepository:
    """Persists each snapshot as one row so a save is a single atomic write."""

    def get(self, session: Session, account_id: str) -> ProgressionSnapshot | None:
        model = self._find(session, account_id)
        if model is None:
            return None
        return self._to_domain(model)

    def save(self, session: Session, snapshot: ProgressionSnapshot) -> ProgressionSnapshot:
        normalized = normalize_account_id(snapshot.account_id)
        model = self._find(session, normalized)
        created = model is None
        if model is None:
            model = ProgressionModel(account_id=normalized)
            session.add(model)

        self._apply_snapshot(model, snapshot)
        model.revision = (model.revision or 0) + 1
        session.flush()
        self._record_audit(
            session,
            model,
            "progression_created" if created else "progression_saved",
            {"revision": model.revision, "level": model.level, "balance": model.balance},
        )
        return self._to_domain(model)

    def delete(self, session: Session, account_id: str) -> bool:
        model = self._find(session, account_id)
        if model is None:
            return False
        session.delete(model)
        session.flush()
        return True

    def record_event(
        self,
        session: Session,
        account_id: str,
        event_type: str,
        payload: Dict[str, Any],
    ) -> None:
        model = self._find(session, account_id)
        session.add(
            ProgressionAuditEventModel(
                progression_id=model.id if model else None,
                account_id=normalize_account_id(account_id),
                event_type=event_type,
                payload=payload,
                actor="telemetry",
            )
        )
        session.flush()

    def recent_events(self, session: Session, account_id: str, limit: int = 50) -> List[ProgressionAuditEventModel]:
        stmt = (
            select(ProgressionAuditEventModel)
            .where(ProgressionAuditEventModel.account_id == normalize_account_id(account_id))
            .order_by(ProgressionAuditEventModel.created_at.desc())
            .limit(limit)
        )
        return list(session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find(self, session: Session, account_id: str) -> ProgressionModel | None:
        normalized = normalize_account_id(account_id)
        stmt = select(ProgressionModel).where(ProgressionModel.account_id == normalized)
        return session.execute(stmt).scalar_one_or_none()

    def _apply_snapshot(self, model: ProgressionModel, snapshot: ProgressionSnapshot) -> None:
        payload = snapshot.model_dump(mode="json")
        model.total_experience = snapshot.total_experience
        model.level = snapshot.level
        model.balance = snapshot.currency.balance
        model.current_streak = snapshot.streak.current
        model.experience = payload["experience"]
        model.hearts = payload["hearts"]
        model.currency = payload["currency"]
        model.streak = payload["streak"]
        model.inventory = payload["inventory"]
        model.active_boosts = payload["active_boosts"]
        model.achievements = payload["achievements"]
        model.counters = payload["counters"]
        if snapshot.created_at is not None:
            model.snapshot_created_at = snapshot.created_at
        if snapshot.updated_at is not None:
            model.snapshot_updated_at = snapshot.updated_at

    def _to_domain(self, model: ProgressionModel) -> ProgressionSnapshot:
        return ProgressionSnapshot.model_validate(
            {
                "account_id": model.account_id,
                "experience": model.experience or {},
                "hearts": model.hearts or {},
                "currency": model.currency or {},
                "streak": model.streak or {},
                "inventory": model.inventory or {},
                "active_boosts": model.active_boosts or {},
                "achievements": model.achievements or {},
                "counters": model.counters or {},
                "created_at": _aware(model.snapshot_created_at),
                "updated_at": _aware(model.snapshot_updated_at),
            }
        )

    def _record_audit(
        self,
        session: Session,
        model: ProgressionModel,
        event_type: str,
        payload: Dict[str, Any],
    ) -> None:
        session.add(
            ProgressionAuditEventModel(
                progression_id=model.id,
                account_id=model.account_id,
                event_type=event_type,
                payload=payload,
                actor="system",
            )
        )


progressions = ProgressionRepository()

__all__ = ["ProgressionRepository", "progressions"]
