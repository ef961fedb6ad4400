"""ORM models backing the progression persistence layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class ProgressionModel(TimestampMixin, Base):
    __tablename__ = "progressions"
    __table_args__ = (Index("ix_progressions_account_id", "account_id", unique=True),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    account_id: Mapped[str] = mapped_column(String(128), nullable=False)
    total_experience: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    experience: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    hearts: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    currency: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    streak: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    inventory: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    active_boosts: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    achievements: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    counters: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    snapshot_created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    snapshot_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    audit_events: Mapped[list["ProgressionAuditEventModel"]] = relationship(
        back_populates="progression", cascade="all, delete-orphan"
    )


class ProgressionAuditEventModel(Base):
    __tablename__ = "progression_audit_events"
    __table_args__ = (Index("ix_progression_audit_events_account", "account_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    progression_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("progressions.id", ondelete="SET NULL"), nullable=True
    )
    account_id: Mapped[str] = mapped_column(String(128), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    actor: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    progression: Mapped[ProgressionModel | None] = relationship(back_populates="audit_events")


__all__ = [
    "ProgressionAuditEventModel",
    "ProgressionModel",
]
