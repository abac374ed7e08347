"""Collaboration model and lifecycle enums."""

import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Enum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..database import db


class CollaborationStatus(str, enum.Enum):
    """4-state lifecycle for collaborations."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class CollaborationPriority(str, enum.Enum):
    """Priority shared by rules and the collaborations they create."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Collaboration(db.Model):
    """
    A single unit of cross-agent work.

    Created pending by a rule match or a manual trigger, moved to
    in_progress when execution starts, then to completed (with a result)
    or failed. Terminal records are only ever deleted.
    """

    __tablename__ = "collaborations"

    id: Mapped[int] = mapped_column(primary_key=True)
    source_agent: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_agent: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    collaboration_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default="trigger_action"
    )
    trigger_reason: Mapped[str] = mapped_column(String(128), nullable=False)
    context: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[CollaborationStatus] = mapped_column(
        Enum(
            CollaborationStatus,
            name="collaborationstatus",
            values_callable=lambda e: [m.value for m in e],
            create_constraint=True,
        ),
        nullable=False,
        default=CollaborationStatus.PENDING,
        index=True,
    )
    priority: Mapped[CollaborationPriority] = mapped_column(
        Enum(
            CollaborationPriority,
            name="collaborationpriority",
            values_callable=lambda e: [m.value for m in e],
            create_constraint=True,
        ),
        nullable=False,
        default=CollaborationPriority.MEDIUM,
    )
    rule_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Collaboration id={self.id} {self.source_agent}->{self.target_agent} "
            f"status={self.status.value}>"
        )


# Composite index for the history list
Index("ix_collaborations_status_created_at", Collaboration.status, Collaboration.created_at)
