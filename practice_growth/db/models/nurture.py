"""Nurture sequence models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from practice_growth.db.base import Base
from practice_growth.db.enums import (
    NurtureEnrollmentStatus,
    NurtureSequenceStatus,
    NurtureTriggerType,
)
from practice_growth.db.types import utcnow


class NurtureSequence(Base):
    """
    Ordered, time-delayed steps applied to enrolled leads.

    Only DRAFT sequences accept step edits. A sequence never returns to
    DRAFT once activated.
    """

    __tablename__ = "nurture_sequences"
    __table_args__ = (
        Index("idx_nurture_sequences_org_status", "organization_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Trigger
    trigger_type: Mapped[str] = mapped_column(
        String(30), default=NurtureTriggerType.MANUAL.value, nullable=False
    )
    trigger_value: Mapped[str | None] = mapped_column(String(100), nullable=True)
    lead_sources: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    min_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Exit conditions
    exit_on_conversion: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    exit_on_unsubscribe: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    max_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=NurtureSequenceStatus.DRAFT.value, nullable=False
    )
    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    steps: Mapped[list["NurtureStep"]] = relationship(
        back_populates="sequence",
        cascade="all, delete-orphan",
        order_by="NurtureStep.step_number",
    )


class NurtureStep(Base):
    """
    One action within a sequence.

    The offset ``delay_days * 24h + delay_hours`` is measured from the
    lead's enrollment time. ``step_number`` is declaration order and breaks
    ties between steps sharing an offset.
    """

    __tablename__ = "nurture_steps"
    __table_args__ = (
        UniqueConstraint("sequence_id", "step_number", name="uq_nurture_step_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    sequence_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("nurture_sequences.id", ondelete="CASCADE"), nullable=False
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Timing
    delay_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    delay_hours: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    send_time: Mapped[str | None] = mapped_column(String(5), nullable=True)  # "HH:MM" org-local

    # Action
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    template_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    task_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    task_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    task_assign_to: Mapped[str | None] = mapped_column(String(100), nullable=True)
    score_change: Mapped[int | None] = mapped_column(Integer, nullable=True)
    condition: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    sequence: Mapped["NurtureSequence"] = relationship(back_populates="steps")

    @property
    def offset_hours(self) -> int:
        return self.delay_days * 24 + self.delay_hours


class NurtureEnrollment(Base):
    """A lead's pass through one sequence."""

    __tablename__ = "nurture_enrollments"
    __table_args__ = (
        Index("idx_nurture_enrollments_org_status", "organization_id", "status"),
        Index("idx_nurture_enrollments_lead", "lead_id", "enrolled_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    sequence_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("nurture_sequences.id", ondelete="CASCADE"), nullable=False
    )
    lead_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default=NurtureEnrollmentStatus.ACTIVE.value, nullable=False
    )
    enrolled_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    exited_at: Mapped[datetime | None] = mapped_column(nullable=True)
    exit_reason: Mapped[str | None] = mapped_column(String(30), nullable=True)

    sequence: Mapped["NurtureSequence"] = relationship()
    executions: Mapped[list["NurtureStepExecution"]] = relationship(
        back_populates="enrollment", order_by="NurtureStepExecution.fired_at"
    )


class NurtureStepExecution(Base):
    """
    Record that a step fired, was skipped, or failed for an enrollment.

    Unique per (enrollment, step): a step is never executed twice, even
    when two drivers advance the same lead concurrently.
    """

    __tablename__ = "nurture_step_executions"
    __table_args__ = (
        UniqueConstraint("enrollment_id", "step_id", name="uq_nurture_step_execution"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("nurture_enrollments.id", ondelete="CASCADE"), nullable=False
    )
    step_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("nurture_steps.id", ondelete="CASCADE"), nullable=False
    )
    lead_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    fired_at: Mapped[datetime] = mapped_column(nullable=False)

    enrollment: Mapped["NurtureEnrollment"] = relationship(back_populates="executions")
