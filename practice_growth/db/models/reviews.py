"""Review request model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from practice_growth.db.base import Base
from practice_growth.db.enums import ReviewRequestStatus
from practice_growth.db.types import utcnow


class ReviewRequest(Base):
    """
    Request for a patient to leave an online review.

    Status only moves forward: pending → sent → clicked → reviewed, or to
    declined/failed from any non-terminal state.
    """

    __tablename__ = "review_requests"
    __table_args__ = (
        Index("idx_review_requests_org_status", "organization_id", "status"),
        Index("idx_review_requests_org_patient", "organization_id", "patient_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ReviewRequestStatus.PENDING.value, nullable=False
    )
    review_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    triggered_by_appointment_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    scheduled_for: Mapped[datetime | None] = mapped_column(nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Delivery
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sent_via: Mapped[str | None] = mapped_column(String(10), nullable=True)  # 'email' | 'sms'
    message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Outcome
    clicked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    declined_at: Mapped[datetime | None] = mapped_column(nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
