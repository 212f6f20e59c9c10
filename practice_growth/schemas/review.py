"""Review request schemas."""
from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from practice_growth.db.enums import ReviewChannel, ReviewPlatform, ReviewRequestStatus


class ReviewRequestCreate(BaseModel):
    """Ask a patient for a review, optionally after an appointment."""
    patient_id: UUID
    platform: ReviewPlatform = ReviewPlatform.GOOGLE
    review_url: str | None = Field(None, max_length=500)
    triggered_by_appointment_id: UUID | None = None
    scheduled_for: datetime | None = None


class ReviewSend(BaseModel):
    """Record that the request went out; delivery itself happens elsewhere."""
    sent_via: ReviewChannel
    message_id: str | None = Field(None, max_length=255)


class ReviewRecord(BaseModel):
    rating: int | None = Field(None, ge=1, le=5)


class ReviewFailure(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class ReviewRequestRead(BaseModel):
    id: UUID
    patient_id: UUID
    platform: ReviewPlatform
    status: ReviewRequestStatus
    review_url: str | None
    triggered_by_appointment_id: UUID | None
    scheduled_for: datetime | None
    expires_at: datetime | None
    sent_at: datetime | None
    sent_via: str | None
    message_id: str | None
    clicked_at: datetime | None
    reviewed_at: datetime | None
    rating: int | None
    declined_at: datetime | None
    failed_at: datetime | None
    failure_reason: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewStats(BaseModel):
    """Funnel counts for a date range (by request creation time)."""
    total: int
    by_status: dict[str, int]
    by_platform: dict[str, int]
    sent: int
    clicked: int
    reviewed: int
    response_rate: float
    rated_reviews: int
    average_rating: float | None


class CompletedAppointment(BaseModel):
    """A finished visit reported by the scheduling system."""
    appointment_id: UUID
    patient_id: UUID
    ended_at: datetime
    opted_out_marketing: bool = False

    @field_validator("ended_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class AppointmentReviewResult(BaseModel):
    created: int = 0
    skipped: int = 0
