"""Lead schemas for request/response validation."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from practice_growth.db.enums import LeadSource, LeadStatus


class LeadCreate(BaseModel):
    """Capture a new lead."""
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    source: LeadSource = LeadSource.WEBSITE
    primary_concern: str | None = Field(None, max_length=500)
    notes: str | None = None
    preferred_contact: str | None = Field(None, pattern="^(email|phone|sms)$")
    preferred_times: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=50)
    zip_code: str | None = Field(None, max_length=20)

    # Attribution
    utm_source: str | None = Field(None, max_length=100)
    utm_medium: str | None = Field(None, max_length=100)
    utm_campaign: str | None = Field(None, max_length=100)
    utm_content: str | None = Field(None, max_length=100)
    utm_term: str | None = Field(None, max_length=100)
    landing_page: str | None = Field(None, max_length=500)
    referrer_url: str | None = Field(None, max_length=500)
    campaign_id: UUID | None = None
    referral_code: str | None = Field(None, max_length=40)
    assigned_to_user_id: UUID | None = None


class LeadStatusChange(BaseModel):
    status: LeadStatus
    converted_patient_id: UUID | None = None
    reason: str | None = Field(None, max_length=500)


class ContactAttemptCreate(BaseModel):
    method: str = Field(..., pattern="^(phone|email|sms|in_person)$")
    outcome: str = Field(..., pattern="^(reached|voicemail|no_answer|bounced|other)$")
    notes: str | None = None


class NoteCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=4000)


class FollowUpSet(BaseModel):
    follow_up_at: datetime | None


class ScoreUpdate(BaseModel):
    factor: str = Field(..., min_length=1, max_length=50)
    amount: int | None = None


class LeadConvert(BaseModel):
    patient_id: UUID
    revenue: Decimal = Decimal("0")
    service_amount: Decimal | None = None


class LeadRead(BaseModel):
    id: UUID
    first_name: str | None
    last_name: str | None
    email: str | None
    phone: str | None
    source: LeadSource
    status: LeadStatus
    score: int
    score_factors: dict
    primary_concern: str | None
    notes: str | None
    preferred_contact: str | None
    preferred_times: str | None
    city: str | None
    state: str | None
    zip_code: str | None
    utm_source: str | None
    utm_medium: str | None
    utm_campaign: str | None
    campaign_id: UUID | None
    referral_id: UUID | None
    current_sequence_id: UUID | None
    assigned_to_user_id: UUID | None
    follow_up_at: datetime | None
    contact_attempts: int
    last_contacted_at: datetime | None
    opted_out_at: datetime | None
    converted_patient_id: UUID | None
    converted_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class LeadCreateResult(BaseModel):
    lead: LeadRead
    created: bool


class LeadActivityRead(BaseModel):
    id: UUID
    lead_id: UUID
    activity_type: str
    description: str | None
    details: dict
    actor_user_id: UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversionRead(BaseModel):
    """Lead conversion outcome; a referral failure is reported, not raised."""
    lead: LeadRead
    referral_completed: bool
    referral_error: str | None = None


class LeadStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_source: dict[str, int]
    converted: int
    conversion_rate: float
    average_score: float
