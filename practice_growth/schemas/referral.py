"""Referral program schemas for request/response validation."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from practice_growth.db.enums import ReferralRewardType, ReferralStatus


# =============================================================================
# Programs
# =============================================================================

class ReferralProgramCreate(BaseModel):
    """Create a referral program."""
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None

    referrer_reward_type: ReferralRewardType
    referrer_reward_value: Decimal
    referrer_reward_max: Decimal | None = None
    referrer_reward_note: str | None = Field(None, max_length=500)

    referee_reward_type: ReferralRewardType | None = None
    referee_reward_value: Decimal | None = None
    referee_reward_max: Decimal | None = None
    referee_reward_note: str | None = Field(None, max_length=500)

    qualification_criteria: dict = Field(default_factory=dict)
    expiration_days: int | None = None
    max_referrals_per_patient: int | None = None
    require_new_patient: bool = True
    terms_and_conditions: str | None = None

    is_active: bool = True
    start_date: datetime | None = None
    end_date: datetime | None = None


class ReferralProgramUpdate(BaseModel):
    """Partial program update; unset fields are left alone."""
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    referrer_reward_type: ReferralRewardType | None = None
    referrer_reward_value: Decimal | None = None
    referrer_reward_max: Decimal | None = None
    referrer_reward_note: str | None = None
    referee_reward_type: ReferralRewardType | None = None
    referee_reward_value: Decimal | None = None
    referee_reward_max: Decimal | None = None
    referee_reward_note: str | None = None
    qualification_criteria: dict | None = None
    expiration_days: int | None = None
    max_referrals_per_patient: int | None = None
    require_new_patient: bool | None = None
    terms_and_conditions: str | None = None
    is_active: bool | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class ReferralProgramRead(BaseModel):
    id: UUID
    name: str
    description: str | None
    referrer_reward_type: str
    referrer_reward_value: Decimal
    referrer_reward_max: Decimal | None
    referrer_reward_note: str | None
    referee_reward_type: str | None
    referee_reward_value: Decimal | None
    referee_reward_max: Decimal | None
    referee_reward_note: str | None
    qualification_criteria: dict
    expiration_days: int | None
    max_referrals_per_patient: int | None
    require_new_patient: bool
    terms_and_conditions: str | None
    is_active: bool
    start_date: datetime | None
    end_date: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# =============================================================================
# Referrals
# =============================================================================

class RefereeContact(BaseModel):
    """Contact details for someone who is not yet a patient."""
    name: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    notes: str | None = None


class ReferralCreate(BaseModel):
    program_id: UUID
    referrer_id: UUID
    referee: RefereeContact | None = None
    code_prefix: str | None = Field(None, max_length=10)
    utm_source: str | None = Field(None, max_length=100)
    utm_medium: str | None = Field(None, max_length=100)
    utm_campaign: str | None = Field(None, max_length=100)


class ReferralLink(BaseModel):
    """Link a referee patient to a referral code."""
    referral_code: str = Field(..., min_length=1, max_length=40)
    patient_id: UUID
    # When the patient record was created; used for the new-patient check.
    patient_created_at: datetime | None = None


class ReferralComplete(BaseModel):
    service_amount: Decimal | None = None


class ReferralRewardRead(BaseModel):
    id: UUID
    recipient_role: str
    recipient_id: UUID | None
    reward_type: str
    amount: Decimal
    note: str | None
    issued_at: datetime

    model_config = {"from_attributes": True}


class ReferralRead(BaseModel):
    id: UUID
    program_id: UUID
    referrer_id: UUID
    referee_id: UUID | None
    referee_name: str | None
    referee_email: str | None
    referee_phone: str | None
    referral_code: str
    status: ReferralStatus
    existing_patient_flag: bool
    utm_source: str | None
    utm_medium: str | None
    utm_campaign: str | None
    referrer_reward_amount: Decimal | None
    referee_reward_amount: Decimal | None
    expires_at: datetime | None
    qualified_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReferralCompletionRead(BaseModel):
    """Outcome of completing a referral; identical on repeat calls."""
    referral: ReferralRead
    referrer_reward: ReferralRewardRead | None
    referee_reward: ReferralRewardRead | None


class ReferralStats(BaseModel):
    total: int
    pending: int
    qualified: int
    completed: int
    expired: int
    cancelled: int
    conversion_rate: float
    completion_rate: float
    total_referrer_rewards: Decimal
    total_referee_rewards: Decimal


class TopReferrer(BaseModel):
    referrer_id: UUID
    completed_referrals: int
    first_referral_at: datetime
