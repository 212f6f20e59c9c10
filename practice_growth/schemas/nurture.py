"""Pydantic schemas for nurture sequences."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from practice_growth.db.enums import (
    LeadSource,
    NurtureActionType,
    NurtureEnrollmentStatus,
    NurtureSequenceStatus,
    NurtureTriggerType,
)


# =============================================================================
# Field Registry (Whitelist for step conditions)
# =============================================================================

ALLOWED_CONDITION_FIELDS = {
    "status",
    "source",
    "score",
    "email",
    "phone",
    "state",
    "city",
    "zip_code",
    "primary_concern",
    "preferred_contact",
    "assigned_to_user_id",
    "campaign_id",
    "referral_id",
    "contact_attempts",
    "utm_source",
    "utm_medium",
    "utm_campaign",
}

CONDITION_OPERATORS = {"eq", "ne", "gt", "gte", "lt", "lte", "in", "not_in", "is_empty", "is_not_empty"}

TASK_ASSIGN_LEAD_OWNER = "lead_owner"


def validate_condition(condition: dict | None) -> dict | None:
    """
    Check a step condition.

    Shape: ``{"score": {"gte": 30}, "source": "website"}``. A bare value
    means equality; an operator object may hold several operators, all of
    which must hold.
    """
    if condition is None:
        return None
    for field, expected in condition.items():
        if field not in ALLOWED_CONDITION_FIELDS:
            raise ValueError(f"Field '{field}' is not allowed. Allowed: {sorted(ALLOWED_CONDITION_FIELDS)}")
        if isinstance(expected, dict):
            if not expected:
                raise ValueError(f"Condition on '{field}' has no operators")
            unknown = set(expected) - CONDITION_OPERATORS
            if unknown:
                raise ValueError(f"Unknown operator(s) for '{field}': {sorted(unknown)}")
            for op in ("in", "not_in"):
                if op in expected and not isinstance(expected[op], list):
                    raise ValueError(f"'{op}' on '{field}' expects a list")
    return condition


# =============================================================================
# Steps
# =============================================================================

class NurtureStepCreate(BaseModel):
    """Append a step to a DRAFT sequence."""

    name: str = Field(..., min_length=1, max_length=200)
    delay_days: int = Field(0, ge=0, le=365)
    delay_hours: int = Field(0, ge=0, le=23)
    send_time: str | None = Field(None, pattern=r"^\d{2}:\d{2}$")
    action_type: NurtureActionType
    template_id: str | None = Field(None, max_length=100)
    task_title: str | None = Field(None, max_length=255)
    task_description: str | None = None
    task_assign_to: str | None = Field(None, max_length=100)
    score_change: int | None = None
    condition: dict | None = None

    @field_validator("condition")
    @classmethod
    def check_condition(cls, v: dict | None) -> dict | None:
        return validate_condition(v)

    @model_validator(mode="after")
    def check_action_payload(self):
        if self.action_type in (NurtureActionType.SEND_EMAIL, NurtureActionType.SEND_SMS) and not self.template_id:
            raise ValueError(f"{self.action_type.value} steps need a template_id")
        if self.action_type == NurtureActionType.CREATE_TASK and not self.task_title:
            raise ValueError("create_task steps need a task_title")
        if self.action_type == NurtureActionType.UPDATE_SCORE and not self.score_change:
            raise ValueError("update_score steps need a non-zero score_change")
        return self


class NurtureStepRead(BaseModel):
    id: UUID
    sequence_id: UUID
    step_number: int
    name: str
    delay_days: int
    delay_hours: int
    send_time: str | None
    action_type: NurtureActionType
    template_id: str | None
    task_title: str | None
    task_description: str | None
    task_assign_to: str | None
    score_change: int | None
    condition: dict | None

    model_config = {"from_attributes": True}


class StepReorder(BaseModel):
    step_ids: list[UUID] = Field(..., min_length=1)


# =============================================================================
# Sequences
# =============================================================================

class NurtureSequenceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    trigger_type: NurtureTriggerType = NurtureTriggerType.MANUAL
    trigger_value: str | None = Field(None, max_length=100)
    lead_sources: list[LeadSource] = Field(default_factory=list)
    min_score: int | None = Field(None, ge=0)
    max_score: int | None = Field(None, ge=0)
    exit_on_conversion: bool = True
    exit_on_unsubscribe: bool = True
    max_days: int | None = Field(None, ge=1)
    steps: list[NurtureStepCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_score_range(self):
        if self.min_score is not None and self.max_score is not None and self.min_score > self.max_score:
            raise ValueError("min_score cannot exceed max_score")
        return self


class NurtureSequenceStatusChange(BaseModel):
    status: NurtureSequenceStatus


class NurtureSequenceRead(BaseModel):
    id: UUID
    name: str
    description: str | None
    trigger_type: NurtureTriggerType
    trigger_value: str | None
    lead_sources: list[str]
    min_score: int | None
    max_score: int | None
    exit_on_conversion: bool
    exit_on_unsubscribe: bool
    max_days: int | None
    status: NurtureSequenceStatus
    activated_at: datetime | None
    created_at: datetime
    steps: list[NurtureStepRead] = []

    model_config = {"from_attributes": True}


# =============================================================================
# Enrollment
# =============================================================================

class EnrollLead(BaseModel):
    lead_id: UUID


class NurtureEnrollmentRead(BaseModel):
    id: UUID
    sequence_id: UUID
    lead_id: UUID
    status: NurtureEnrollmentStatus
    enrolled_at: datetime
    completed_at: datetime | None
    exited_at: datetime | None
    exit_reason: str | None

    model_config = {"from_attributes": True}


class NurtureAdvanceResult(BaseModel):
    """Counts from one driver pass."""

    processed: int = 0
    executed: int = 0
    skipped: int = 0
    failed: int = 0
    exited: int = 0
    completed: int = 0
