"""Activity logging service - centralized lead activity tracking."""

from uuid import UUID
from sqlalchemy.orm import Session

from practice_growth.db.enums import LeadActivityType
from practice_growth.db.models import LeadActivity
from practice_growth.db.types import utcnow


def log_activity(
    db: Session,
    lead_id: UUID,
    organization_id: UUID,
    activity_type: LeadActivityType,
    description: str | None = None,
    actor_user_id: UUID | None = None,
    details: dict | None = None,
) -> LeadActivity:
    """
    Append a lead activity.

    Args:
        db: Database session
        lead_id: The lead this activity is for
        organization_id: Organization context
        activity_type: Type of activity (from LeadActivityType enum)
        description: Human-readable summary
        actor_user_id: User who performed the action (None for system)
        details: Type-specific details as JSON

    Returns:
        The created activity entry
    """
    activity = LeadActivity(
        lead_id=lead_id,
        organization_id=organization_id,
        activity_type=activity_type.value,
        description=description,
        actor_user_id=actor_user_id,
        details=_json_safe(details or {}),
        created_at=utcnow(),
    )
    db.add(activity)
    db.flush()  # Don't commit - let caller control transaction
    return activity


def _json_safe(details: dict) -> dict:
    return {
        key: (str(value) if isinstance(value, UUID) else value)
        for key, value in details.items()
    }


def log_status_changed(
    db: Session,
    lead_id: UUID,
    organization_id: UUID,
    old_status: str,
    new_status: str,
    actor_user_id: UUID | None = None,
    reason: str | None = None,
) -> LeadActivity:
    """Log a lead status transition."""
    details = {"from": old_status, "to": new_status}
    if reason:
        details["reason"] = reason
    return log_activity(
        db=db,
        lead_id=lead_id,
        organization_id=organization_id,
        activity_type=LeadActivityType.STATUS_CHANGED,
        description=f"Status changed from {old_status} to {new_status}",
        actor_user_id=actor_user_id,
        details=details,
    )


def log_score_changed(
    db: Session,
    lead_id: UUID,
    organization_id: UUID,
    factor: str,
    amount: int,
    new_score: int,
    actor_user_id: UUID | None = None,
) -> LeadActivity:
    """Log a score adjustment."""
    return log_activity(
        db=db,
        lead_id=lead_id,
        organization_id=organization_id,
        activity_type=LeadActivityType.SCORE_CHANGED,
        description=f"Score {amount:+d} ({factor})",
        actor_user_id=actor_user_id,
        details={"factor": factor, "amount": amount, "score": new_score},
    )
