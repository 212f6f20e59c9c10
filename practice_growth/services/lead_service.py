"""Lead manager - capture, dedup, scoring, follow-ups and conversion.

A converted lead is terminal: it carries ``converted_patient_id`` and
accepts no further status writes. Converting a referral-sourced lead
completes the referral as a compensating follow-up step; a referral
failure is reported on the result and in the lead's activity trail, it
never undoes the conversion.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import case, or_, update
from sqlalchemy.orm import Session

from practice_growth.core.config import settings
from practice_growth.core.exceptions import BadRequestError, ConflictError, GrowthError, NotFoundError, ValidationError
from practice_growth.core.structured_logging import build_log_context
from practice_growth.core.validators import require_date_window, require_non_negative
from practice_growth.db.enums import (
    AuditAction,
    LeadActivityType,
    LeadSource,
    LeadStatus,
    ReferralStatus,
)
from practice_growth.db.models import Lead, LeadActivity
from practice_growth.db.types import utcnow
from practice_growth.repositories import LeadActivityRepository, LeadRepository
from practice_growth.schemas.lead import (
    ContactAttemptCreate,
    LeadCreate,
    LeadStats,
)
from practice_growth.schemas.referral import ReferralLink
from practice_growth.services import activity_service, audit_service, campaign_service, referral_service
from practice_growth.services.audit_service import AuditSink
from practice_growth.services.referral_service import ReferralCompletion
from practice_growth.utils.normalization import (
    normalize_email,
    normalize_name,
    normalize_phone,
    normalize_state,
)

logger = logging.getLogger(__name__)

# Default score adjustments per engagement signal.
SCORE_FACTORS: dict[str, int] = {
    "email_opened": 5,
    "link_clicked": 10,
    "form_submitted": 20,
    "phone_called": 15,
    "appointment_scheduled": 50,
    "visited_website": 2,
    "responded_to_message": 15,
    "no_response": -5,
    "unsubscribed": -50,
}

# Starting score by acquisition channel; unlisted sources start at 0.
SOURCE_BASE_SCORES: dict[str, int] = {
    LeadSource.REFERRAL.value: 20,
    LeadSource.WALK_IN.value: 15,
    LeadSource.PHONE_CALL.value: 15,
    LeadSource.PARTNER.value: 10,
    LeadSource.EVENT.value: 10,
    LeadSource.WEBSITE.value: 5,
}
CONTACT_INFO_SCORE = 5

# Fields a duplicate submission may fill in when the existing lead lacks them.
MERGEABLE_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "primary_concern",
    "preferred_contact",
    "preferred_times",
    "city",
    "state",
    "zip_code",
)


class LeadNotFoundError(NotFoundError):
    """Lead not found."""

    pass


class InvalidLeadTransitionError(BadRequestError):
    """Lead status does not allow this operation."""

    pass


class LeadConflictError(ConflictError):
    """Another request changed the lead first."""

    pass


@dataclass
class ConversionResult:
    """Lead conversion plus the outcome of the follow-up referral completion."""

    lead: Lead
    referral_completion: ReferralCompletion | None = None
    referral_error: str | None = None

    @property
    def referral_completed(self) -> bool:
        return self.referral_completion is not None


# =============================================================================
# Dedup strategies
# =============================================================================

class LeadDedupStrategy(Protocol):
    def find_duplicate(self, repo: LeadRepository, org_id: UUID, fields: dict) -> Lead | None: ...


class EmailOrPhoneDedup:
    """Same email (case-insensitive) or same normalized phone within the org."""

    def find_duplicate(self, repo: LeadRepository, org_id: UUID, fields: dict) -> Lead | None:
        if fields.get("email"):
            existing = repo.find_by_email(org_id, fields["email"])
            if existing:
                return existing
        if fields.get("phone"):
            return repo.find_by_phone(org_id, fields["phone"])
        return None


class NoDedup:
    """Every submission creates a new lead."""

    def find_duplicate(self, repo: LeadRepository, org_id: UUID, fields: dict) -> Lead | None:
        return None


default_dedup_strategy: LeadDedupStrategy = EmailOrPhoneDedup()


# =============================================================================
# Scoring
# =============================================================================

def initial_score(source: str, has_email: bool, has_phone: bool) -> tuple[int, dict[str, int]]:
    """Starting score and the factors that produced it."""
    factors = {"source": SOURCE_BASE_SCORES.get(source, 0)}
    if has_email:
        factors["has_email"] = CONTACT_INFO_SCORE
    if has_phone:
        factors["has_phone"] = CONTACT_INFO_SCORE
    return sum(factors.values()), factors


def apply_score_change(
    db: Session,
    org_id: UUID,
    lead: Lead,
    factor: str,
    amount: int,
    actor_user_id: UUID | None = None,
) -> int:
    """
    Add ``amount`` to the lead's score in SQL, floored at 0; flushes only.

    Returns the new score.
    """
    raw = Lead.score + amount
    db.execute(
        update(Lead)
        .where(Lead.id == lead.id, Lead.organization_id == org_id)
        .values(score=case((raw < 0, 0), else_=raw))
        .execution_options(synchronize_session=False)
    )
    db.expire(lead, ["score"])
    tally = dict(lead.score_factors or {})
    tally[factor] = tally.get(factor, 0) + amount
    lead.score_factors = tally
    db.flush()
    activity_service.log_score_changed(db, lead.id, org_id, factor, amount, lead.score, actor_user_id)
    return lead.score


def update_score(
    db: Session,
    org_id: UUID,
    lead_id: UUID,
    factor: str,
    amount: int | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> Lead:
    """Apply a named score factor (or an explicit amount for it)."""
    if amount is None:
        if factor not in SCORE_FACTORS:
            raise ValidationError(
                f"Unknown score factor '{factor}'; pass an explicit amount or one of: "
                + ", ".join(sorted(SCORE_FACTORS))
            )
        amount = SCORE_FACTORS[factor]
    lead = get_lead(db, org_id, lead_id)
    new_score = apply_score_change(db, org_id, lead, factor, amount, actor_user_id)
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.UPDATE,
        entity_type="lead",
        entity_id=lead.id,
        actor_user_id=actor_user_id,
        changes={"factor": factor, "amount": amount, "score": new_score},
    )
    return lead


# =============================================================================
# Capture
# =============================================================================

def _normalize_contact(data: LeadCreate) -> dict:
    fields = data.model_dump(exclude={"referral_code", "campaign_id"})
    try:
        fields["email"] = normalize_email(data.email)
        fields["phone"] = normalize_phone(data.phone)
        fields["state"] = normalize_state(data.state)
    except ValueError as exc:
        raise ValidationError(str(exc))
    fields["first_name"] = normalize_name(data.first_name)
    fields["last_name"] = normalize_name(data.last_name)
    fields["source"] = LeadSource(data.source).value
    if not (fields["email"] or fields["phone"] or fields["first_name"] or fields["last_name"]):
        raise ValidationError("A lead needs a name, email or phone")
    return fields


def _merge_duplicate(
    db: Session,
    org_id: UUID,
    existing: Lead,
    fields: dict,
    now: datetime,
    actor_user_id: UUID | None,
) -> list[str]:
    filled = []
    for name in MERGEABLE_FIELDS:
        if fields.get(name) and not getattr(existing, name):
            setattr(existing, name, fields[name])
            filled.append(name)
    if fields.get("notes"):
        stamp = now.isoformat(timespec="seconds")
        existing.notes = (
            f"{existing.notes}\n\n---\n{stamp}: {fields['notes']}" if existing.notes else fields["notes"]
        )
        filled.append("notes")
    activity_service.log_activity(
        db,
        existing.id,
        org_id,
        LeadActivityType.DUPLICATE_MERGED,
        description="Duplicate submission merged into existing lead",
        actor_user_id=actor_user_id,
        details={"filled_fields": filled, "source": fields["source"]},
    )
    return filled


def create_lead(
    db: Session,
    org_id: UUID,
    data: LeadCreate,
    now: datetime | None = None,
    dedup: LeadDedupStrategy | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> tuple[Lead, bool]:
    """
    Create a NEW lead, or merge into an existing duplicate.

    Returns ``(lead, created)``. Campaign attribution comes from an explicit
    ``campaign_id`` or the lead's ``utm_campaign``; a ``referral_code``
    links the referral and forces source REFERRAL.
    """
    now = now or utcnow()
    fields = _normalize_contact(data)

    campaign = None
    if data.campaign_id:
        campaign = campaign_service.get_campaign(db, org_id, data.campaign_id)
    elif data.utm_campaign:
        campaign = campaign_service.attribute_lead(db, org_id, data.utm_campaign)

    referral = None
    if data.referral_code:
        referral = referral_service.get_referral_by_code(db, org_id, data.referral_code, now=now)
        fields["source"] = LeadSource.REFERRAL.value

    repo = LeadRepository(db)
    existing = (dedup or default_dedup_strategy).find_duplicate(repo, org_id, fields)
    if existing:
        filled = _merge_duplicate(db, org_id, existing, fields, now, actor_user_id)
        if referral and existing.referral_id is None:
            existing.referral_id = referral.id
        db.commit()
        audit_service.emit(
            audit,
            org_id=org_id,
            action=AuditAction.UPDATE,
            entity_type="lead",
            entity_id=existing.id,
            actor_user_id=actor_user_id,
            changes={"merged_fields": filled},
        )
        return existing, False

    score, factors = initial_score(fields["source"], bool(fields["email"]), bool(fields["phone"]))
    lead = Lead(
        organization_id=org_id,
        status=LeadStatus.NEW.value,
        score=score,
        score_factors=factors,
        campaign_id=campaign.id if campaign else None,
        referral_id=referral.id if referral else None,
        created_at=now,
        updated_at=now,
        **fields,
    )
    if campaign:
        lead.utm_campaign = lead.utm_campaign or campaign.utm_campaign
        lead.utm_source = lead.utm_source or campaign.utm_source
        lead.utm_medium = lead.utm_medium or campaign.utm_medium
    repo.add(lead)
    activity_service.log_activity(
        db,
        lead.id,
        org_id,
        LeadActivityType.LEAD_CREATED,
        description="Lead was created",
        actor_user_id=actor_user_id,
        details={
            "source": lead.source,
            "campaign_id": lead.campaign_id,
            "referral_id": lead.referral_id,
            "score": score,
        },
    )
    if campaign:
        campaign_service.record_lead(db, org_id, campaign.id, commit=False)
    db.commit()

    logger.info(
        "Lead created",
        extra={"context": build_log_context(org_id=org_id, entity_type="lead", entity_id=lead.id)},
    )
    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.CREATE,
        entity_type="lead",
        entity_id=lead.id,
        actor_user_id=actor_user_id,
        changes={"source": lead.source, "campaign_id": lead.campaign_id, "referral_id": lead.referral_id},
    )
    return lead, True


# =============================================================================
# Reads
# =============================================================================

def get_lead(db: Session, org_id: UUID, lead_id: UUID) -> Lead:
    lead = LeadRepository(db).get(org_id, lead_id)
    if not lead:
        raise LeadNotFoundError("Lead not found")
    return lead


def list_leads(
    db: Session,
    org_id: UUID,
    status: list[LeadStatus] | None = None,
    source: list[LeadSource] | None = None,
    campaign_id: UUID | None = None,
    assigned_to_user_id: UUID | None = None,
    min_score: int | None = None,
    max_score: int | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Lead], int]:
    """List leads, hottest first."""
    criteria = []
    if status:
        criteria.append(Lead.status.in_([s.value for s in status]))
    if source:
        criteria.append(Lead.source.in_([s.value for s in source]))
    if campaign_id:
        criteria.append(Lead.campaign_id == campaign_id)
    if assigned_to_user_id:
        criteria.append(Lead.assigned_to_user_id == assigned_to_user_id)
    if min_score is not None:
        criteria.append(Lead.score >= min_score)
    if max_score is not None:
        criteria.append(Lead.score <= max_score)
    if search:
        pattern = f"%{search.strip()}%"
        criteria.append(
            or_(
                Lead.first_name.ilike(pattern),
                Lead.last_name.ilike(pattern),
                Lead.email.ilike(pattern),
                Lead.phone.ilike(pattern),
            )
        )

    repo = LeadRepository(db)
    total = repo.count(org_id, *criteria)
    items = repo.list(
        org_id,
        *criteria,
        order_by=(Lead.score.desc(), Lead.created_at.desc(), Lead.id),
        limit=limit,
        offset=offset,
    )
    return items, total


def list_activities(db: Session, org_id: UUID, lead_id: UUID) -> list[LeadActivity]:
    get_lead(db, org_id, lead_id)
    return LeadActivityRepository(db).list_for_lead(org_id, lead_id)


def get_follow_ups_due(
    db: Session,
    org_id: UUID,
    now: datetime | None = None,
    limit: int | None = None,
) -> list[Lead]:
    """Open leads whose follow-up time has passed, oldest first."""
    return LeadRepository(db).follow_ups_due(org_id, now or utcnow(), limit)


def get_statistics(
    db: Session,
    org_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
) -> LeadStats:
    require_date_window(start, end, "start", "end")
    repo = LeadRepository(db)
    by_status = repo.grouped_counts(org_id, Lead.status, start, end)
    by_source = repo.grouped_counts(org_id, Lead.source, start, end)
    total = sum(by_status.values())
    converted = by_status.get(LeadStatus.CONVERTED.value, 0)
    return LeadStats(
        total=total,
        by_status=by_status,
        by_source=by_source,
        converted=converted,
        conversion_rate=round(converted / total * 100, 2) if total else 0.0,
        average_score=round(repo.average_score(org_id, start, end), 2),
    )


# =============================================================================
# Status
# =============================================================================

def _ensure_not_converted(lead: Lead) -> None:
    if lead.status == LeadStatus.CONVERTED.value:
        raise InvalidLeadTransitionError("Converted leads cannot change status")


def update_status(
    db: Session,
    org_id: UUID,
    lead_id: UUID,
    new_status: LeadStatus,
    converted_patient_id: UUID | None = None,
    reason: str | None = None,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> Lead:
    """
    Change a lead's status and append a status activity.

    CONVERTED requires ``converted_patient_id`` and goes through
    ``convert_to_patient`` so referral and campaign effects apply.
    """
    now = now or utcnow()
    target = LeadStatus(new_status).value
    if target == LeadStatus.CONVERTED.value:
        if converted_patient_id is None:
            raise InvalidLeadTransitionError("converted_patient_id is required to convert a lead")
        return convert_to_patient(
            db, org_id, lead_id, converted_patient_id, now=now, actor_user_id=actor_user_id, audit=audit
        ).lead

    lead = get_lead(db, org_id, lead_id)
    _ensure_not_converted(lead)
    old_status = lead.status
    if old_status == target:
        return lead

    values: dict = {"status": target, "updated_at": now}
    if target in (LeadStatus.LOST.value, LeadStatus.UNRESPONSIVE.value):
        values["follow_up_at"] = None
    if not LeadRepository(db).compare_and_set(org_id, lead.id, [old_status], values):
        db.rollback()
        raise LeadConflictError("Lead status changed by another request")
    activity_service.log_status_changed(db, lead.id, org_id, old_status, target, actor_user_id, reason)
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.STATUS_CHANGE,
        entity_type="lead",
        entity_id=lead.id,
        actor_user_id=actor_user_id,
        changes={"from": old_status, "to": target},
    )
    return lead


def mark_unresponsive(
    db: Session,
    org_id: UUID,
    now: datetime | None = None,
    days_since_contact: int | None = None,
    min_attempts: int | None = None,
    audit: AuditSink | None = None,
) -> int:
    """Move open leads with repeated unanswered attempts to UNRESPONSIVE. Returns the count."""
    now = now or utcnow()
    cutoff = now - timedelta(days=days_since_contact or settings.LEAD_UNRESPONSIVE_DAYS)
    attempts = min_attempts or settings.LEAD_UNRESPONSIVE_MIN_ATTEMPTS

    repo = LeadRepository(db)
    moved: list[tuple[UUID, str]] = []
    for lead in repo.unresponsive_candidates(org_id, cutoff, attempts):
        old_status = lead.status
        if repo.compare_and_set(
            org_id,
            lead.id,
            [old_status],
            {"status": LeadStatus.UNRESPONSIVE.value, "follow_up_at": None, "updated_at": now},
        ):
            activity_service.log_status_changed(
                db, lead.id, org_id, old_status, LeadStatus.UNRESPONSIVE.value, reason="No response"
            )
            moved.append((lead.id, old_status))
    db.commit()

    for lead_id, old_status in moved:
        audit_service.emit(
            audit,
            org_id=org_id,
            action=AuditAction.STATUS_CHANGE,
            entity_type="lead",
            entity_id=lead_id,
            changes={"from": old_status, "to": LeadStatus.UNRESPONSIVE.value},
        )
    return len(moved)


# =============================================================================
# Engagement (no status change)
# =============================================================================

def log_contact_attempt(
    db: Session,
    org_id: UUID,
    lead_id: UUID,
    data: ContactAttemptCreate,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> Lead:
    """Record an outreach attempt and score the response."""
    now = now or utcnow()
    lead = get_lead(db, org_id, lead_id)
    reached = data.outcome == "reached"

    LeadRepository(db).increment(org_id, lead.id, contact_attempts=1)
    lead.last_contacted_at = now
    activity_service.log_activity(
        db,
        lead.id,
        org_id,
        LeadActivityType.CONTACT_ATTEMPT,
        description=f"{'Successful' if reached else 'Attempted'} {data.method} contact",
        actor_user_id=actor_user_id,
        details={"method": data.method, "outcome": data.outcome, "notes": data.notes},
    )
    factor = "responded_to_message" if reached else "no_response"
    apply_score_change(db, org_id, lead, factor, SCORE_FACTORS[factor], actor_user_id)
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.UPDATE,
        entity_type="lead",
        entity_id=lead.id,
        actor_user_id=actor_user_id,
        changes={"contact_method": data.method, "outcome": data.outcome},
    )
    return lead


def add_note(
    db: Session,
    org_id: UUID,
    lead_id: UUID,
    body: str,
    actor_user_id: UUID | None = None,
) -> LeadActivity:
    lead = get_lead(db, org_id, lead_id)
    text = body.strip()
    if not text:
        raise ValidationError("Note cannot be empty")
    activity = activity_service.log_activity(
        db,
        lead.id,
        org_id,
        LeadActivityType.NOTE_ADDED,
        description=text,
        actor_user_id=actor_user_id,
    )
    db.commit()
    return activity


def set_follow_up(
    db: Session,
    org_id: UUID,
    lead_id: UUID,
    follow_up_at: datetime | None,
    assign_to_user_id: UUID | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> Lead:
    """Schedule (or clear, with ``None``) the next follow-up."""
    lead = get_lead(db, org_id, lead_id)
    _ensure_not_converted(lead)
    lead.follow_up_at = follow_up_at
    if assign_to_user_id:
        lead.assigned_to_user_id = assign_to_user_id
    activity_service.log_activity(
        db,
        lead.id,
        org_id,
        LeadActivityType.FOLLOW_UP_SET,
        description="Follow-up cleared" if follow_up_at is None else "Follow-up scheduled",
        actor_user_id=actor_user_id,
        details={
            "follow_up_at": follow_up_at.isoformat() if follow_up_at else None,
            "assigned_to": assign_to_user_id,
        },
    )
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.UPDATE,
        entity_type="lead",
        entity_id=lead.id,
        actor_user_id=actor_user_id,
        changes={"follow_up_at": follow_up_at, "assigned_to_user_id": assign_to_user_id},
    )
    return lead


def unsubscribe(
    db: Session,
    org_id: UUID,
    lead_id: UUID,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> Lead:
    """Opt the lead out of marketing. Repeat calls keep the first opt-out time."""
    now = now or utcnow()
    lead = get_lead(db, org_id, lead_id)
    if lead.opted_out_at is not None:
        return lead

    lead.opted_out_at = now
    activity_service.log_activity(
        db,
        lead.id,
        org_id,
        LeadActivityType.UNSUBSCRIBED,
        description="Lead opted out of marketing",
        actor_user_id=actor_user_id,
    )
    apply_score_change(db, org_id, lead, "unsubscribed", SCORE_FACTORS["unsubscribed"], actor_user_id)
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.UPDATE,
        entity_type="lead",
        entity_id=lead.id,
        actor_user_id=actor_user_id,
        changes={"opted_out_at": now},
    )
    return lead


# =============================================================================
# Conversion
# =============================================================================

def _complete_lead_referral(
    db: Session,
    org_id: UUID,
    lead: Lead,
    patient_id: UUID,
    service_amount: Decimal | None,
    now: datetime,
    actor_user_id: UUID | None,
    audit: AuditSink | None,
) -> ReferralCompletion:
    referral = referral_service.get_referral(db, org_id, lead.referral_id, now=now, audit=audit)
    if referral.status == ReferralStatus.PENDING.value:
        referral_service.link_referee_patient(
            db,
            org_id,
            ReferralLink(referral_code=referral.referral_code, patient_id=patient_id),
            now=now,
            actor_user_id=actor_user_id,
            audit=audit,
        )
    return referral_service.complete_referral(
        db,
        org_id,
        referral.id,
        service_amount=service_amount,
        now=now,
        actor_user_id=actor_user_id,
        audit=audit,
    )


def convert_to_patient(
    db: Session,
    org_id: UUID,
    lead_id: UUID,
    patient_id: UUID,
    revenue: Decimal | int = 0,
    service_amount: Decimal | None = None,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> ConversionResult:
    """
    Mark the lead CONVERTED and cascade to its campaign and referral.

    The conversion (status, patient link, campaign conversion/revenue)
    commits first. Referral completion then runs as a separate step; if it
    fails the conversion stands, the failure is appended to the lead's
    activity trail, and ``referral_error`` carries the reason.

    Converting again to the same patient re-runs only the referral step,
    which is how an operator retries a failed referral completion.
    """
    now = now or utcnow()
    revenue = require_non_negative(revenue, "revenue")
    lead = get_lead(db, org_id, lead_id)

    if lead.status == LeadStatus.CONVERTED.value:
        if lead.converted_patient_id != patient_id:
            raise InvalidLeadTransitionError("Lead is already converted to a different patient")
    else:
        old_status = lead.status
        won = LeadRepository(db).compare_and_set(
            org_id,
            lead.id,
            [old_status],
            {
                "status": LeadStatus.CONVERTED.value,
                "converted_patient_id": patient_id,
                "converted_at": now,
                "follow_up_at": None,
                "updated_at": now,
            },
        )
        if not won:
            db.rollback()
            raise LeadConflictError("Lead status changed by another request")
        activity_service.log_activity(
            db,
            lead.id,
            org_id,
            LeadActivityType.CONVERTED,
            description="Lead converted to patient",
            actor_user_id=actor_user_id,
            details={"patient_id": patient_id, "from": old_status, "revenue": str(revenue)},
        )
        if lead.campaign_id:
            campaign_service.record_conversion(db, org_id, lead.campaign_id, revenue, commit=False)
        db.commit()
        audit_service.emit(
            audit,
            org_id=org_id,
            action=AuditAction.CONVERT,
            entity_type="lead",
            entity_id=lead.id,
            actor_user_id=actor_user_id,
            changes={"from": old_status, "to": LeadStatus.CONVERTED.value, "patient_id": patient_id},
        )

    result = ConversionResult(lead=lead)
    if lead.referral_id is None:
        return result

    try:
        result.referral_completion = _complete_lead_referral(
            db, org_id, lead, patient_id, service_amount, now, actor_user_id, audit
        )
    except GrowthError as exc:
        db.rollback()
        result.referral_error = f"{exc.code}: {exc.message}"
        logger.warning(
            "Referral completion failed after lead conversion: %s",
            exc.code,
            extra={"context": build_log_context(org_id=org_id, entity_type="lead", entity_id=lead.id)},
        )
        activity_service.log_activity(
            db,
            lead.id,
            org_id,
            LeadActivityType.REFERRAL_COMPLETION_FAILED,
            description="Referral could not be completed; needs manual reconciliation",
            actor_user_id=actor_user_id,
            details={"referral_id": lead.referral_id, "code": exc.code, "detail": exc.message},
        )
        db.commit()
    return result
