"""Lead endpoints - capture, lifecycle, engagement and conversion."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from practice_growth.core.deps import OrgContext, get_db, get_org_context
from practice_growth.db.enums import LeadSource, LeadStatus
from practice_growth.schemas.lead import (
    ContactAttemptCreate,
    ConversionRead,
    FollowUpSet,
    LeadActivityRead,
    LeadConvert,
    LeadCreate,
    LeadCreateResult,
    LeadRead,
    LeadStats,
    LeadStatusChange,
    NoteCreate,
    ScoreUpdate,
)
from practice_growth.schemas.nurture import NurtureEnrollmentRead
from practice_growth.services import lead_service, nurture_service
from practice_growth.services.audit_service import AuditSink, get_audit_sink
from practice_growth.utils.pagination import Page, PaginationParams, get_pagination

router = APIRouter(tags=["Leads"])


@router.post("", response_model=LeadCreateResult)
def create_lead(
    data: LeadCreate,
    response: Response,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Capture a lead. A duplicate submission is merged and answered with 200 instead of 201."""
    lead, created = lead_service.create_lead(db, ctx.org_id, data, actor_user_id=ctx.user_id, audit=audit)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return LeadCreateResult(lead=LeadRead.model_validate(lead), created=created)


@router.get("", response_model=Page[LeadRead])
def list_leads(
    status_filter: list[LeadStatus] | None = Query(None, alias="status"),
    source: list[LeadSource] | None = Query(None),
    campaign_id: UUID | None = Query(None),
    assigned_to_user_id: UUID | None = Query(None),
    min_score: int | None = Query(None, ge=0),
    max_score: int | None = Query(None, ge=0),
    q: str | None = Query(None, max_length=100),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    items, total = lead_service.list_leads(
        db,
        ctx.org_id,
        status=status_filter,
        source=source,
        campaign_id=campaign_id,
        assigned_to_user_id=assigned_to_user_id,
        min_score=min_score,
        max_score=max_score,
        search=q,
        limit=pagination.per_page,
        offset=pagination.offset,
    )
    return Page.create([LeadRead.model_validate(lead) for lead in items], total, pagination)


@router.get("/follow-ups-due", response_model=list[LeadRead])
def follow_ups_due(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return lead_service.get_follow_ups_due(db, ctx.org_id, limit=limit)


@router.get("/stats", response_model=LeadStats)
def lead_stats(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return lead_service.get_statistics(db, ctx.org_id, start, end)


@router.get("/{lead_id}", response_model=LeadRead)
def get_lead(
    lead_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return lead_service.get_lead(db, ctx.org_id, lead_id)


@router.patch("/{lead_id}/status", response_model=LeadRead)
def update_status(
    lead_id: UUID,
    data: LeadStatusChange,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return lead_service.update_status(
        db,
        ctx.org_id,
        lead_id,
        data.status,
        converted_patient_id=data.converted_patient_id,
        reason=data.reason,
        actor_user_id=ctx.user_id,
        audit=audit,
    )


@router.post("/{lead_id}/contact-attempts", response_model=LeadRead)
def log_contact_attempt(
    lead_id: UUID,
    data: ContactAttemptCreate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return lead_service.log_contact_attempt(db, ctx.org_id, lead_id, data, actor_user_id=ctx.user_id, audit=audit)


@router.post("/{lead_id}/notes", response_model=LeadActivityRead, status_code=status.HTTP_201_CREATED)
def add_note(
    lead_id: UUID,
    data: NoteCreate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return lead_service.add_note(db, ctx.org_id, lead_id, data.body, actor_user_id=ctx.user_id)


@router.put("/{lead_id}/follow-up", response_model=LeadRead)
def set_follow_up(
    lead_id: UUID,
    data: FollowUpSet,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return lead_service.set_follow_up(
        db, ctx.org_id, lead_id, data.follow_up_at, actor_user_id=ctx.user_id, audit=audit
    )


@router.post("/{lead_id}/score", response_model=LeadRead)
def update_score(
    lead_id: UUID,
    data: ScoreUpdate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return lead_service.update_score(
        db, ctx.org_id, lead_id, data.factor, data.amount, actor_user_id=ctx.user_id, audit=audit
    )


@router.post("/{lead_id}/unsubscribe", response_model=LeadRead)
def unsubscribe(
    lead_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return lead_service.unsubscribe(db, ctx.org_id, lead_id, actor_user_id=ctx.user_id, audit=audit)


@router.post("/{lead_id}/convert", response_model=ConversionRead)
def convert_lead(
    lead_id: UUID,
    data: LeadConvert,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    """
    Convert a lead to a patient.

    A referral-sourced lead also completes its referral. If that fails the
    conversion still stands and ``referral_error`` explains why.
    """
    result = lead_service.convert_to_patient(
        db,
        ctx.org_id,
        lead_id,
        data.patient_id,
        revenue=data.revenue,
        service_amount=data.service_amount,
        actor_user_id=ctx.user_id,
        audit=audit,
    )
    return ConversionRead(
        lead=LeadRead.model_validate(result.lead),
        referral_completed=result.referral_completed,
        referral_error=result.referral_error,
    )


@router.get("/{lead_id}/activities", response_model=list[LeadActivityRead])
def list_activities(
    lead_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return lead_service.list_activities(db, ctx.org_id, lead_id)


@router.get("/{lead_id}/enrollments", response_model=list[NurtureEnrollmentRead])
def list_enrollments(
    lead_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    lead_service.get_lead(db, ctx.org_id, lead_id)
    return nurture_service.list_enrollment_history(db, ctx.org_id, lead_id)
