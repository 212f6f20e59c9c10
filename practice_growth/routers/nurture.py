"""Nurture sequence endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from practice_growth.core.deps import OrgContext, get_db, get_org_context
from practice_growth.db.enums import NurtureSequenceStatus
from practice_growth.schemas.nurture import (
    EnrollLead,
    NurtureEnrollmentRead,
    NurtureSequenceCreate,
    NurtureSequenceRead,
    NurtureSequenceStatusChange,
    NurtureStepCreate,
    NurtureStepRead,
    StepReorder,
)
from practice_growth.services import nurture_service
from practice_growth.services.audit_service import AuditSink, get_audit_sink
from practice_growth.services.nurture_engine import engine

router = APIRouter(tags=["Nurture"])


# =============================================================================
# Sequences
# =============================================================================

@router.post("", response_model=NurtureSequenceRead, status_code=status.HTTP_201_CREATED)
def create_sequence(
    data: NurtureSequenceCreate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return nurture_service.create_sequence(db, ctx.org_id, data, actor_user_id=ctx.user_id, audit=audit)


@router.get("", response_model=list[NurtureSequenceRead])
def list_sequences(
    status_filter: NurtureSequenceStatus | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return nurture_service.list_sequences(db, ctx.org_id, status=status_filter)


@router.get("/{sequence_id}", response_model=NurtureSequenceRead)
def get_sequence(
    sequence_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return nurture_service.get_sequence(db, ctx.org_id, sequence_id)


@router.post("/{sequence_id}/activate", response_model=NurtureSequenceRead)
def activate_sequence(
    sequence_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return nurture_service.activate_sequence(db, ctx.org_id, sequence_id, actor_user_id=ctx.user_id, audit=audit)


@router.patch("/{sequence_id}/status", response_model=NurtureSequenceRead)
def update_sequence_status(
    sequence_id: UUID,
    data: NurtureSequenceStatusChange,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return nurture_service.update_sequence_status(
        db, ctx.org_id, sequence_id, data.status, actor_user_id=ctx.user_id, audit=audit
    )


# =============================================================================
# Steps (draft only)
# =============================================================================

@router.post("/{sequence_id}/steps", response_model=NurtureStepRead, status_code=status.HTTP_201_CREATED)
def add_step(
    sequence_id: UUID,
    data: NurtureStepCreate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return nurture_service.add_step(db, ctx.org_id, sequence_id, data, actor_user_id=ctx.user_id, audit=audit)


@router.put("/{sequence_id}/steps/order", response_model=list[NurtureStepRead])
def reorder_steps(
    sequence_id: UUID,
    data: StepReorder,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return nurture_service.reorder_steps(
        db, ctx.org_id, sequence_id, data.step_ids, actor_user_id=ctx.user_id, audit=audit
    )


# =============================================================================
# Enrollment
# =============================================================================

@router.post("/{sequence_id}/enroll", response_model=NurtureEnrollmentRead, status_code=status.HTTP_201_CREATED)
def enroll_lead(
    sequence_id: UUID,
    data: EnrollLead,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return engine.enroll_lead(db, ctx.org_id, data.lead_id, sequence_id, actor_user_id=ctx.user_id, audit=audit)


@router.post("/unenroll", response_model=NurtureEnrollmentRead)
def unenroll_lead(
    data: EnrollLead,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Take a lead out of whichever sequence it is in."""
    return engine.unenroll_lead(db, ctx.org_id, data.lead_id, actor_user_id=ctx.user_id, audit=audit)
