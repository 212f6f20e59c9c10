"""Referral program and referral endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from practice_growth.core.deps import OrgContext, get_db, get_org_context
from practice_growth.db.enums import ReferralStatus
from practice_growth.schemas.referral import (
    ReferralComplete,
    ReferralCompletionRead,
    ReferralCreate,
    ReferralLink,
    ReferralProgramCreate,
    ReferralProgramRead,
    ReferralProgramUpdate,
    ReferralRead,
    ReferralRewardRead,
    ReferralStats,
    TopReferrer,
)
from practice_growth.services import referral_service
from practice_growth.services.audit_service import AuditSink, get_audit_sink
from practice_growth.services.referral_service import ReferralCompletion
from practice_growth.utils.pagination import Page, PaginationParams, get_pagination

programs_router = APIRouter(tags=["Referral Programs"])
router = APIRouter(tags=["Referrals"])


def _reward_read(reward) -> ReferralRewardRead | None:
    return ReferralRewardRead.model_validate(reward) if reward is not None else None


def _completion_read(result: ReferralCompletion) -> ReferralCompletionRead:
    return ReferralCompletionRead(
        referral=ReferralRead.model_validate(result.referral),
        referrer_reward=_reward_read(result.referrer_reward),
        referee_reward=_reward_read(result.referee_reward),
    )


# =============================================================================
# Programs
# =============================================================================

@programs_router.post("", response_model=ReferralProgramRead, status_code=status.HTTP_201_CREATED)
def create_program(
    data: ReferralProgramCreate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return referral_service.create_program(db, ctx.org_id, data, actor_user_id=ctx.user_id, audit=audit)


@programs_router.get("", response_model=list[ReferralProgramRead])
def list_programs(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return referral_service.list_programs(db, ctx.org_id, include_inactive=include_inactive)


@programs_router.get("/{program_id}", response_model=ReferralProgramRead)
def get_program(
    program_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return referral_service.get_program(db, ctx.org_id, program_id)


@programs_router.patch("/{program_id}", response_model=ReferralProgramRead)
def update_program(
    program_id: UUID,
    data: ReferralProgramUpdate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return referral_service.update_program(
        db, ctx.org_id, program_id, data, actor_user_id=ctx.user_id, audit=audit
    )


# =============================================================================
# Referrals
# =============================================================================

@router.post("", response_model=ReferralRead, status_code=status.HTTP_201_CREATED)
def create_referral(
    data: ReferralCreate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return referral_service.create_referral(db, ctx.org_id, data, actor_user_id=ctx.user_id, audit=audit)


@router.get("", response_model=Page[ReferralRead])
def list_referrals(
    status_filter: ReferralStatus | None = Query(None, alias="status"),
    program_id: UUID | None = Query(None),
    referrer_id: UUID | None = Query(None),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    items, total = referral_service.list_referrals(
        db,
        ctx.org_id,
        status=status_filter,
        program_id=program_id,
        referrer_id=referrer_id,
        limit=pagination.per_page,
        offset=pagination.offset,
    )
    return Page.create([ReferralRead.model_validate(r) for r in items], total, pagination)


@router.get("/stats", response_model=ReferralStats)
def referral_stats(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return referral_service.get_statistics(db, ctx.org_id, start, end)


@router.get("/top-referrers", response_model=list[TopReferrer])
def top_referrers(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return referral_service.get_top_referrers(db, ctx.org_id, start, end, limit=limit)


@router.get("/by-code/{code}", response_model=ReferralRead)
def get_referral_by_code(
    code: str,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return referral_service.get_referral_by_code(db, ctx.org_id, code, audit=audit)


@router.post("/link", response_model=ReferralRead)
def link_referee(
    data: ReferralLink,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Attach the referee's patient record (PENDING -> QUALIFIED)."""
    return referral_service.link_referee_patient(db, ctx.org_id, data, actor_user_id=ctx.user_id, audit=audit)


@router.get("/{referral_id}", response_model=ReferralRead)
def get_referral(
    referral_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return referral_service.get_referral(db, ctx.org_id, referral_id, audit=audit)


@router.post("/{referral_id}/complete", response_model=ReferralCompletionRead)
def complete_referral(
    referral_id: UUID,
    data: ReferralComplete | None = None,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Complete a QUALIFIED referral and issue rewards; safe to retry."""
    result = referral_service.complete_referral(
        db,
        ctx.org_id,
        referral_id,
        service_amount=data.service_amount if data else None,
        actor_user_id=ctx.user_id,
        audit=audit,
    )
    return _completion_read(result)


@router.post("/{referral_id}/cancel", response_model=ReferralRead)
def cancel_referral(
    referral_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return referral_service.cancel_referral(db, ctx.org_id, referral_id, actor_user_id=ctx.user_id, audit=audit)
