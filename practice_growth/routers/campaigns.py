"""Campaigns router - CRUD, lifecycle and attribution metrics."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from practice_growth.core.deps import OrgContext, get_db, get_org_context
from practice_growth.db.enums import CampaignMetric, CampaignStatus, CampaignType
from practice_growth.schemas.campaign import (
    CampaignCreate,
    CampaignMetrics,
    CampaignRanking,
    CampaignRead,
    CampaignStats,
    CampaignStatusChange,
    CampaignUpdate,
    CounterIncrement,
    SpendUpdate,
)
from practice_growth.services import campaign_service
from practice_growth.services.audit_service import AuditSink, get_audit_sink
from practice_growth.utils.pagination import Page, PaginationParams, get_pagination

router = APIRouter(tags=["Campaigns"])


# =============================================================================
# Campaign CRUD
# =============================================================================

@router.post("", response_model=CampaignRead, status_code=status.HTTP_201_CREATED)
def create_campaign(
    data: CampaignCreate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Create a new campaign (draft status)."""
    return campaign_service.create_campaign(db, ctx.org_id, data, actor_user_id=ctx.user_id, audit=audit)


@router.get("", response_model=Page[CampaignRead])
def list_campaigns(
    status_filter: list[CampaignStatus] | None = Query(None, alias="status"),
    campaign_type: list[CampaignType] | None = Query(None),
    start_after: datetime | None = Query(None),
    start_before: datetime | None = Query(None),
    q: str | None = Query(None, max_length=100),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    items, total = campaign_service.list_campaigns(
        db,
        ctx.org_id,
        status=status_filter,
        campaign_type=campaign_type,
        start_after=start_after,
        start_before=start_before,
        search=q,
        limit=pagination.per_page,
        offset=pagination.offset,
    )
    return Page.create([CampaignRead.model_validate(c) for c in items], total, pagination)


@router.get("/stats", response_model=CampaignStats)
def campaign_stats(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return campaign_service.get_statistics(db, ctx.org_id, start, end)


@router.get("/top", response_model=list[CampaignRanking])
def top_campaigns(
    metric: CampaignMetric = Query(CampaignMetric.CONVERSIONS),
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return campaign_service.get_top_campaigns(db, ctx.org_id, metric=metric, limit=limit)


@router.get("/{campaign_id}", response_model=CampaignRead)
def get_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return campaign_service.get_campaign(db, ctx.org_id, campaign_id)


@router.patch("/{campaign_id}", response_model=CampaignRead)
def update_campaign(
    campaign_id: UUID,
    data: CampaignUpdate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return campaign_service.update_campaign(
        db, ctx.org_id, campaign_id, data, actor_user_id=ctx.user_id, audit=audit
    )


@router.patch("/{campaign_id}/status", response_model=CampaignRead)
def update_campaign_status(
    campaign_id: UUID,
    data: CampaignStatusChange,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return campaign_service.update_status(
        db, ctx.org_id, campaign_id, data.status, actor_user_id=ctx.user_id, audit=audit
    )


# =============================================================================
# Metrics
# =============================================================================

@router.post("/{campaign_id}/impressions", response_model=CampaignMetrics)
def record_impressions(
    campaign_id: UUID,
    data: CounterIncrement,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    campaign_service.record_impression(db, ctx.org_id, campaign_id, count=data.count)
    return campaign_service.get_metrics(db, ctx.org_id, campaign_id)


@router.post("/{campaign_id}/clicks", response_model=CampaignMetrics)
def record_clicks(
    campaign_id: UUID,
    data: CounterIncrement,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    campaign_service.record_click(db, ctx.org_id, campaign_id, count=data.count)
    return campaign_service.get_metrics(db, ctx.org_id, campaign_id)


@router.put("/{campaign_id}/spend", response_model=CampaignMetrics)
def update_spend(
    campaign_id: UUID,
    data: SpendUpdate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Set (not add to) the campaign's total spend."""
    campaign_service.update_spend(db, ctx.org_id, campaign_id, data.amount, actor_user_id=ctx.user_id, audit=audit)
    return campaign_service.get_metrics(db, ctx.org_id, campaign_id)


@router.get("/{campaign_id}/metrics", response_model=CampaignMetrics)
def get_metrics(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return campaign_service.get_metrics(db, ctx.org_id, campaign_id)
