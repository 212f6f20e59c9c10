"""Landing page endpoints - view and submission counters."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from practice_growth.core.deps import OrgContext, get_db, get_org_context
from practice_growth.schemas.campaign import LandingPageCreate, LandingPageRead
from practice_growth.services import landing_page_service
from practice_growth.services.audit_service import AuditSink, get_audit_sink

router = APIRouter(tags=["Landing Pages"])


@router.post("", response_model=LandingPageRead, status_code=status.HTTP_201_CREATED)
def create_landing_page(
    data: LandingPageCreate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return landing_page_service.create_landing_page(db, ctx.org_id, data, actor_user_id=ctx.user_id, audit=audit)


@router.get("", response_model=list[LandingPageRead])
def list_landing_pages(
    campaign_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return landing_page_service.list_landing_pages(db, ctx.org_id, campaign_id=campaign_id)


@router.get("/{page_ref}", response_model=LandingPageRead)
def get_landing_page(
    page_ref: str,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    """Look up a page by id or slug."""
    return landing_page_service.get_landing_page(db, ctx.org_id, page_ref)


@router.post("/{page_id}/view", response_model=LandingPageRead)
def track_view(
    page_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return landing_page_service.track_view(db, ctx.org_id, page_id)


@router.post("/{page_id}/submission", response_model=LandingPageRead)
def track_submission(
    page_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return landing_page_service.track_submission(db, ctx.org_id, page_id)
