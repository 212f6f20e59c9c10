"""Review request endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from practice_growth.core.deps import OrgContext, get_db, get_org_context
from practice_growth.db.enums import ReviewPlatform, ReviewRequestStatus
from practice_growth.schemas.review import (
    ReviewFailure,
    ReviewRecord,
    ReviewRequestCreate,
    ReviewRequestRead,
    ReviewSend,
    ReviewStats,
)
from practice_growth.services import review_service
from practice_growth.services.audit_service import AuditSink, get_audit_sink
from practice_growth.utils.pagination import Page, PaginationParams, get_pagination

router = APIRouter(tags=["Reviews"])


@router.post("", response_model=ReviewRequestRead, status_code=status.HTTP_201_CREATED)
def create_review_request(
    data: ReviewRequestCreate,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return review_service.create_review_request(db, ctx.org_id, data, actor_user_id=ctx.user_id, audit=audit)


@router.get("", response_model=Page[ReviewRequestRead])
def list_review_requests(
    status_filter: ReviewRequestStatus | None = Query(None, alias="status"),
    platform: ReviewPlatform | None = Query(None),
    patient_id: UUID | None = Query(None),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    items, total = review_service.list_requests(
        db,
        ctx.org_id,
        status=status_filter,
        platform=platform,
        patient_id=patient_id,
        limit=pagination.per_page,
        offset=pagination.offset,
    )
    return Page.create([ReviewRequestRead.model_validate(r) for r in items], total, pagination)


@router.get("/stats", response_model=ReviewStats)
def review_stats(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return review_service.get_statistics(db, ctx.org_id, start, end)


@router.get("/{request_id}", response_model=ReviewRequestRead)
def get_review_request(
    request_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return review_service.get_review_request(db, ctx.org_id, request_id)


@router.post("/{request_id}/send", response_model=ReviewRequestRead)
def send_review_request(
    request_id: UUID,
    data: ReviewSend,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return review_service.send_review_request(
        db, ctx.org_id, request_id, data.sent_via, message_id=data.message_id, actor_user_id=ctx.user_id, audit=audit
    )


@router.post("/{request_id}/click", response_model=ReviewRequestRead)
def track_click(
    request_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return review_service.track_click(db, ctx.org_id, request_id, audit=audit)


@router.post("/{request_id}/review", response_model=ReviewRequestRead)
def record_review(
    request_id: UUID,
    data: ReviewRecord | None = None,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Record that the patient left a review; repeat calls return the first record."""
    return review_service.record_review(
        db, ctx.org_id, request_id, rating=data.rating if data else None, actor_user_id=ctx.user_id, audit=audit
    )


@router.post("/{request_id}/decline", response_model=ReviewRequestRead)
def decline_review_request(
    request_id: UUID,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return review_service.mark_declined(db, ctx.org_id, request_id, actor_user_id=ctx.user_id, audit=audit)


@router.post("/{request_id}/fail", response_model=ReviewRequestRead)
def fail_review_request(
    request_id: UUID,
    data: ReviewFailure,
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
    audit: AuditSink = Depends(get_audit_sink),
):
    return review_service.mark_failed(db, ctx.org_id, request_id, data.reason, actor_user_id=ctx.user_id, audit=audit)
