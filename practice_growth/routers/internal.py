"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from an external cron when the worker process is not running.
"""
from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from practice_growth.core.config import settings
from practice_growth.core.deps import get_db
from practice_growth.services import scheduled_service
from practice_growth.services.appointments import AppointmentSource, get_appointment_source
from practice_growth.services.audit_service import AuditSink, get_audit_sink
from practice_growth.services.messaging import MessageDispatcher, get_dispatcher
from practice_growth.services.nurture_engine import NurtureEngine


router = APIRouter(prefix="/internal/scheduled", tags=["internal"])


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


class NurtureRunResponse(BaseModel):
    organizations: int
    enrolled: int
    processed: int
    executed: int
    skipped: int
    failed: int
    exited: int
    completed: int


class ReviewDispatchResponse(BaseModel):
    organizations: int
    created: int
    sent: int
    failed: int


class MaintenanceResponse(BaseModel):
    organizations: int
    referrals_expired: int
    review_requests_expired: int
    campaigns_activated: int
    campaigns_completed: int
    leads_unresponsive: int


def _sum_over_orgs(db: Session, run) -> dict[str, int]:
    org_ids = scheduled_service.list_org_ids(db)
    totals: dict[str, int] = {"organizations": len(org_ids)}
    for org_id in org_ids:
        for key, value in run(org_id).items():
            totals[key] = totals.get(key, 0) + value
    return totals


@router.post("/nurture-advance", response_model=NurtureRunResponse, dependencies=[Depends(verify_internal_secret)])
def nurture_advance(
    db: Session = Depends(get_db),
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
):
    """Auto-enroll and advance nurture enrollments for every organization."""
    engine = NurtureEngine(dispatcher)
    totals = _sum_over_orgs(db, lambda org_id: scheduled_service.run_nurture(db, org_id, engine=engine))
    return NurtureRunResponse(**{field: totals.get(field, 0) for field in NurtureRunResponse.model_fields})


@router.post("/review-dispatch", response_model=ReviewDispatchResponse, dependencies=[Depends(verify_internal_secret)])
def review_dispatch(
    db: Session = Depends(get_db),
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
    source: AppointmentSource = Depends(get_appointment_source),
    audit: AuditSink = Depends(get_audit_sink),
):
    """Queue review requests for completed appointments, then send due requests, for every organization."""

    def run(org_id):
        created = scheduled_service.request_appointment_reviews(db, org_id, source=source, audit=audit)
        sent = scheduled_service.dispatch_review_requests(db, org_id, dispatcher=dispatcher, audit=audit)
        return {"created": created["created"], **sent}

    totals = _sum_over_orgs(db, run)
    return ReviewDispatchResponse(**{field: totals.get(field, 0) for field in ReviewDispatchResponse.model_fields})


@router.post("/maintenance", response_model=MaintenanceResponse, dependencies=[Depends(verify_internal_secret)])
def maintenance(db: Session = Depends(get_db), audit: AuditSink = Depends(get_audit_sink)):
    """Expiry sweeps, campaign schedule and unresponsive-lead detection for every organization."""
    totals = _sum_over_orgs(db, lambda org_id: scheduled_service.run_maintenance(db, org_id, audit=audit))
    return MaintenanceResponse(**{field: totals.get(field, 0) for field in MaintenanceResponse.model_fields})
