"""Scheduled driver entry points.

Each function handles one organization for one tick and is safe to call
repeatedly; the worker loop, the CLI and the internal HTTP endpoints all
go through here.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from practice_growth.core.config import settings
from practice_growth.core.exceptions import GrowthError
from practice_growth.core.structured_logging import build_log_context
from practice_growth.db.enums import ReviewChannel
from practice_growth.db.types import utcnow
from practice_growth.repositories import OrganizationRepository
from practice_growth.services import campaign_service, lead_service, referral_service, review_service
from practice_growth.services.appointments import AppointmentSource, default_appointment_source
from practice_growth.services.audit_service import AuditSink
from practice_growth.services.messaging import DispatchError, MessageDispatcher, default_dispatcher
from practice_growth.services.nurture_engine import NurtureEngine, engine as default_engine

logger = logging.getLogger(__name__)

REVIEW_TEMPLATE_ID = "review_request"


def list_org_ids(db: Session) -> list[UUID]:
    return [org.id for org in OrganizationRepository(db).list_all()]


def run_maintenance(
    db: Session,
    org_id: UUID,
    now: datetime | None = None,
    audit: AuditSink | None = None,
) -> dict[str, int]:
    """Expiry sweeps, campaign schedule and unresponsive-lead detection."""
    now = now or utcnow()
    campaigns = campaign_service.process_scheduled_campaigns(db, org_id, now=now, audit=audit)
    result = {
        "referrals_expired": referral_service.expire_stale_referrals(db, org_id, now=now, audit=audit),
        "review_requests_expired": review_service.expire_stale_requests(db, org_id, now=now, audit=audit),
        "campaigns_activated": campaigns["activated"],
        "campaigns_completed": campaigns["completed"],
        "leads_unresponsive": lead_service.mark_unresponsive(db, org_id, now=now, audit=audit),
    }
    logger.info(
        "Maintenance run %s",
        result,
        extra={"context": build_log_context(org_id=org_id)},
    )
    return result


def run_nurture(
    db: Session,
    org_id: UUID,
    now: datetime | None = None,
    engine: NurtureEngine | None = None,
) -> dict[str, int]:
    """Auto-enroll trigger-matched leads, then advance every active enrollment once."""
    now = now or utcnow()
    engine = engine or default_engine
    enrolled = engine.auto_enroll(db, org_id, now=now)
    advanced = engine.advance_due_leads(db, org_id, now=now)
    return {"enrolled": enrolled, **advanced.model_dump()}


def dispatch_review_requests(
    db: Session,
    org_id: UUID,
    now: datetime | None = None,
    dispatcher: MessageDispatcher | None = None,
    channel: ReviewChannel = ReviewChannel.EMAIL,
    limit: int | None = None,
    audit: AuditSink | None = None,
) -> dict[str, int]:
    """
    Hand due PENDING review requests to the dispatcher.

    The dispatcher resolves the patient's contact details from
    ``patient_id``; a ``DispatchError`` marks the request FAILED.
    """
    now = now or utcnow()
    dispatcher = dispatcher or default_dispatcher
    sent = failed = 0
    for request in review_service.get_pending_requests(db, org_id, now=now, limit=limit or settings.WORKER_BATCH_SIZE):
        request_id = request.id
        context = {
            "entity_type": "review_request",
            "entity_id": str(request_id),
            "patient_id": str(request.patient_id),
            "platform": request.platform,
            "review_url": request.review_url,
        }
        try:
            if channel == ReviewChannel.SMS:
                message_id = dispatcher.send_sms(org_id, str(request.patient_id), REVIEW_TEMPLATE_ID, context)
            else:
                message_id = dispatcher.send_email(org_id, str(request.patient_id), REVIEW_TEMPLATE_ID, context)
        except DispatchError as exc:
            try:
                review_service.mark_failed(db, org_id, request_id, str(exc) or "Dispatch failed", now=now, audit=audit)
                failed += 1
            except GrowthError as transition_error:
                logger.warning(
                    "Could not mark review request failed: %s",
                    transition_error.code,
                    extra={"context": build_log_context(org_id=org_id, entity_type="review_request", entity_id=request_id)},
                )
            continue

        try:
            review_service.send_review_request(
                db, org_id, request_id, channel, message_id=message_id, now=now, audit=audit
            )
            sent += 1
        except GrowthError as exc:
            logger.warning(
                "Review request changed during dispatch: %s",
                exc.code,
                extra={"context": build_log_context(org_id=org_id, entity_type="review_request", entity_id=request_id)},
            )
    return {"sent": sent, "failed": failed}


def request_appointment_reviews(
    db: Session,
    org_id: UUID,
    now: datetime | None = None,
    source: AppointmentSource | None = None,
    audit: AuditSink | None = None,
) -> dict[str, int]:
    """Pull recently completed appointments and queue review requests for them."""
    now = now or utcnow()
    source = source or default_appointment_source
    appointments = source.completed_between(
        org_id,
        now - timedelta(hours=settings.REVIEW_APPOINTMENT_LOOKBACK_HOURS),
        now - timedelta(hours=settings.REVIEW_APPOINTMENT_DELAY_HOURS),
    )
    result = review_service.process_appointment_reviews(db, org_id, appointments, now=now, audit=audit)
    return result.model_dump()
