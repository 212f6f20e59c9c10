"""Review request service - patient review funnel.

Status only moves forward: pending -> sent -> clicked -> reviewed, or to
declined/failed from any non-terminal state. Every transition is a
guarded update on the current status.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from practice_growth.core.config import settings
from practice_growth.core.exceptions import BadRequestError, ConflictError, NotFoundError
from practice_growth.core.structured_logging import build_log_context
from practice_growth.core.validators import require_date_window, require_rating, require_text
from practice_growth.db.enums import (
    ACTIVE_REVIEW_STATUSES,
    AuditAction,
    ReviewChannel,
    ReviewPlatform,
    ReviewRequestStatus,
)
from practice_growth.db.models import Organization, ReviewRequest
from practice_growth.db.types import utcnow
from practice_growth.repositories import OrganizationRepository, ReviewRequestRepository
from practice_growth.repositories.base import in_window
from practice_growth.schemas.review import (
    AppointmentReviewResult,
    CompletedAppointment,
    ReviewRequestCreate,
    ReviewStats,
)
from practice_growth.services import audit_service
from practice_growth.services.audit_service import AuditSink

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Request expired"


class ReviewRequestNotFoundError(NotFoundError):
    """Review request not found."""

    pass


class DuplicateReviewRequestError(ConflictError):
    """Patient already has an open review request inside the cooldown window."""

    pass


class ReviewTransitionConflictError(ConflictError):
    """Another request changed the review request first."""

    pass


class InvalidReviewTransitionError(BadRequestError):
    """Review request status does not allow this operation."""

    pass


# =============================================================================
# Create / read
# =============================================================================

def create_review_request(
    db: Session,
    org_id: UUID,
    data: ReviewRequestCreate,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> ReviewRequest:
    """
    Create a PENDING request.

    The review link comes from the request or the org's per-platform
    ``review_links``. Expiry counts from the scheduled send time.
    """
    now = now or utcnow()
    repo = ReviewRequestRepository(db)
    since = now - timedelta(days=settings.REVIEW_REQUEST_COOLDOWN_DAYS)
    if repo.recent_active_for_patient(org_id, data.patient_id, since):
        raise DuplicateReviewRequestError("Patient already has an open review request")

    platform = ReviewPlatform(data.platform).value
    review_url = data.review_url
    if not review_url:
        org = OrganizationRepository(db).get(org_id)
        review_url = (org.review_links or {}).get(platform) if org else None

    start = data.scheduled_for or now
    request = ReviewRequest(
        organization_id=org_id,
        patient_id=data.patient_id,
        platform=platform,
        status=ReviewRequestStatus.PENDING.value,
        review_url=review_url,
        triggered_by_appointment_id=data.triggered_by_appointment_id,
        scheduled_for=data.scheduled_for,
        expires_at=start + timedelta(days=settings.REVIEW_REQUEST_EXPIRY_DAYS),
        created_at=now,
        updated_at=now,
    )
    repo.add(request)
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.CREATE,
        entity_type="review_request",
        entity_id=request.id,
        actor_user_id=actor_user_id,
        changes={"patient_id": data.patient_id, "platform": platform},
    )
    return request


def get_review_request(db: Session, org_id: UUID, request_id: UUID) -> ReviewRequest:
    request = ReviewRequestRepository(db).get(org_id, request_id)
    if not request:
        raise ReviewRequestNotFoundError("Review request not found")
    return request


def list_requests(
    db: Session,
    org_id: UUID,
    status: ReviewRequestStatus | None = None,
    platform: ReviewPlatform | None = None,
    patient_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ReviewRequest], int]:
    criteria = []
    if status:
        criteria.append(ReviewRequest.status == ReviewRequestStatus(status).value)
    if platform:
        criteria.append(ReviewRequest.platform == ReviewPlatform(platform).value)
    if patient_id:
        criteria.append(ReviewRequest.patient_id == patient_id)

    repo = ReviewRequestRepository(db)
    total = repo.count(org_id, *criteria)
    items = repo.list(
        org_id,
        *criteria,
        order_by=(ReviewRequest.created_at.desc(), ReviewRequest.id),
        limit=limit,
        offset=offset,
    )
    return items, total


def list_patient_requests(db: Session, org_id: UUID, patient_id: UUID) -> list[ReviewRequest]:
    return ReviewRequestRepository(db).list(
        org_id,
        ReviewRequest.patient_id == patient_id,
        order_by=(ReviewRequest.created_at.desc(),),
    )


def get_pending_requests(db: Session, org_id: UUID, now: datetime | None = None, limit: int | None = None) -> list[ReviewRequest]:
    """PENDING requests that are due to send and not yet expired, oldest first."""
    return ReviewRequestRepository(db).pending_due(org_id, now or utcnow(), limit or settings.WORKER_BATCH_SIZE)


# =============================================================================
# Transitions
# =============================================================================

def _transition(
    db: Session,
    org_id: UUID,
    request: ReviewRequest,
    expected: list[str],
    target: ReviewRequestStatus,
    values: dict,
    now: datetime,
    actor_user_id: UUID | None,
    audit: AuditSink | None,
) -> ReviewRequest:
    old_status = request.status
    won = ReviewRequestRepository(db).compare_and_set(
        org_id, request.id, expected, {"status": target.value, "updated_at": now, **values}
    )
    if not won:
        db.rollback()
        raise ReviewTransitionConflictError("Review request changed by another request")
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.STATUS_CHANGE,
        entity_type="review_request",
        entity_id=request.id,
        actor_user_id=actor_user_id,
        changes={"from": old_status, "to": target.value, **{k: v for k, v in values.items() if k != "failure_reason"}},
    )
    return request


def send_review_request(
    db: Session,
    org_id: UUID,
    request_id: UUID,
    sent_via: ReviewChannel,
    message_id: str | None = None,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> ReviewRequest:
    """PENDING -> SENT, recording the channel and the provider's message id."""
    now = now or utcnow()
    request = get_review_request(db, org_id, request_id)
    if request.status != ReviewRequestStatus.PENDING.value:
        raise InvalidReviewTransitionError(f"Cannot send a {request.status} review request")
    if request.expires_at is not None and request.expires_at <= now:
        raise InvalidReviewTransitionError("Review request has expired")
    return _transition(
        db,
        org_id,
        request,
        [ReviewRequestStatus.PENDING.value],
        ReviewRequestStatus.SENT,
        {"sent_at": now, "sent_via": ReviewChannel(sent_via).value, "message_id": message_id},
        now,
        actor_user_id,
        audit,
    )


def track_click(
    db: Session,
    org_id: UUID,
    request_id: UUID,
    now: datetime | None = None,
    audit: AuditSink | None = None,
) -> ReviewRequest:
    """SENT -> CLICKED. Repeat clicks (or clicks after a review) change nothing."""
    now = now or utcnow()
    request = get_review_request(db, org_id, request_id)
    if request.status in (ReviewRequestStatus.CLICKED.value, ReviewRequestStatus.REVIEWED.value):
        return request
    if request.status != ReviewRequestStatus.SENT.value:
        raise InvalidReviewTransitionError(f"Cannot track a click on a {request.status} review request")
    try:
        return _transition(
            db,
            org_id,
            request,
            [ReviewRequestStatus.SENT.value],
            ReviewRequestStatus.CLICKED,
            {"clicked_at": now},
            now,
            None,
            audit,
        )
    except ReviewTransitionConflictError:
        if request.status in (ReviewRequestStatus.CLICKED.value, ReviewRequestStatus.REVIEWED.value):
            return request
        raise


def record_review(
    db: Session,
    org_id: UUID,
    request_id: UUID,
    rating: int | None = None,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> ReviewRequest:
    """
    SENT/CLICKED -> REVIEWED.

    Recording a review on an already-REVIEWED request returns it unchanged,
    keeping the first rating.
    """
    now = now or utcnow()
    rating = require_rating(rating)
    request = get_review_request(db, org_id, request_id)
    if request.status == ReviewRequestStatus.REVIEWED.value:
        return request
    expected = [ReviewRequestStatus.SENT.value, ReviewRequestStatus.CLICKED.value]
    if request.status not in expected:
        raise InvalidReviewTransitionError(f"Cannot record a review on a {request.status} review request")
    try:
        return _transition(
            db,
            org_id,
            request,
            expected,
            ReviewRequestStatus.REVIEWED,
            {"reviewed_at": now, "rating": rating},
            now,
            actor_user_id,
            audit,
        )
    except ReviewTransitionConflictError:
        if request.status == ReviewRequestStatus.REVIEWED.value:
            return request
        raise


def mark_declined(
    db: Session,
    org_id: UUID,
    request_id: UUID,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> ReviewRequest:
    now = now or utcnow()
    request = get_review_request(db, org_id, request_id)
    if request.status not in ACTIVE_REVIEW_STATUSES:
        raise InvalidReviewTransitionError(f"Cannot decline a {request.status} review request")
    return _transition(
        db,
        org_id,
        request,
        list(ACTIVE_REVIEW_STATUSES),
        ReviewRequestStatus.DECLINED,
        {"declined_at": now},
        now,
        actor_user_id,
        audit,
    )


def mark_failed(
    db: Session,
    org_id: UUID,
    request_id: UUID,
    reason: str,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> ReviewRequest:
    now = now or utcnow()
    reason = require_text(reason, "reason", max_length=1000)
    request = get_review_request(db, org_id, request_id)
    if request.status not in ACTIVE_REVIEW_STATUSES:
        raise InvalidReviewTransitionError(f"Cannot fail a {request.status} review request")
    return _transition(
        db,
        org_id,
        request,
        list(ACTIVE_REVIEW_STATUSES),
        ReviewRequestStatus.FAILED,
        {"failed_at": now, "failure_reason": reason},
        now,
        actor_user_id,
        audit,
    )


def expire_stale_requests(
    db: Session,
    org_id: UUID,
    now: datetime | None = None,
    audit: AuditSink | None = None,
) -> int:
    """Fail PENDING/SENT requests past ``expires_at``. Returns the count."""
    now = now or utcnow()
    repo = ReviewRequestRepository(db)
    expired: list[tuple[UUID, str]] = []
    for request in repo.list_stale(org_id, now):
        old_status = request.status
        if repo.compare_and_set(
            org_id,
            request.id,
            [ReviewRequestStatus.PENDING.value, ReviewRequestStatus.SENT.value],
            {
                "status": ReviewRequestStatus.FAILED.value,
                "failed_at": now,
                "failure_reason": EXPIRED_REASON,
                "updated_at": now,
            },
        ):
            expired.append((request.id, old_status))
    db.commit()

    for request_id, old_status in expired:
        audit_service.emit(
            audit,
            org_id=org_id,
            action=AuditAction.STATUS_CHANGE,
            entity_type="review_request",
            entity_id=request_id,
            changes={"from": old_status, "to": ReviewRequestStatus.FAILED.value, "reason": EXPIRED_REASON},
        )
    if expired:
        logger.info(
            "Expired %s review requests", len(expired), extra={"context": build_log_context(org_id=org_id)}
        )
    return len(expired)


# =============================================================================
# Appointment follow-up
# =============================================================================

def primary_platform(org: Organization | None) -> ReviewPlatform | None:
    """First platform, in declaration order, with a configured review link."""
    links = (org.review_links or {}) if org else {}
    for platform in ReviewPlatform:
        if links.get(platform.value):
            return platform
    return None


def process_appointment_reviews(
    db: Session,
    org_id: UUID,
    appointments: list[CompletedAppointment],
    now: datetime | None = None,
    delay_hours: int | None = None,
    audit: AuditSink | None = None,
) -> AppointmentReviewResult:
    """
    Create review requests for recently completed appointments.

    An appointment qualifies when it ended inside the lookback window and at
    least ``delay_hours`` ago. Patients who opted out of marketing, patients
    inside the cooldown window and appointments that already produced a
    request are skipped. Requests go to the org's primary platform.
    """
    now = now or utcnow()
    delay = settings.REVIEW_APPOINTMENT_DELAY_HOURS if delay_hours is None else delay_hours
    latest = now - timedelta(hours=delay)
    earliest = now - timedelta(hours=settings.REVIEW_APPOINTMENT_LOOKBACK_HOURS)
    result = AppointmentReviewResult()

    platform = primary_platform(OrganizationRepository(db).get(org_id))
    if platform is None:
        logger.warning(
            "No review link configured; appointment reviews skipped",
            extra={"context": build_log_context(org_id=org_id)},
        )
        result.skipped = len(appointments)
        return result

    requested = ReviewRequestRepository(db).appointment_ids_with_requests(
        org_id, [a.appointment_id for a in appointments]
    )
    for appointment in appointments:
        if (
            appointment.opted_out_marketing
            or appointment.appointment_id in requested
            or not earliest <= appointment.ended_at <= latest
        ):
            result.skipped += 1
            continue
        try:
            create_review_request(
                db,
                org_id,
                ReviewRequestCreate(
                    patient_id=appointment.patient_id,
                    platform=platform,
                    triggered_by_appointment_id=appointment.appointment_id,
                ),
                now=now,
                audit=audit,
            )
        except DuplicateReviewRequestError:
            result.skipped += 1
            continue
        requested.add(appointment.appointment_id)
        result.created += 1

    if result.created:
        logger.info(
            "Created %s review requests from appointments",
            result.created,
            extra={"context": build_log_context(org_id=org_id)},
        )
    return result


# =============================================================================
# Statistics
# =============================================================================

def get_statistics(
    db: Session,
    org_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
) -> ReviewStats:
    require_date_window(start, end, "start", "end")
    repo = ReviewRequestRepository(db)
    window = in_window(ReviewRequest.created_at, start, end)

    by_status = repo.grouped_counts(org_id, ReviewRequest.status, start, end)
    by_platform = repo.grouped_counts(org_id, ReviewRequest.platform, start, end)
    sent = repo.count(org_id, ReviewRequest.sent_at.is_not(None), *window)
    clicked = repo.count(org_id, ReviewRequest.clicked_at.is_not(None), *window)
    reviewed = by_status.get(ReviewRequestStatus.REVIEWED.value, 0)
    rated, average = repo.rating_summary(org_id, start, end)

    return ReviewStats(
        total=sum(by_status.values()),
        by_status=by_status,
        by_platform=by_platform,
        sent=sent,
        clicked=clicked,
        reviewed=reviewed,
        response_rate=round(reviewed / sent * 100, 2) if sent else 0.0,
        rated_reviews=rated,
        average_rating=round(average, 2) if average is not None else None,
    )
