"""Tests for review request lifecycle, expiry and statistics."""
import uuid
from datetime import timedelta

import pytest

from practice_growth.core.exceptions import ValidationError
from practice_growth.db.enums import ReviewChannel, ReviewPlatform, ReviewRequestStatus
from practice_growth.db.models import Organization
from practice_growth.schemas.review import CompletedAppointment, ReviewRequestCreate
from practice_growth.services import review_service, scheduled_service
from practice_growth.services.review_service import (
    DuplicateReviewRequestError,
    InvalidReviewTransitionError,
    ReviewRequestNotFoundError,
    ReviewTransitionConflictError,
)


def _request(db, org_id, now, **fields):
    fields.setdefault("patient_id", uuid.uuid4())
    return review_service.create_review_request(db, org_id, ReviewRequestCreate(**fields), now=now)


def _sent(db, org_id, now, **fields):
    request = _request(db, org_id, now, **fields)
    return review_service.send_review_request(db, org_id, request.id, ReviewChannel.EMAIL, message_id="m-1", now=now)


# =============================================================================
# Create
# =============================================================================

def test_create_uses_org_review_link(db, test_org, now, audit_sink):
    request = review_service.create_review_request(
        db, test_org.id, ReviewRequestCreate(patient_id=uuid.uuid4()), now=now, audit=audit_sink
    )

    assert request.status == ReviewRequestStatus.PENDING.value
    assert request.platform == ReviewPlatform.GOOGLE.value
    assert request.review_url == "https://g.page/r/test-practice/review"
    assert request.expires_at == now + timedelta(days=7)
    assert audit_sink.actions("review_request") == ["create"]


def test_explicit_url_wins_and_missing_platform_link_is_empty(db, test_org, now):
    explicit = _request(db, test_org.id, now, review_url="https://example.com/review")
    yelp = _request(db, test_org.id, now, platform=ReviewPlatform.YELP)

    assert explicit.review_url == "https://example.com/review"
    assert yelp.review_url is None


def test_expiry_counts_from_scheduled_send(db, test_org, now):
    scheduled = now + timedelta(days=2)
    request = _request(db, test_org.id, now, scheduled_for=scheduled)

    assert request.expires_at == scheduled + timedelta(days=7)


def test_open_request_blocks_another_for_same_patient(db, test_org, now):
    patient_id = uuid.uuid4()
    _request(db, test_org.id, now, patient_id=patient_id)

    with pytest.raises(DuplicateReviewRequestError):
        _request(db, test_org.id, now + timedelta(days=3), patient_id=patient_id)


def test_cooldown_ends_after_window(db, test_org, now):
    patient_id = uuid.uuid4()
    _request(db, test_org.id, now, patient_id=patient_id)

    later = _request(db, test_org.id, now + timedelta(days=31), patient_id=patient_id)

    assert later.status == ReviewRequestStatus.PENDING.value


def test_finished_request_does_not_block(db, test_org, now):
    patient_id = uuid.uuid4()
    first = _request(db, test_org.id, now, patient_id=patient_id)
    review_service.mark_declined(db, test_org.id, first.id, now=now)

    second = _request(db, test_org.id, now + timedelta(hours=1), patient_id=patient_id)

    assert second.id != first.id


def test_requests_are_org_scoped(db, test_org, other_org, now):
    request = _request(db, test_org.id, now)

    with pytest.raises(ReviewRequestNotFoundError):
        review_service.get_review_request(db, other_org.id, request.id)


# =============================================================================
# Lifecycle
# =============================================================================

def test_full_lifecycle(db, test_org, now):
    request = _sent(db, test_org.id, now)
    assert request.status == ReviewRequestStatus.SENT.value
    assert request.sent_via == ReviewChannel.EMAIL.value
    assert request.message_id == "m-1"

    clicked = review_service.track_click(db, test_org.id, request.id, now=now + timedelta(hours=1))
    assert clicked.status == ReviewRequestStatus.CLICKED.value

    reviewed = review_service.record_review(db, test_org.id, request.id, rating=5, now=now + timedelta(hours=2))
    assert reviewed.status == ReviewRequestStatus.REVIEWED.value
    assert reviewed.rating == 5
    assert reviewed.reviewed_at == now + timedelta(hours=2)


def test_repeat_click_is_noop(db, test_org, now, audit_sink):
    request = _sent(db, test_org.id, now)
    review_service.track_click(db, test_org.id, request.id, now=now + timedelta(hours=1), audit=audit_sink)

    again = review_service.track_click(db, test_org.id, request.id, now=now + timedelta(hours=5), audit=audit_sink)

    assert again.clicked_at == now + timedelta(hours=1)
    assert audit_sink.actions("review_request") == ["status_change"]


def test_click_after_review_keeps_reviewed(db, test_org, now):
    request = _sent(db, test_org.id, now)
    review_service.record_review(db, test_org.id, request.id, rating=4, now=now)

    after = review_service.track_click(db, test_org.id, request.id, now=now + timedelta(hours=1))

    assert after.status == ReviewRequestStatus.REVIEWED.value
    assert after.clicked_at is None


def test_second_review_keeps_first_rating(db, test_org, now):
    request = _sent(db, test_org.id, now)
    review_service.record_review(db, test_org.id, request.id, rating=4, now=now)

    again = review_service.record_review(db, test_org.id, request.id, rating=1, now=now + timedelta(days=1))

    assert again.rating == 4


def test_review_without_send_is_rejected(db, test_org, now):
    request = _request(db, test_org.id, now)

    with pytest.raises(InvalidReviewTransitionError):
        review_service.record_review(db, test_org.id, request.id, rating=5, now=now)


def test_rating_out_of_range(db, test_org, now):
    request = _sent(db, test_org.id, now)

    with pytest.raises(ValidationError):
        review_service.record_review(db, test_org.id, request.id, rating=6, now=now)


def test_click_before_send_is_rejected(db, test_org, now):
    request = _request(db, test_org.id, now)

    with pytest.raises(InvalidReviewTransitionError):
        review_service.track_click(db, test_org.id, request.id, now=now)


def test_cannot_send_twice(db, test_org, now):
    request = _sent(db, test_org.id, now)

    with pytest.raises(InvalidReviewTransitionError):
        review_service.send_review_request(db, test_org.id, request.id, ReviewChannel.SMS, now=now)


def test_cannot_send_expired_request(db, test_org, now):
    request = _request(db, test_org.id, now)

    with pytest.raises(InvalidReviewTransitionError):
        review_service.send_review_request(
            db, test_org.id, request.id, ReviewChannel.EMAIL, now=now + timedelta(days=8)
        )


def test_decline_from_clicked(db, test_org, now):
    request = _sent(db, test_org.id, now)
    review_service.track_click(db, test_org.id, request.id, now=now)

    declined = review_service.mark_declined(db, test_org.id, request.id, now=now)

    assert declined.status == ReviewRequestStatus.DECLINED.value
    with pytest.raises(InvalidReviewTransitionError):
        review_service.mark_failed(db, test_org.id, request.id, "bounced", now=now)


def test_mark_failed_records_reason(db, test_org, now):
    request = _request(db, test_org.id, now)

    failed = review_service.mark_failed(db, test_org.id, request.id, "bounced", now=now)

    assert failed.status == ReviewRequestStatus.FAILED.value
    assert failed.failure_reason == "bounced"


def test_reviewed_request_cannot_be_declined(db, test_org, now):
    request = _sent(db, test_org.id, now)
    review_service.record_review(db, test_org.id, request.id, now=now)

    with pytest.raises(InvalidReviewTransitionError):
        review_service.mark_declined(db, test_org.id, request.id, now=now)


# =============================================================================
# Expiry
# =============================================================================

def test_expire_stale_requests(db, test_org, now):
    pending = _request(db, test_org.id, now)
    sent = _sent(db, test_org.id, now)
    clicked = _sent(db, test_org.id, now)
    review_service.track_click(db, test_org.id, clicked.id, now=now)
    fresh = _request(db, test_org.id, now + timedelta(days=5))

    expired = review_service.expire_stale_requests(db, test_org.id, now=now + timedelta(days=8))

    assert expired == 2
    for request in (pending, sent):
        db.refresh(request)
        assert request.status == ReviewRequestStatus.FAILED.value
        assert request.failure_reason == "Request expired"
    db.refresh(clicked)
    db.refresh(fresh)
    assert clicked.status == ReviewRequestStatus.CLICKED.value
    assert fresh.status == ReviewRequestStatus.PENDING.value


# =============================================================================
# Statistics
# =============================================================================

def test_statistics(db, test_org, now):
    reviewed = _sent(db, test_org.id, now)
    review_service.record_review(db, test_org.id, reviewed.id, rating=5, now=now)
    clicked = _sent(db, test_org.id, now, platform=ReviewPlatform.YELP)
    review_service.track_click(db, test_org.id, clicked.id, now=now)
    _request(db, test_org.id, now)

    stats = review_service.get_statistics(db, test_org.id)

    assert stats.total == 3
    assert stats.sent == 2
    assert stats.reviewed == 1
    assert stats.response_rate == 50.0
    assert stats.by_platform == {"google": 2, "yelp": 1}
    assert stats.rated_reviews == 1
    assert stats.average_rating == 5.0


def test_statistics_empty(db, test_org):
    stats = review_service.get_statistics(db, test_org.id)

    assert stats.total == 0
    assert stats.response_rate == 0.0
    assert stats.average_rating is None


# =============================================================================
# Dispatch
# =============================================================================

def test_dispatch_sends_due_requests(db, test_org, now, dispatcher):
    due = _request(db, test_org.id, now)
    later = _request(db, test_org.id, now, scheduled_for=now + timedelta(days=1))

    result = scheduled_service.dispatch_review_requests(db, test_org.id, now=now, dispatcher=dispatcher)

    assert result == {"sent": 1, "failed": 0}
    kind, target, context = dispatcher.calls[0]
    assert (kind, target) == ("email", str(due.patient_id))
    assert context["review_url"] == "https://g.page/r/test-practice/review"
    db.refresh(due)
    db.refresh(later)
    assert due.status == ReviewRequestStatus.SENT.value
    assert due.message_id == "email-1"
    assert later.status == ReviewRequestStatus.PENDING.value


def test_dispatch_failure_marks_request_failed(db, test_org, now, make_dispatcher):
    request = _request(db, test_org.id, now)

    result = scheduled_service.dispatch_review_requests(
        db, test_org.id, now=now, dispatcher=make_dispatcher(fail=("sms",)), channel=ReviewChannel.SMS
    )

    assert result == {"sent": 0, "failed": 1}
    db.refresh(request)
    assert request.status == ReviewRequestStatus.FAILED.value
    assert request.failure_reason == "sms provider unavailable"


# =============================================================================
# Concurrent writers
# =============================================================================

def test_concurrent_click_returns_first_click(db, second_session, test_org, now):
    request = _sent(db, test_org.id, now)
    # The second writer read the request while it was still SENT.
    review_service.get_review_request(second_session, test_org.id, request.id)

    review_service.track_click(db, test_org.id, request.id, now=now + timedelta(hours=1))
    late = review_service.track_click(second_session, test_org.id, request.id, now=now + timedelta(hours=2))

    assert late.status == ReviewRequestStatus.CLICKED.value
    assert late.clicked_at == now + timedelta(hours=1)


def test_concurrent_review_keeps_first_rating(db, second_session, test_org, now):
    request = _sent(db, test_org.id, now)
    review_service.get_review_request(second_session, test_org.id, request.id)

    review_service.record_review(db, test_org.id, request.id, rating=5, now=now)
    late = review_service.record_review(second_session, test_org.id, request.id, rating=2, now=now + timedelta(hours=1))

    assert late.status == ReviewRequestStatus.REVIEWED.value
    assert late.rating == 5


def test_concurrent_send_conflicts(db, second_session, test_org, now):
    request = _request(db, test_org.id, now)
    review_service.get_review_request(second_session, test_org.id, request.id)

    review_service.send_review_request(db, test_org.id, request.id, ReviewChannel.EMAIL, now=now)
    with pytest.raises(ReviewTransitionConflictError):
        review_service.send_review_request(second_session, test_org.id, request.id, ReviewChannel.SMS, now=now)


# =============================================================================
# Appointment follow-up
# =============================================================================

def _visit(now, hours_ago=3, **fields):
    fields.setdefault("appointment_id", uuid.uuid4())
    fields.setdefault("patient_id", uuid.uuid4())
    return CompletedAppointment(ended_at=now - timedelta(hours=hours_ago), **fields)


class FixedAppointments:
    """Appointment source returning the same visits for every window."""

    def __init__(self, appointments):
        self.appointments = appointments
        self.windows = []

    def completed_between(self, org_id, start, end):
        self.windows.append((start, end))
        return self.appointments


def test_completed_appointment_creates_request(db, test_org, now, audit_sink):
    visit = _visit(now)

    result = review_service.process_appointment_reviews(db, test_org.id, [visit], now=now, audit=audit_sink)

    assert (result.created, result.skipped) == (1, 0)
    [request] = review_service.list_patient_requests(db, test_org.id, visit.patient_id)
    assert request.triggered_by_appointment_id == visit.appointment_id
    assert request.platform == ReviewPlatform.GOOGLE.value
    assert request.review_url == "https://g.page/r/test-practice/review"
    assert audit_sink.actions("review_request") == ["create"]


def test_ineligible_appointments_are_skipped(db, test_org, now):
    cooling_patient = uuid.uuid4()
    _request(db, test_org.id, now - timedelta(days=3), patient_id=cooling_patient)
    visits = [
        _visit(now, opted_out_marketing=True),
        _visit(now, hours_ago=1),
        _visit(now, hours_ago=30),
        _visit(now, patient_id=cooling_patient),
    ]

    result = review_service.process_appointment_reviews(db, test_org.id, visits, now=now)

    assert (result.created, result.skipped) == (0, 4)


def test_appointment_is_only_requested_once(db, test_org, now):
    visit = _visit(now)
    review_service.process_appointment_reviews(db, test_org.id, [visit], now=now)

    again = review_service.process_appointment_reviews(db, test_org.id, [visit], now=now + timedelta(hours=1))

    assert (again.created, again.skipped) == (0, 1)
    assert len(review_service.list_patient_requests(db, test_org.id, visit.patient_id)) == 1


def test_appointment_reviews_need_a_review_link(db, test_org, now):
    test_org.review_links = {}
    db.commit()

    result = review_service.process_appointment_reviews(db, test_org.id, [_visit(now)], now=now)

    assert (result.created, result.skipped) == (0, 1)


def test_primary_platform_is_first_configured():
    org = Organization(review_links={"yelp": "https://yelp.example/r", "facebook": "https://fb.example/r"})

    assert review_service.primary_platform(org) == ReviewPlatform.FACEBOOK
    assert review_service.primary_platform(Organization(review_links={})) is None


def test_scheduled_appointment_reviews_use_the_source(db, test_org, now):
    source = FixedAppointments([_visit(now), _visit(now, opted_out_marketing=True)])

    summary = scheduled_service.request_appointment_reviews(db, test_org.id, now=now, source=source)

    assert summary == {"created": 1, "skipped": 1}
    assert source.windows == [(now - timedelta(hours=24), now - timedelta(hours=2))]
