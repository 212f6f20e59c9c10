"""Tests for campaign lifecycle, metrics, ranking and landing pages."""
import re
from datetime import timedelta
from decimal import Decimal

import pytest

from practice_growth.core.exceptions import ValidationError
from practice_growth.db.enums import CampaignMetric, CampaignStatus, CampaignType
from practice_growth.schemas.campaign import CampaignCreate, CampaignUpdate, LandingPageCreate
from practice_growth.services import campaign_service, landing_page_service
from practice_growth.services.campaign_service import (
    CampaignNotFoundError,
    CampaignTransitionError,
    generate_utm_campaign,
)
from practice_growth.services.landing_page_service import DuplicateSlugError, conversion_rate

UTM_PATTERN = re.compile(r"^[a-z0-9-]{1,30}-[a-z0-9]{6}$")


def _campaign(db, org_id, name="Spring Adjustment Special", **fields):
    fields.setdefault("campaign_type", CampaignType.EMAIL)
    return campaign_service.create_campaign(db, org_id, CampaignCreate(name=name, **fields))


def _active(db, org_id, now, **fields):
    campaign = _campaign(db, org_id, **fields)
    return campaign_service.update_status(db, org_id, campaign.id, CampaignStatus.ACTIVE, now=now)


# =============================================================================
# Creation
# =============================================================================

def test_utm_campaign_format():
    utm = generate_utm_campaign("Spring Back-Pain Promo! With A Very Long Trailing Name")

    assert UTM_PATTERN.match(utm)
    assert utm.startswith("spring-back-pain-promo-with-a")


def test_create_starts_in_draft(db, test_org, audit_sink):
    campaign = campaign_service.create_campaign(
        db,
        test_org.id,
        CampaignCreate(name="  Open House  ", campaign_type=CampaignType.SOCIAL, budget=Decimal("500")),
        audit=audit_sink,
    )

    assert campaign.status == CampaignStatus.DRAFT.value
    assert campaign.name == "Open House"
    assert UTM_PATTERN.match(campaign.utm_campaign)
    assert campaign.utm_campaign.startswith("open-house-")
    assert audit_sink.actions("campaign") == ["create"]


def test_create_rejects_negative_budget(db, test_org):
    with pytest.raises(ValidationError):
        _campaign(db, test_org.id, budget=Decimal("-1"))


def test_create_rejects_reversed_dates(db, test_org, now):
    with pytest.raises(ValidationError):
        _campaign(db, test_org.id, start_date=now, end_date=now - timedelta(days=1))


def test_update_keeps_utm(db, test_org):
    campaign = _campaign(db, test_org.id)
    utm = campaign.utm_campaign

    updated = campaign_service.update_campaign(db, test_org.id, campaign.id, CampaignUpdate(name="Renamed"))

    assert updated.name == "Renamed"
    assert updated.utm_campaign == utm


def test_terminal_campaign_is_read_only(db, test_org, now):
    campaign = _campaign(db, test_org.id)
    campaign_service.update_status(db, test_org.id, campaign.id, CampaignStatus.CANCELLED, now=now)

    with pytest.raises(CampaignTransitionError):
        campaign_service.update_campaign(db, test_org.id, campaign.id, CampaignUpdate(name="Again"))


def test_campaigns_are_org_scoped(db, test_org, other_org):
    campaign = _campaign(db, test_org.id)

    with pytest.raises(CampaignNotFoundError):
        campaign_service.get_campaign(db, other_org.id, campaign.id)


def test_list_filters_and_search(db, test_org, now):
    _campaign(db, test_org.id, name="Back Pain Webinar")
    _active(db, test_org.id, now, name="Posture Check")

    active, total = campaign_service.list_campaigns(db, test_org.id, status=[CampaignStatus.ACTIVE])
    found, _ = campaign_service.list_campaigns(db, test_org.id, search="webinar")

    assert total == 1
    assert active[0].name == "Posture Check"
    assert [c.name for c in found] == ["Back Pain Webinar"]


# =============================================================================
# Status transitions
# =============================================================================

def test_activation_stamps_start_date(db, test_org, now):
    campaign = _active(db, test_org.id, now)

    assert campaign.status == CampaignStatus.ACTIVE.value
    assert campaign.start_date == now


def test_completion_stamps_end_date(db, test_org, now):
    campaign = _active(db, test_org.id, now)

    completed = campaign_service.update_status(
        db, test_org.id, campaign.id, CampaignStatus.COMPLETED, now=now + timedelta(days=30)
    )

    assert completed.end_date == now + timedelta(days=30)


@pytest.mark.parametrize(
    "path, blocked",
    [
        ([], CampaignStatus.PAUSED),
        ([CampaignStatus.ACTIVE], CampaignStatus.DRAFT),
        ([CampaignStatus.ACTIVE, CampaignStatus.COMPLETED], CampaignStatus.ACTIVE),
        ([CampaignStatus.CANCELLED], CampaignStatus.DRAFT),
    ],
)
def test_invalid_transitions(db, test_org, now, path, blocked):
    campaign = _campaign(db, test_org.id)
    for status in path:
        campaign_service.update_status(db, test_org.id, campaign.id, status, now=now)

    with pytest.raises(CampaignTransitionError):
        campaign_service.update_status(db, test_org.id, campaign.id, blocked, now=now)


def test_same_status_is_noop(db, test_org, now, audit_sink):
    campaign = _active(db, test_org.id, now)

    campaign_service.update_status(db, test_org.id, campaign.id, CampaignStatus.ACTIVE, now=now, audit=audit_sink)

    assert audit_sink.events == []


def test_process_scheduled_campaigns(db, test_org, now):
    due = _campaign(db, test_org.id, name="Due", start_date=now - timedelta(hours=1))
    campaign_service.update_status(db, test_org.id, due.id, CampaignStatus.SCHEDULED, now=now)
    future = _campaign(db, test_org.id, name="Future", start_date=now + timedelta(days=3))
    campaign_service.update_status(db, test_org.id, future.id, CampaignStatus.SCHEDULED, now=now)
    ending = _campaign(db, test_org.id, name="Ending", end_date=now - timedelta(minutes=1))
    campaign_service.update_status(db, test_org.id, ending.id, CampaignStatus.ACTIVE, now=now - timedelta(days=1))

    result = campaign_service.process_scheduled_campaigns(db, test_org.id, now=now)

    assert result == {"activated": 1, "completed": 1}
    db.refresh(due)
    db.refresh(future)
    db.refresh(ending)
    assert due.status == CampaignStatus.ACTIVE.value
    assert due.start_date == now - timedelta(hours=1)
    assert future.status == CampaignStatus.SCHEDULED.value
    assert ending.status == CampaignStatus.COMPLETED.value


# =============================================================================
# Metrics
# =============================================================================

def test_metrics_are_ratios(db, test_org, now):
    campaign = _active(db, test_org.id, now)
    campaign_service.record_impression(db, test_org.id, campaign.id, count=1000)
    campaign_service.record_click(db, test_org.id, campaign.id, count=50)
    for _ in range(4):
        campaign_service.record_lead(db, test_org.id, campaign.id)
    campaign_service.record_conversion(db, test_org.id, campaign.id, revenue=Decimal("600"))
    campaign_service.update_spend(db, test_org.id, campaign.id, Decimal("200"))

    metrics = campaign_service.get_metrics(db, test_org.id, campaign.id)

    assert metrics.ctr == pytest.approx(0.05)
    assert metrics.conversion_rate == pytest.approx(0.25)
    assert metrics.cost_per_lead == pytest.approx(50.0)
    assert metrics.cost_per_conversion == pytest.approx(200.0)
    assert metrics.roi == pytest.approx(2.0)


def test_metrics_undefined_without_denominators(db, test_org):
    campaign = _campaign(db, test_org.id)

    metrics = campaign_service.get_metrics(db, test_org.id, campaign.id)

    assert metrics.ctr is None
    assert metrics.conversion_rate is None
    assert metrics.cost_per_lead is None
    assert metrics.roi is None


def test_spend_is_set_not_added(db, test_org):
    campaign = _campaign(db, test_org.id)
    campaign_service.update_spend(db, test_org.id, campaign.id, Decimal("100"))

    updated = campaign_service.update_spend(db, test_org.id, campaign.id, Decimal("40"))

    assert updated.spend == Decimal("40")


def test_counter_rejects_non_positive_count(db, test_org):
    campaign = _campaign(db, test_org.id)

    with pytest.raises(ValidationError):
        campaign_service.record_click(db, test_org.id, campaign.id, count=0)


def test_top_campaigns_ranking(db, test_org, now):
    early = _active(db, test_org.id, now - timedelta(days=10), name="Early")
    late = _active(db, test_org.id, now, name="Late")
    best = _active(db, test_org.id, now, name="Best")
    draft = _campaign(db, test_org.id, name="Draft")
    for campaign, conversions in ((early, 2), (late, 2), (best, 5), (draft, 9)):
        for _ in range(conversions):
            campaign_service.record_conversion(db, test_org.id, campaign.id)

    ranking = campaign_service.get_top_campaigns(db, test_org.id, CampaignMetric.CONVERSIONS, limit=5)

    assert [r.name for r in ranking] == ["Best", "Early", "Late"]
    assert ranking[0].value == 5.0


def test_top_campaigns_by_roi_puts_unspent_last(db, test_org, now):
    unspent = _active(db, test_org.id, now - timedelta(days=5), name="Unspent")
    losing = _active(db, test_org.id, now, name="Losing")
    campaign_service.update_spend(db, test_org.id, losing.id, Decimal("100"))
    campaign_service.record_conversion(db, test_org.id, losing.id, revenue=Decimal("50"))
    campaign_service.record_conversion(db, test_org.id, unspent.id, revenue=Decimal("500"))

    ranking = campaign_service.get_top_campaigns(db, test_org.id, CampaignMetric.ROI)

    assert [(r.name, r.value) for r in ranking] == [("Losing", pytest.approx(-0.5)), ("Unspent", None)]


def test_statistics(db, test_org, now):
    first = _active(db, test_org.id, now, budget=Decimal("300"))
    second = _campaign(db, test_org.id, name="Second", budget=Decimal("200"))
    campaign_service.update_spend(db, test_org.id, first.id, Decimal("100"))
    campaign_service.record_lead(db, test_org.id, first.id)
    campaign_service.record_lead(db, test_org.id, second.id)
    campaign_service.record_conversion(db, test_org.id, first.id, revenue=Decimal("250"))

    stats = campaign_service.get_statistics(db, test_org.id)

    assert stats.total_campaigns == 2
    assert stats.active_campaigns == 1
    assert stats.total_budget == Decimal("500")
    assert stats.total_leads == 2
    assert stats.overall_cost_per_lead == pytest.approx(50.0)
    assert stats.overall_roi == pytest.approx(1.5)


# =============================================================================
# Landing pages
# =============================================================================

def test_conversion_rate():
    assert conversion_rate(0, 0) == Decimal("0")
    assert conversion_rate(3, 1) == Decimal("0.3333")


def test_landing_page_tracking(db, test_org):
    page = landing_page_service.create_landing_page(
        db, test_org.id, LandingPageCreate(name="Free Posture Screening")
    )
    assert page.slug == "free-posture-screening"

    for _ in range(4):
        landing_page_service.track_view(db, test_org.id, page.id)
    tracked = landing_page_service.track_submission(db, test_org.id, page.id)

    assert (tracked.views, tracked.submissions) == (4, 1)
    assert tracked.conversion_rate == Decimal("0.25")


def test_landing_page_lookup_by_slug(db, test_org):
    page = landing_page_service.create_landing_page(
        db, test_org.id, LandingPageCreate(name="Screening", slug="Spring Screening")
    )

    assert landing_page_service.get_landing_page(db, test_org.id, "spring-screening").id == page.id
    assert landing_page_service.get_landing_page(db, test_org.id, str(page.id)).id == page.id


def test_landing_page_duplicate_slug(db, test_org):
    landing_page_service.create_landing_page(db, test_org.id, LandingPageCreate(name="Screening"))

    with pytest.raises(DuplicateSlugError):
        landing_page_service.create_landing_page(db, test_org.id, LandingPageCreate(name="Other", slug="screening"))


def test_landing_page_campaign_must_exist_in_org(db, test_org, other_org):
    campaign = _campaign(db, other_org.id)

    with pytest.raises(CampaignNotFoundError):
        landing_page_service.create_landing_page(
            db, test_org.id, LandingPageCreate(name="Borrowed", campaign_id=campaign.id)
        )
