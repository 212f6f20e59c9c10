"""Tests for the scheduled drivers, dashboard, worker tick and CLI."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from click.testing import CliRunner
from sqlalchemy.orm import sessionmaker

from practice_growth import cli as cli_module
from practice_growth import worker
from practice_growth.db.enums import (
    CampaignStatus,
    CampaignType,
    LeadStatus,
    NurtureActionType,
    NurtureTriggerType,
    ReferralRewardType,
    ReferralStatus,
    ReviewRequestStatus,
)
from practice_growth.db.models import Organization
from practice_growth.schemas.campaign import CampaignCreate
from practice_growth.schemas.lead import LeadCreate
from practice_growth.schemas.nurture import NurtureSequenceCreate, NurtureStepCreate
from practice_growth.schemas.org import OrgCreate
from practice_growth.schemas.referral import ReferralCreate, ReferralLink, ReferralProgramCreate
from practice_growth.schemas.review import CompletedAppointment, ReviewRequestCreate
from practice_growth.services import (
    campaign_service,
    dashboard_service,
    lead_service,
    nurture_service,
    org_service,
    referral_service,
    review_service,
    scheduled_service,
)
from practice_growth.services.nurture_engine import NurtureEngine
from practice_growth.services.org_service import DuplicateOrgSlugError


@pytest.fixture
def program(db, test_org):
    return referral_service.create_program(
        db,
        test_org.id,
        ReferralProgramCreate(
            name="Refer a friend",
            referrer_reward_type=ReferralRewardType.CREDIT,
            referrer_reward_value=Decimal("40"),
            expiration_days=30,
        ),
    )


@pytest.fixture
def session_factory(engine, monkeypatch):
    """Point the worker and CLI at the per-test database."""
    factory = sessionmaker(bind=engine, autoflush=False)
    monkeypatch.setattr(worker, "SessionLocal", factory)
    monkeypatch.setattr(cli_module, "SessionLocal", factory)
    return factory


def _welcome_sequence(db, org_id, now):
    sequence = nurture_service.create_sequence(
        db,
        org_id,
        NurtureSequenceCreate(
            name="Welcome",
            trigger_type=NurtureTriggerType.LEAD_CREATED,
            steps=[NurtureStepCreate(name="Hello", action_type=NurtureActionType.SEND_EMAIL, template_id="hello")],
        ),
    )
    return nurture_service.activate_sequence(db, org_id, sequence.id, now=now)


# =============================================================================
# Organizations
# =============================================================================

def test_create_org_normalizes_slug_and_links(db):
    org = org_service.create_org(
        db,
        OrgCreate(name="Align Chiro", slug="Align-Chiro", review_links={"google": "https://g.page/r/align"}),
    )

    assert org.slug == "align-chiro"
    assert org.review_links == {"google": "https://g.page/r/align"}
    assert org_service.get_org_by_slug(db, "align-chiro").id == org.id


def test_create_org_duplicate_slug(db, test_org):
    with pytest.raises(DuplicateOrgSlugError):
        org_service.create_org(db, OrgCreate(name="Copy", slug=test_org.slug))


def test_org_rejects_unknown_timezone():
    with pytest.raises(ValueError):
        OrgCreate(name="Nowhere", slug="nowhere", timezone="Mars/Olympus_Mons")


# =============================================================================
# Maintenance
# =============================================================================

def test_run_maintenance_sweeps_every_component(db, test_org, now, program):
    referral = referral_service.create_referral(
        db, test_org.id, ReferralCreate(program_id=program.id, referrer_id=uuid.uuid4()), now=now
    )
    request = review_service.create_review_request(
        db, test_org.id, ReviewRequestCreate(patient_id=uuid.uuid4()), now=now
    )
    campaign = campaign_service.create_campaign(
        db,
        test_org.id,
        CampaignCreate(name="Summer", campaign_type=CampaignType.SMS, start_date=now + timedelta(days=1)),
    )
    campaign_service.update_status(db, test_org.id, campaign.id, CampaignStatus.SCHEDULED, now=now)
    lead, _ = lead_service.create_lead(db, test_org.id, LeadCreate(email="silent@example.com"), now=now)
    lead.contact_attempts = 3
    db.commit()

    result = scheduled_service.run_maintenance(db, test_org.id, now=now + timedelta(days=31))

    assert result == {
        "referrals_expired": 1,
        "review_requests_expired": 1,
        "campaigns_activated": 1,
        "campaigns_completed": 0,
        "leads_unresponsive": 1,
    }
    for row in (referral, request, campaign, lead):
        db.refresh(row)
    assert referral.status == ReferralStatus.EXPIRED.value
    assert request.status == ReviewRequestStatus.FAILED.value
    assert campaign.status == CampaignStatus.ACTIVE.value
    assert lead.status == LeadStatus.UNRESPONSIVE.value


def test_run_maintenance_is_repeatable(db, test_org, now, program):
    referral_service.create_referral(
        db, test_org.id, ReferralCreate(program_id=program.id, referrer_id=uuid.uuid4()), now=now
    )
    scheduled_service.run_maintenance(db, test_org.id, now=now + timedelta(days=31))

    again = scheduled_service.run_maintenance(db, test_org.id, now=now + timedelta(days=31))

    assert set(again.values()) == {0}


def test_run_nurture_enrolls_and_advances(db, test_org, now, dispatcher):
    _welcome_sequence(db, test_org.id, now)
    lead_service.create_lead(db, test_org.id, LeadCreate(email="new@example.com"), now=now + timedelta(minutes=1))

    result = scheduled_service.run_nurture(
        db, test_org.id, now=now + timedelta(minutes=5), engine=NurtureEngine(dispatcher)
    )

    assert result["enrolled"] == 1
    assert result["executed"] == 1
    assert result["completed"] == 1
    assert dispatcher.calls[0][:2] == ("email", "new@example.com")


# =============================================================================
# Dashboard
# =============================================================================

def test_dashboard_combines_components(db, test_org, now, program):
    referrer_id = uuid.uuid4()
    referral = referral_service.create_referral(
        db, test_org.id, ReferralCreate(program_id=program.id, referrer_id=referrer_id), now=now
    )
    referral_service.link_referee_patient(
        db, test_org.id, ReferralLink(referral_code=referral.referral_code, patient_id=uuid.uuid4()), now=now
    )
    referral_service.complete_referral(db, test_org.id, referral.id, now=now)
    lead_service.create_lead(db, test_org.id, LeadCreate(email="dash@example.com"), now=now)
    review_service.create_review_request(db, test_org.id, ReviewRequestCreate(patient_id=uuid.uuid4()), now=now)
    campaign = campaign_service.create_campaign(
        db, test_org.id, CampaignCreate(name="Open House", campaign_type=CampaignType.SOCIAL)
    )
    campaign_service.update_status(db, test_org.id, campaign.id, CampaignStatus.ACTIVE, now=now)

    dashboard = dashboard_service.get_marketing_dashboard(db, test_org.id, now=now)

    assert dashboard.referrals.completed == 1
    assert dashboard.referrals.total_referrer_rewards == Decimal("40")
    assert [r.referrer_id for r in dashboard.top_referrers] == [referrer_id]
    assert dashboard.leads.total == 1
    assert dashboard.reviews.total == 1
    assert dashboard.campaigns.active_campaigns == 1
    assert [c.campaign_id for c in dashboard.top_campaigns] == [campaign.id]


def test_dashboard_is_org_scoped(db, test_org, other_org, now):
    lead_service.create_lead(db, test_org.id, LeadCreate(email="mine@example.com"), now=now)

    dashboard = dashboard_service.get_marketing_dashboard(db, other_org.id, now=now)

    assert dashboard.leads.total == 0
    assert dashboard.top_campaigns == []


# =============================================================================
# Worker and CLI
# =============================================================================

def test_worker_run_once_handles_every_org(db, test_org, other_org, session_factory):
    assert worker.run_once() == 2


def test_worker_tick_dispatches_reviews(db, test_org, dispatcher):
    # The worker evaluates at the wall clock, so the request is created at it too.
    review_service.create_review_request(db, test_org.id, ReviewRequestCreate(patient_id=uuid.uuid4()))

    summary = worker.process_organization(db, test_org.id, dispatcher)

    assert summary["reviews"] == {"sent": 1, "failed": 0}
    assert set(summary) == {"maintenance", "nurture", "appointment_reviews", "reviews"}


def test_worker_tick_requests_reviews_for_finished_visits(db, test_org, dispatcher):
    visit = CompletedAppointment(
        appointment_id=uuid.uuid4(),
        patient_id=uuid.uuid4(),
        ended_at=datetime.now(timezone.utc) - timedelta(hours=3),
    )

    class OneVisit:
        def completed_between(self, org_id, start, end):
            return [visit]

    summary = worker.process_organization(db, test_org.id, dispatcher, source=OneVisit())

    assert summary["appointment_reviews"] == {"created": 1, "skipped": 0}
    assert summary["reviews"] == {"sent": 1, "failed": 0}
    [request] = review_service.list_patient_requests(db, test_org.id, visit.patient_id)
    assert request.triggered_by_appointment_id == visit.appointment_id
    assert request.status == ReviewRequestStatus.SENT.value


def test_cli_create_org(db, session_factory):
    runner = CliRunner()

    result = runner.invoke(
        cli_module.cli,
        ["create-org", "--name", "Back in Line", "--slug", "back-in-line", "--google-review-url", "https://g.page/r/bil"],
    )

    assert result.exit_code == 0, result.output
    assert "Created organization: Back in Line" in result.output
    org = db.query(Organization).filter_by(slug="back-in-line").one()
    assert org.review_links == {"google": "https://g.page/r/bil"}


def test_cli_create_org_rejects_bad_slug(session_factory):
    result = CliRunner().invoke(cli_module.cli, ["create-org", "--name", "Bad", "--slug", "bad slug!"])

    assert result.exit_code != 0


def test_cli_run_maintenance_for_one_org(test_org, session_factory):
    result = CliRunner().invoke(
        cli_module.cli, ["run-maintenance", "--org-slug", test_org.slug, "--now", "2026-04-05T12:00:00"]
    )

    assert result.exit_code == 0, result.output
    assert "referrals_expired=0" in result.output
    assert "Maintenance complete for 1 organization(s)" in result.output


def test_cli_unknown_org_slug(session_factory):
    result = CliRunner().invoke(cli_module.cli, ["advance-nurture", "--org-slug", "missing"])

    assert result.exit_code != 0
    assert "Organization not found" in result.output


def test_cli_advance_nurture(test_org, session_factory):
    result = CliRunner().invoke(cli_module.cli, ["advance-nurture"])

    assert result.exit_code == 0, result.output
    assert "enrolled=0 executed=0" in result.output
