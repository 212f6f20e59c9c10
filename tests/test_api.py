"""HTTP-level tests: tenant headers, error mapping and end-to-end flows."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from practice_growth.core.config import settings
from practice_growth.main import app
from practice_growth.schemas.review import CompletedAppointment
from practice_growth.services.appointments import get_appointment_source


# =============================================================================
# Health and tenant context
# =============================================================================

@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_org_header_is_unauthorized(client: AsyncClient):
    response = await client.get("/leads")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_malformed_org_header_is_unauthorized(client: AsyncClient):
    response = await client.get("/leads", headers={"X-Organization-ID": "not-a-uuid"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_org_is_not_found(client: AsyncClient):
    response = await client.get("/leads", headers={"X-Organization-ID": str(uuid.uuid4())})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_other_tenant_sees_not_found(client: AsyncClient, test_org, other_org):
    created = await client.post(
        "/leads",
        json={"email": "owner@example.com"},
        headers={"X-Organization-ID": str(test_org.id)},
    )
    lead_id = created.json()["lead"]["id"]

    response = await client.get(f"/leads/{lead_id}", headers={"X-Organization-ID": str(other_org.id)})

    assert response.status_code == 404
    assert response.json() == {"code": "NOT_FOUND", "detail": "Lead not found"}


# =============================================================================
# Leads
# =============================================================================

@pytest.mark.asyncio
async def test_lead_capture_and_duplicate(org_client: AsyncClient, audit_sink):
    first = await org_client.post(
        "/leads", json={"first_name": "Dana", "email": "Dana@Example.com", "source": "walk_in"}
    )
    second = await org_client.post("/leads", json={"email": "dana@example.com", "phone": "(555) 010-2030"})

    assert first.status_code == 201
    assert first.json()["lead"]["email"] == "dana@example.com"
    assert first.json()["lead"]["score"] == 20
    assert second.status_code == 200
    assert second.json()["created"] is False
    assert second.json()["lead"]["id"] == first.json()["lead"]["id"]
    assert audit_sink.events[0].actor_user_id is not None


@pytest.mark.asyncio
async def test_lead_validation_error_shape(org_client: AsyncClient):
    response = await org_client.post("/leads", json={"primary_concern": "Lower back pain"})

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_lead_conversion_over_http(org_client: AsyncClient):
    created = await org_client.post("/leads", json={"email": "convert@example.com"})
    lead_id = created.json()["lead"]["id"]

    response = await org_client.post(f"/leads/{lead_id}/convert", json={"patient_id": str(uuid.uuid4())})

    assert response.status_code == 200
    assert response.json()["lead"]["status"] == "converted"
    assert response.json()["referral_completed"] is False


# =============================================================================
# Referrals
# =============================================================================

@pytest.mark.asyncio
async def test_referral_flow(org_client: AsyncClient):
    program = await org_client.post(
        "/referral-programs",
        json={"name": "Refer a friend", "referrer_reward_type": "credit", "referrer_reward_value": "50"},
    )
    assert program.status_code == 201

    referral = await org_client.post(
        "/referrals", json={"program_id": program.json()["id"], "referrer_id": str(uuid.uuid4())}
    )
    assert referral.status_code == 201
    code = referral.json()["referral_code"]

    linked = await org_client.post("/referrals/link", json={"referral_code": code.lower(), "patient_id": str(uuid.uuid4())})
    assert linked.json()["status"] == "qualified"

    completed = await org_client.post(f"/referrals/{referral.json()['id']}/complete")
    repeated = await org_client.post(f"/referrals/{referral.json()['id']}/complete")

    assert completed.status_code == 200
    assert completed.json()["referral"]["status"] == "completed"
    assert completed.json()["referrer_reward"]["amount"] == "50.00"
    assert repeated.json()["referrer_reward"]["id"] == completed.json()["referrer_reward"]["id"]


@pytest.mark.asyncio
async def test_relinking_referral_conflicts(org_client: AsyncClient):
    program = await org_client.post(
        "/referral-programs",
        json={"name": "Refer a friend", "referrer_reward_type": "cash", "referrer_reward_value": "20"},
    )
    referral = await org_client.post(
        "/referrals", json={"program_id": program.json()["id"], "referrer_id": str(uuid.uuid4())}
    )
    code = referral.json()["referral_code"]
    await org_client.post("/referrals/link", json={"referral_code": code, "patient_id": str(uuid.uuid4())})

    again = await org_client.post("/referrals/link", json={"referral_code": code, "patient_id": str(uuid.uuid4())})

    assert again.status_code == 409


# =============================================================================
# Reviews, campaigns and dashboard
# =============================================================================

@pytest.mark.asyncio
async def test_review_request_cooldown_conflict(org_client: AsyncClient):
    patient_id = str(uuid.uuid4())
    first = await org_client.post("/review-requests", json={"patient_id": patient_id})
    second = await org_client.post("/review-requests", json={"patient_id": patient_id})

    assert first.status_code == 201
    assert first.json()["review_url"] == "https://g.page/r/test-practice/review"
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_campaign_status_and_metrics(org_client: AsyncClient):
    created = await org_client.post("/campaigns", json={"name": "Posture Month", "campaign_type": "social"})
    campaign_id = created.json()["id"]

    activated = await org_client.patch(f"/campaigns/{campaign_id}/status", json={"status": "active"})
    await org_client.post(f"/campaigns/{campaign_id}/impressions", json={"count": 200})
    metrics = await org_client.post(f"/campaigns/{campaign_id}/clicks", json={"count": 10})
    reopened = await org_client.patch(f"/campaigns/{campaign_id}/status", json={"status": "draft"})

    assert activated.json()["status"] == "active"
    assert metrics.json()["ctr"] == pytest.approx(0.05)
    assert metrics.json()["roi"] is None
    assert reopened.status_code == 400


@pytest.mark.asyncio
async def test_dashboard(org_client: AsyncClient):
    await org_client.post("/leads", json={"email": "dash@example.com"})

    response = await org_client.get("/marketing/dashboard")

    assert response.status_code == 200
    body = response.json()
    assert body["leads"]["total"] == 1
    assert set(body) >= {"referrals", "top_referrers", "reviews", "campaigns", "top_campaigns"}


# =============================================================================
# Internal scheduled endpoints
# =============================================================================

@pytest.mark.asyncio
async def test_internal_requires_configured_secret(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "")

    response = await client.post("/internal/scheduled/maintenance", headers={"X-Internal-Secret": "anything"})

    assert response.status_code == 501


@pytest.mark.asyncio
async def test_internal_rejects_wrong_secret(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "s3cret")

    response = await client.post("/internal/scheduled/maintenance", headers={"X-Internal-Secret": "nope"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_internal_runs_for_every_org(client: AsyncClient, test_org, other_org, monkeypatch, dispatcher):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "s3cret")
    headers = {"X-Internal-Secret": "s3cret"}
    await client.post(
        "/review-requests",
        json={"patient_id": str(uuid.uuid4())},
        headers={"X-Organization-ID": str(test_org.id)},
    )

    maintenance = await client.post("/internal/scheduled/maintenance", headers=headers)
    reviews = await client.post("/internal/scheduled/review-dispatch", headers=headers)
    nurture = await client.post("/internal/scheduled/nurture-advance", headers=headers)

    assert maintenance.json()["organizations"] == 2
    assert reviews.json() == {"organizations": 2, "created": 0, "sent": 1, "failed": 0}
    assert nurture.json()["processed"] == 0
    assert dispatcher.calls[0][0] == "email"


@pytest.mark.asyncio
async def test_review_dispatch_requests_reviews_for_finished_visits(client: AsyncClient, test_org, other_org, monkeypatch, dispatcher):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "s3cret")
    visit = CompletedAppointment(
        appointment_id=uuid.uuid4(),
        patient_id=uuid.uuid4(),
        ended_at=datetime.now(timezone.utc) - timedelta(hours=3),
    )

    class OneVisit:
        def completed_between(self, org_id, start, end):
            return [visit] if org_id == test_org.id else []

    app.dependency_overrides[get_appointment_source] = OneVisit

    response = await client.post("/internal/scheduled/review-dispatch", headers={"X-Internal-Secret": "s3cret"})

    assert response.json() == {"organizations": 2, "created": 1, "sent": 1, "failed": 0}
    assert dispatcher.calls[0][1] == str(visit.patient_id)
