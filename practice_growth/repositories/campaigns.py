"""Campaign and landing page repositories."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from practice_growth.db.enums import CampaignStatus
from practice_growth.db.models import LandingPage, MarketingCampaign
from practice_growth.repositories.base import OrgScopedRepository


class CampaignRepository(OrgScopedRepository[MarketingCampaign]):
    model_class = MarketingCampaign

    def get_by_utm(self, org_id: UUID, utm_campaign: str) -> MarketingCampaign | None:
        return self.session.scalar(
            select(MarketingCampaign).where(
                MarketingCampaign.organization_id == org_id,
                MarketingCampaign.utm_campaign == utm_campaign,
            )
        )

    def scheduled_due(self, org_id: UUID, now: datetime) -> list[MarketingCampaign]:
        return self.list(
            org_id,
            MarketingCampaign.status == CampaignStatus.SCHEDULED.value,
            MarketingCampaign.start_date.is_not(None),
            MarketingCampaign.start_date <= now,
            order_by=(MarketingCampaign.start_date,),
        )

    def active_past_end(self, org_id: UUID, now: datetime) -> list[MarketingCampaign]:
        return self.list(
            org_id,
            MarketingCampaign.status == CampaignStatus.ACTIVE.value,
            MarketingCampaign.end_date.is_not(None),
            MarketingCampaign.end_date < now,
            order_by=(MarketingCampaign.end_date,),
        )


class LandingPageRepository(OrgScopedRepository[LandingPage]):
    model_class = LandingPage

    def get_by_slug(self, org_id: UUID, slug: str) -> LandingPage | None:
        return self.session.scalar(
            select(LandingPage).where(
                LandingPage.organization_id == org_id,
                LandingPage.slug == slug,
            )
        )
