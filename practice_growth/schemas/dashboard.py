"""Marketing dashboard schema."""
from datetime import datetime

from pydantic import BaseModel

from practice_growth.schemas.campaign import CampaignRanking, CampaignStats
from practice_growth.schemas.lead import LeadStats
from practice_growth.schemas.referral import ReferralStats, TopReferrer
from practice_growth.schemas.review import ReviewStats


class MarketingDashboard(BaseModel):
    """One response with every growth component's numbers for a date range."""
    start: datetime | None
    end: datetime | None
    referrals: ReferralStats
    top_referrers: list[TopReferrer]
    leads: LeadStats
    reviews: ReviewStats
    campaigns: CampaignStats
    top_campaigns: list[CampaignRanking]
