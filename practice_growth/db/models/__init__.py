"""SQLAlchemy ORM models."""

from practice_growth.db.models.campaigns import LandingPage, MarketingCampaign
from practice_growth.db.models.leads import Lead, LeadActivity
from practice_growth.db.models.nurture import (
    NurtureEnrollment,
    NurtureSequence,
    NurtureStep,
    NurtureStepExecution,
)
from practice_growth.db.models.organizations import Organization
from practice_growth.db.models.referrals import Referral, ReferralProgram, ReferralReward
from practice_growth.db.models.reviews import ReviewRequest

__all__ = [
    "LandingPage",
    "Lead",
    "LeadActivity",
    "MarketingCampaign",
    "NurtureEnrollment",
    "NurtureSequence",
    "NurtureStep",
    "NurtureStepExecution",
    "Organization",
    "Referral",
    "ReferralProgram",
    "ReferralReward",
    "ReviewRequest",
]
