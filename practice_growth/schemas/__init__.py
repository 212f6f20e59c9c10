"""Pydantic schemas for API request/response models."""

from practice_growth.schemas.org import OrgCreate, OrgRead
from practice_growth.schemas.referral import (
    ReferralCreate,
    ReferralLink,
    ReferralProgramCreate,
    ReferralProgramRead,
    ReferralProgramUpdate,
    ReferralRead,
)
from practice_growth.schemas.lead import (
    LeadCreate,
    LeadRead,
    LeadStatusChange,
)
from practice_growth.schemas.nurture import (
    NurtureSequenceCreate,
    NurtureSequenceRead,
    NurtureStepCreate,
)
from practice_growth.schemas.review import ReviewRequestCreate, ReviewRequestRead
from practice_growth.schemas.campaign import (
    CampaignCreate,
    CampaignMetrics,
    CampaignRead,
    LandingPageCreate,
    LandingPageRead,
)

__all__ = [
    # Organizations
    "OrgCreate",
    "OrgRead",
    # Referrals
    "ReferralCreate",
    "ReferralLink",
    "ReferralProgramCreate",
    "ReferralProgramRead",
    "ReferralProgramUpdate",
    "ReferralRead",
    # Leads
    "LeadCreate",
    "LeadRead",
    "LeadStatusChange",
    # Nurture
    "NurtureSequenceCreate",
    "NurtureSequenceRead",
    "NurtureStepCreate",
    # Reviews
    "ReviewRequestCreate",
    "ReviewRequestRead",
    # Campaigns
    "CampaignCreate",
    "CampaignMetrics",
    "CampaignRead",
    "LandingPageCreate",
    "LandingPageRead",
]
