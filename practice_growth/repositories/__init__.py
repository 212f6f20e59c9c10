"""Persistence ports: one tenant-scoped repository per entity."""

from practice_growth.repositories.base import OrgScopedRepository
from practice_growth.repositories.campaigns import CampaignRepository, LandingPageRepository
from practice_growth.repositories.leads import LeadActivityRepository, LeadRepository
from practice_growth.repositories.nurture import (
    NurtureEnrollmentRepository,
    NurtureSequenceRepository,
    NurtureStepExecutionRepository,
    NurtureStepRepository,
)
from practice_growth.repositories.organizations import OrganizationRepository
from practice_growth.repositories.referrals import (
    ReferralProgramRepository,
    ReferralRepository,
    ReferralRewardRepository,
)
from practice_growth.repositories.reviews import ReviewRequestRepository

__all__ = [
    "CampaignRepository",
    "LandingPageRepository",
    "LeadActivityRepository",
    "LeadRepository",
    "NurtureEnrollmentRepository",
    "NurtureSequenceRepository",
    "NurtureStepExecutionRepository",
    "NurtureStepRepository",
    "OrgScopedRepository",
    "OrganizationRepository",
    "ReferralProgramRepository",
    "ReferralRepository",
    "ReferralRewardRepository",
    "ReviewRequestRepository",
]
