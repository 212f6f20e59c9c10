"""Enum definitions for application constants."""

from practice_growth.db.enums.audit import AuditAction
from practice_growth.db.enums.campaigns import (
    TERMINAL_CAMPAIGN_STATUSES,
    CampaignMetric,
    CampaignStatus,
    CampaignType,
)
from practice_growth.db.enums.leads import (
    OPEN_LEAD_STATUSES,
    LeadActivityType,
    LeadSource,
    LeadStatus,
)
from practice_growth.db.enums.nurture import (
    NurtureActionType,
    NurtureEnrollmentStatus,
    NurtureExitReason,
    NurtureSequenceStatus,
    NurtureStepOutcome,
    NurtureTriggerType,
)
from practice_growth.db.enums.referrals import (
    OPEN_REFERRAL_STATUSES,
    TERMINAL_REFERRAL_STATUSES,
    ReferralRewardType,
    ReferralStatus,
    RewardRecipientRole,
)
from practice_growth.db.enums.reviews import (
    ACTIVE_REVIEW_STATUSES,
    ReviewChannel,
    ReviewPlatform,
    ReviewRequestStatus,
)

__all__ = [
    "ACTIVE_REVIEW_STATUSES",
    "AuditAction",
    "CampaignMetric",
    "CampaignStatus",
    "CampaignType",
    "LeadActivityType",
    "LeadSource",
    "LeadStatus",
    "NurtureActionType",
    "NurtureEnrollmentStatus",
    "NurtureExitReason",
    "NurtureSequenceStatus",
    "NurtureStepOutcome",
    "NurtureTriggerType",
    "OPEN_LEAD_STATUSES",
    "OPEN_REFERRAL_STATUSES",
    "ReferralRewardType",
    "ReferralStatus",
    "ReviewChannel",
    "ReviewPlatform",
    "ReviewRequestStatus",
    "RewardRecipientRole",
    "TERMINAL_CAMPAIGN_STATUSES",
    "TERMINAL_REFERRAL_STATUSES",
]
