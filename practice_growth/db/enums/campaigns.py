"""Campaign-related enums."""

from enum import Enum


class CampaignType(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    SOCIAL = "social"
    REFERRAL = "referral"
    REVIEW = "review"
    REACTIVATION = "reactivation"
    RETENTION = "retention"


class CampaignStatus(str, Enum):
    """Status of a marketing campaign."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CampaignMetric(str, Enum):
    """Metrics campaigns can be ranked by."""

    IMPRESSIONS = "impressions"
    CLICKS = "clicks"
    LEADS = "leads"
    CONVERSIONS = "conversions"
    REVENUE = "revenue"
    ROI = "roi"
    CTR = "ctr"


TERMINAL_CAMPAIGN_STATUSES = (CampaignStatus.COMPLETED.value, CampaignStatus.CANCELLED.value)
