"""Marketing campaign and landing page schemas."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from practice_growth.db.enums import CampaignMetric, CampaignStatus, CampaignType


# =============================================================================
# Campaign CRUD
# =============================================================================

class CampaignCreate(BaseModel):
    """Create a new campaign (starts in draft)."""
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    campaign_type: CampaignType
    start_date: datetime | None = None
    end_date: datetime | None = None
    budget: Decimal | None = None
    target_leads: int | None = None
    target_conversions: int | None = None
    target_revenue: Decimal | None = None
    utm_source: str | None = Field(None, max_length=100)
    utm_medium: str | None = Field(None, max_length=100)
    utm_content: str | None = Field(None, max_length=100)
    target_audience: dict = Field(default_factory=dict)
    content: dict = Field(default_factory=dict)


class CampaignUpdate(BaseModel):
    """Partial update; ``utm_campaign`` is fixed at creation."""
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    budget: Decimal | None = None
    target_leads: int | None = None
    target_conversions: int | None = None
    target_revenue: Decimal | None = None
    utm_source: str | None = Field(None, max_length=100)
    utm_medium: str | None = Field(None, max_length=100)
    utm_content: str | None = Field(None, max_length=100)
    target_audience: dict | None = None
    content: dict | None = None


class CampaignStatusChange(BaseModel):
    status: CampaignStatus


class CounterIncrement(BaseModel):
    count: int = 1


class SpendUpdate(BaseModel):
    amount: Decimal


class CampaignRead(BaseModel):
    id: UUID
    name: str
    description: str | None
    campaign_type: CampaignType
    status: CampaignStatus
    start_date: datetime | None
    end_date: datetime | None
    budget: Decimal | None
    target_leads: int | None
    target_conversions: int | None
    target_revenue: Decimal | None
    utm_source: str | None
    utm_medium: str | None
    utm_campaign: str
    utm_content: str | None
    target_audience: dict
    content: dict
    impressions: int
    clicks: int
    spend: Decimal
    leads_generated: int
    conversions: int
    revenue_generated: Decimal
    created_by_user_id: UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CampaignMetrics(BaseModel):
    """Derived ratios; ``None`` where the denominator is zero."""
    campaign_id: UUID
    impressions: int
    clicks: int
    spend: Decimal
    leads: int
    conversions: int
    revenue: Decimal
    ctr: float | None
    conversion_rate: float | None
    cost_per_lead: float | None
    cost_per_conversion: float | None
    roi: float | None


class CampaignRanking(BaseModel):
    campaign_id: UUID
    name: str
    campaign_type: CampaignType
    status: CampaignStatus
    start_date: datetime | None
    metric: CampaignMetric
    value: float | None


class CampaignStats(BaseModel):
    total_campaigns: int
    active_campaigns: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    total_budget: Decimal
    total_spend: Decimal
    total_impressions: int
    total_clicks: int
    total_leads: int
    total_conversions: int
    total_revenue: Decimal
    overall_cost_per_lead: float | None
    overall_cost_per_conversion: float | None
    overall_roi: float | None


# =============================================================================
# Landing pages
# =============================================================================

class LandingPageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    slug: str | None = Field(None, max_length=100)
    headline: str | None = Field(None, max_length=255)
    content: dict = Field(default_factory=dict)
    campaign_id: UUID | None = None
    is_published: bool = False


class LandingPageRead(BaseModel):
    id: UUID
    campaign_id: UUID | None
    name: str
    slug: str
    headline: str | None
    content: dict
    is_published: bool
    views: int
    submissions: int
    conversion_rate: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}
