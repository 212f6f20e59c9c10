"""Marketing campaign and landing page models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from practice_growth.db.base import Base
from practice_growth.db.enums import CampaignStatus
from practice_growth.db.types import utcnow


class MarketingCampaign(Base):
    """
    Marketing campaign with attribution defaults and running metrics.

    Counters only ever increase; ``spend`` is set, not incremented.
    """

    __tablename__ = "marketing_campaigns"
    __table_args__ = (
        UniqueConstraint("organization_id", "utm_campaign", name="uq_campaign_utm"),
        Index("idx_marketing_campaigns_org_status", "organization_id", "status"),
        Index("idx_marketing_campaigns_org_created", "organization_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )

    # Campaign details
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    campaign_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=CampaignStatus.DRAFT.value, nullable=False
    )

    # Schedule
    start_date: Mapped[datetime | None] = mapped_column(nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(nullable=True)

    # Budget and targets
    budget: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    target_leads: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_conversions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_revenue: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Attribution defaults
    utm_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_campaign: Mapped[str] = mapped_column(String(100), nullable=False)
    utm_content: Mapped[str | None] = mapped_column(String(100), nullable=True)

    target_audience: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    content: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    # Running metrics
    impressions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    spend: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    leads_generated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    conversions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    revenue_generated: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )

    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class LandingPage(Base):
    """Landing page with view/submission counters for attribution."""

    __tablename__ = "landing_pages"
    __table_args__ = (
        UniqueConstraint("organization_id", "slug", name="uq_landing_page_slug"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    campaign_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("marketing_campaigns.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    headline: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    submissions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    conversion_rate: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), default=Decimal("0"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
