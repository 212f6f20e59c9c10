"""Dashboard service - cross-component marketing summary."""

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from practice_growth.core.validators import require_date_window
from practice_growth.db.enums import CampaignMetric
from practice_growth.schemas.dashboard import MarketingDashboard
from practice_growth.services import campaign_service, lead_service, referral_service, review_service

TOP_LIMIT = 5


def get_marketing_dashboard(
    db: Session,
    org_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
    now: datetime | None = None,
) -> MarketingDashboard:
    """Referral, lead, review and campaign statistics plus the top 5 referrers and campaigns."""
    require_date_window(start, end, "start", "end")
    return MarketingDashboard(
        start=start,
        end=end,
        referrals=referral_service.get_statistics(db, org_id, start, end, now=now),
        top_referrers=referral_service.get_top_referrers(db, org_id, start, end, limit=TOP_LIMIT),
        leads=lead_service.get_statistics(db, org_id, start, end),
        reviews=review_service.get_statistics(db, org_id, start, end),
        campaigns=campaign_service.get_statistics(db, org_id, start, end),
        top_campaigns=campaign_service.get_top_campaigns(
            db, org_id, metric=CampaignMetric.CONVERSIONS, limit=TOP_LIMIT
        ),
    )
