"""Dashboard router - marketing summary across growth components."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from practice_growth.core.deps import OrgContext, get_db, get_org_context
from practice_growth.schemas.dashboard import MarketingDashboard
from practice_growth.services import dashboard_service

router = APIRouter(prefix="/marketing", tags=["Dashboard"])


@router.get("/dashboard", response_model=MarketingDashboard)
def marketing_dashboard(
    start: datetime | None = Query(None, description="Only count records created at or after this time"),
    end: datetime | None = Query(None, description="Only count records created at or before this time"),
    db: Session = Depends(get_db),
    ctx: OrgContext = Depends(get_org_context),
):
    return dashboard_service.get_marketing_dashboard(db, ctx.org_id, start, end)
