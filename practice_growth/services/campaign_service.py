"""Campaign tracker - campaign lifecycle, attribution and rolling metrics."""

import logging
import secrets
import string
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from practice_growth.core.exceptions import BadRequestError, ConflictError, NotFoundError
from practice_growth.core.structured_logging import build_log_context
from practice_growth.core.validators import (
    require_date_window,
    require_non_negative,
    require_non_negative_int,
    require_positive_int,
    require_text,
)
from practice_growth.db.enums import (
    TERMINAL_CAMPAIGN_STATUSES,
    AuditAction,
    CampaignMetric,
    CampaignStatus,
    CampaignType,
)
from practice_growth.db.models import MarketingCampaign
from practice_growth.db.types import utcnow
from practice_growth.repositories import CampaignRepository
from practice_growth.repositories.base import in_window
from practice_growth.schemas.campaign import (
    CampaignCreate,
    CampaignMetrics,
    CampaignRanking,
    CampaignStats,
    CampaignUpdate,
)
from practice_growth.services import audit_service
from practice_growth.services.audit_service import AuditSink
from practice_growth.utils.normalization import slugify

logger = logging.getLogger(__name__)

UTM_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
UTM_SLUG_MAX_LENGTH = 30
UTM_SUFFIX_LENGTH = 6
UTM_MAX_ATTEMPTS = 5

# Allowed status transitions; completed and cancelled are terminal.
CAMPAIGN_TRANSITIONS: dict[str, frozenset[str]] = {
    CampaignStatus.DRAFT.value: frozenset(
        {CampaignStatus.SCHEDULED.value, CampaignStatus.ACTIVE.value, CampaignStatus.CANCELLED.value}
    ),
    CampaignStatus.SCHEDULED.value: frozenset(
        {CampaignStatus.ACTIVE.value, CampaignStatus.DRAFT.value, CampaignStatus.CANCELLED.value}
    ),
    CampaignStatus.ACTIVE.value: frozenset(
        {CampaignStatus.PAUSED.value, CampaignStatus.COMPLETED.value, CampaignStatus.CANCELLED.value}
    ),
    CampaignStatus.PAUSED.value: frozenset(
        {CampaignStatus.ACTIVE.value, CampaignStatus.COMPLETED.value, CampaignStatus.CANCELLED.value}
    ),
    CampaignStatus.COMPLETED.value: frozenset(),
    CampaignStatus.CANCELLED.value: frozenset(),
}

# Campaigns that have actually run; drafts and cancellations are not ranked.
RANKABLE_STATUSES = (
    CampaignStatus.ACTIVE.value,
    CampaignStatus.PAUSED.value,
    CampaignStatus.COMPLETED.value,
)

# Statuses whose utm_campaign still attributes new leads.
ATTRIBUTABLE_STATUSES = (CampaignStatus.ACTIVE.value, CampaignStatus.SCHEDULED.value)


class CampaignNotFoundError(NotFoundError):
    """Campaign not found."""

    pass


class CampaignTransitionError(BadRequestError):
    """Campaign status does not allow this transition."""

    pass


class CampaignConflictError(ConflictError):
    """Another request changed the campaign first."""

    pass


# =============================================================================
# Campaign CRUD
# =============================================================================

def generate_utm_campaign(name: str) -> str:
    """``<slug of name, max 30>-<6 random lowercase chars>``."""
    slug = slugify(name, max_length=UTM_SLUG_MAX_LENGTH) or "campaign"
    suffix = "".join(secrets.choice(UTM_SUFFIX_ALPHABET) for _ in range(UTM_SUFFIX_LENGTH))
    return f"{slug}-{suffix}"


def _validate_campaign_fields(fields: dict) -> None:
    if "name" in fields:
        require_text(fields["name"], "name", max_length=200)
    for money_field in ("budget", "target_revenue"):
        if fields.get(money_field) is not None:
            require_non_negative(fields[money_field], money_field)
    for count_field in ("target_leads", "target_conversions"):
        if fields.get(count_field) is not None:
            require_non_negative_int(fields[count_field], count_field)
    require_date_window(fields.get("start_date"), fields.get("end_date"))


def create_campaign(
    db: Session,
    org_id: UUID,
    data: CampaignCreate,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> MarketingCampaign:
    """Create a DRAFT campaign with a generated ``utm_campaign``."""
    fields = data.model_dump()
    _validate_campaign_fields(fields)

    repo = CampaignRepository(db)
    campaign = None
    for _ in range(UTM_MAX_ATTEMPTS):
        utm_campaign = generate_utm_campaign(fields["name"])
        if repo.get_by_utm(org_id, utm_campaign):
            continue
        campaign = MarketingCampaign(
            organization_id=org_id,
            name=fields["name"].strip(),
            description=fields["description"],
            campaign_type=CampaignType(fields["campaign_type"]).value,
            status=CampaignStatus.DRAFT.value,
            start_date=fields["start_date"],
            end_date=fields["end_date"],
            budget=fields["budget"],
            target_leads=fields["target_leads"],
            target_conversions=fields["target_conversions"],
            target_revenue=fields["target_revenue"],
            utm_source=fields["utm_source"],
            utm_medium=fields["utm_medium"],
            utm_campaign=utm_campaign,
            utm_content=fields["utm_content"],
            target_audience=fields["target_audience"],
            content=fields["content"],
            created_by_user_id=actor_user_id,
        )
        try:
            repo.add(campaign)
            db.commit()
            break
        except IntegrityError:
            db.rollback()
            campaign = None
    if campaign is None:
        raise CampaignConflictError("Could not generate a unique utm_campaign")

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.CREATE,
        entity_type="campaign",
        entity_id=campaign.id,
        actor_user_id=actor_user_id,
        changes={"name": campaign.name, "campaign_type": campaign.campaign_type},
    )
    return campaign


def update_campaign(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    data: CampaignUpdate,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> MarketingCampaign:
    """Update campaign details. Completed and cancelled campaigns are read-only."""
    campaign = get_campaign(db, org_id, campaign_id)
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        return campaign
    if campaign.status in TERMINAL_CAMPAIGN_STATUSES:
        raise CampaignTransitionError(f"Cannot edit a {campaign.status} campaign")

    _validate_campaign_fields(
        {
            "start_date": campaign.start_date,
            "end_date": campaign.end_date,
            **changes,
        }
    )
    for field, value in changes.items():
        setattr(campaign, field, value.strip() if field == "name" else value)
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.UPDATE,
        entity_type="campaign",
        entity_id=campaign.id,
        actor_user_id=actor_user_id,
        changes=changes,
    )
    return campaign


def get_campaign(db: Session, org_id: UUID, campaign_id: UUID) -> MarketingCampaign:
    campaign = CampaignRepository(db).get(org_id, campaign_id)
    if not campaign:
        raise CampaignNotFoundError("Campaign not found")
    return campaign


def get_campaign_by_utm(db: Session, org_id: UUID, utm_campaign: str) -> MarketingCampaign:
    campaign = CampaignRepository(db).get_by_utm(org_id, utm_campaign)
    if not campaign:
        raise CampaignNotFoundError(f"No campaign with utm_campaign '{utm_campaign}'")
    return campaign


def attribute_lead(db: Session, org_id: UUID, utm_campaign: str | None) -> MarketingCampaign | None:
    """Resolve a lead's utm_campaign to an ACTIVE or SCHEDULED campaign."""
    if not utm_campaign:
        return None
    campaign = CampaignRepository(db).get_by_utm(org_id, utm_campaign.strip())
    if campaign and campaign.status in ATTRIBUTABLE_STATUSES:
        return campaign
    return None


def list_campaigns(
    db: Session,
    org_id: UUID,
    status: list[CampaignStatus] | None = None,
    campaign_type: list[CampaignType] | None = None,
    start_after: datetime | None = None,
    start_before: datetime | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[MarketingCampaign], int]:
    """List campaigns for an organization (newest first)."""
    criteria = []
    if status:
        criteria.append(MarketingCampaign.status.in_([s.value for s in status]))
    if campaign_type:
        criteria.append(MarketingCampaign.campaign_type.in_([t.value for t in campaign_type]))
    criteria.extend(in_window(MarketingCampaign.start_date, start_after, start_before))
    if search:
        pattern = f"%{search.strip().lower()}%"
        criteria.append(
            func.lower(MarketingCampaign.name).like(pattern)
            | func.lower(MarketingCampaign.utm_campaign).like(pattern)
        )

    repo = CampaignRepository(db)
    total = repo.count(org_id, *criteria)
    items = repo.list(
        org_id,
        *criteria,
        order_by=(MarketingCampaign.created_at.desc(), MarketingCampaign.id),
        limit=limit,
        offset=offset,
    )
    return items, total


# =============================================================================
# Status transitions
# =============================================================================

def _transition(
    db: Session,
    org_id: UUID,
    campaign: MarketingCampaign,
    new_status: str,
    now: datetime,
) -> bool:
    values: dict = {"status": new_status, "updated_at": now}
    if new_status == CampaignStatus.ACTIVE.value and campaign.start_date is None:
        values["start_date"] = now
    if new_status == CampaignStatus.COMPLETED.value:
        values["end_date"] = now
    return CampaignRepository(db).compare_and_set(org_id, campaign.id, [campaign.status], values)


def update_status(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    new_status: CampaignStatus,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> MarketingCampaign:
    """
    Move a campaign along its lifecycle.

    Activating stamps a missing ``start_date``; completing stamps ``end_date``.
    Requesting the current status is a no-op.
    """
    now = now or utcnow()
    campaign = get_campaign(db, org_id, campaign_id)
    target = CampaignStatus(new_status).value
    old_status = campaign.status
    if target == old_status:
        return campaign
    if target not in CAMPAIGN_TRANSITIONS[old_status]:
        raise CampaignTransitionError(f"Cannot move campaign from {old_status} to {target}")

    if not _transition(db, org_id, campaign, target, now):
        db.rollback()
        raise CampaignConflictError("Campaign status changed by another request")
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.STATUS_CHANGE,
        entity_type="campaign",
        entity_id=campaign.id,
        actor_user_id=actor_user_id,
        changes={"from": old_status, "to": target},
    )
    return campaign


def process_scheduled_campaigns(
    db: Session,
    org_id: UUID,
    now: datetime | None = None,
    audit: AuditSink | None = None,
) -> dict[str, int]:
    """Start SCHEDULED campaigns whose start has passed and complete ACTIVE ones past their end."""
    now = now or utcnow()
    repo = CampaignRepository(db)
    activated = completed = 0
    changed: list[tuple[UUID, str, str]] = []

    for campaign in repo.scheduled_due(org_id, now):
        if _transition(db, org_id, campaign, CampaignStatus.ACTIVE.value, now):
            activated += 1
            changed.append((campaign.id, CampaignStatus.SCHEDULED.value, CampaignStatus.ACTIVE.value))
    for campaign in repo.active_past_end(org_id, now):
        if _transition(db, org_id, campaign, CampaignStatus.COMPLETED.value, now):
            completed += 1
            changed.append((campaign.id, CampaignStatus.ACTIVE.value, CampaignStatus.COMPLETED.value))
    db.commit()

    for campaign_id, old_status, new_status in changed:
        audit_service.emit(
            audit,
            org_id=org_id,
            action=AuditAction.STATUS_CHANGE,
            entity_type="campaign",
            entity_id=campaign_id,
            changes={"from": old_status, "to": new_status},
        )
    if changed:
        logger.info(
            "Scheduled campaigns processed activated=%s completed=%s",
            activated,
            completed,
            extra={"context": build_log_context(org_id=org_id)},
        )
    return {"activated": activated, "completed": completed}


# =============================================================================
# Metrics
# =============================================================================

def _increment(db: Session, org_id: UUID, campaign_id: UUID, commit: bool, **deltas) -> None:
    if not CampaignRepository(db).increment(org_id, campaign_id, **deltas):
        raise CampaignNotFoundError("Campaign not found")
    if commit:
        db.commit()


def record_impression(db: Session, org_id: UUID, campaign_id: UUID, count: int = 1, commit: bool = True) -> None:
    _increment(db, org_id, campaign_id, commit, impressions=require_positive_int(count, "count"))


def record_click(db: Session, org_id: UUID, campaign_id: UUID, count: int = 1, commit: bool = True) -> None:
    _increment(db, org_id, campaign_id, commit, clicks=require_positive_int(count, "count"))


def record_lead(db: Session, org_id: UUID, campaign_id: UUID, commit: bool = True) -> None:
    """Count a lead attributed to this campaign."""
    _increment(db, org_id, campaign_id, commit, leads_generated=1)


def record_conversion(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    revenue: Decimal | int = 0,
    commit: bool = True,
) -> None:
    """Count a conversion and add its revenue."""
    amount = require_non_negative(revenue, "revenue")
    _increment(db, org_id, campaign_id, commit, conversions=1, revenue_generated=amount)


def update_spend(
    db: Session,
    org_id: UUID,
    campaign_id: UUID,
    amount: Decimal,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> MarketingCampaign:
    """Set (not add to) the campaign's actual spend."""
    spend = require_non_negative(amount, "amount")
    campaign = get_campaign(db, org_id, campaign_id)
    previous = campaign.spend
    campaign.spend = spend
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.UPDATE,
        entity_type="campaign",
        entity_id=campaign.id,
        actor_user_id=actor_user_id,
        changes={"spend_from": previous, "spend_to": spend},
    )
    return campaign


def _ratio(numerator, denominator) -> float | None:
    if not denominator:
        return None
    return float(Decimal(numerator) / Decimal(denominator))


def compute_metrics(campaign: MarketingCampaign) -> CampaignMetrics:
    """Derive CTR, conversion rate, cost per lead/conversion and ROI (ratios, not percents)."""
    spend = Decimal(campaign.spend or 0)
    revenue = Decimal(campaign.revenue_generated or 0)
    return CampaignMetrics(
        campaign_id=campaign.id,
        impressions=campaign.impressions,
        clicks=campaign.clicks,
        spend=spend,
        leads=campaign.leads_generated,
        conversions=campaign.conversions,
        revenue=revenue,
        ctr=_ratio(campaign.clicks, campaign.impressions),
        conversion_rate=_ratio(campaign.conversions, campaign.leads_generated),
        cost_per_lead=_ratio(spend, campaign.leads_generated),
        cost_per_conversion=_ratio(spend, campaign.conversions),
        roi=_ratio(revenue - spend, spend) if spend > 0 else None,
    )


def get_metrics(db: Session, org_id: UUID, campaign_id: UUID) -> CampaignMetrics:
    return compute_metrics(get_campaign(db, org_id, campaign_id))


def _metric_value(metrics: CampaignMetrics, metric: CampaignMetric) -> float | None:
    if metric == CampaignMetric.IMPRESSIONS:
        return float(metrics.impressions)
    if metric == CampaignMetric.CLICKS:
        return float(metrics.clicks)
    if metric == CampaignMetric.LEADS:
        return float(metrics.leads)
    if metric == CampaignMetric.CONVERSIONS:
        return float(metrics.conversions)
    if metric == CampaignMetric.REVENUE:
        return float(metrics.revenue)
    if metric == CampaignMetric.ROI:
        return metrics.roi
    return metrics.ctr


def get_top_campaigns(
    db: Session,
    org_id: UUID,
    metric: CampaignMetric = CampaignMetric.CONVERSIONS,
    limit: int = 5,
) -> list[CampaignRanking]:
    """
    Rank campaigns that have run by ``metric`` descending.

    Ties break by earliest ``start_date`` (undated last), then creation
    order. Campaigns whose metric is undefined (e.g. ROI with no spend)
    rank after every defined value.
    """
    require_positive_int(limit, "limit")
    metric = CampaignMetric(metric)
    campaigns = CampaignRepository(db).list(
        org_id, MarketingCampaign.status.in_(RANKABLE_STATUSES)
    )
    far_future = datetime.max.replace(tzinfo=utcnow().tzinfo)

    scored = [(campaign, _metric_value(compute_metrics(campaign), metric)) for campaign in campaigns]
    scored.sort(
        key=lambda item: (
            item[1] is None,
            -(item[1] or 0.0),
            item[0].start_date or far_future,
            item[0].created_at,
            str(item[0].id),
        )
    )
    return [
        CampaignRanking(
            campaign_id=campaign.id,
            name=campaign.name,
            campaign_type=campaign.campaign_type,
            status=campaign.status,
            start_date=campaign.start_date,
            metric=metric,
            value=value,
        )
        for campaign, value in scored[:limit]
    ]


def get_statistics(
    db: Session,
    org_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
) -> CampaignStats:
    """Totals across campaigns created in the range."""
    require_date_window(start, end, "start", "end")
    window = [MarketingCampaign.organization_id == org_id, *in_window(MarketingCampaign.created_at, start, end)]

    def grouped(column) -> dict[str, int]:
        rows = db.execute(select(column, func.count()).where(*window).group_by(column)).all()
        return {key: count for key, count in rows}

    by_status = grouped(MarketingCampaign.status)
    by_type = grouped(MarketingCampaign.campaign_type)
    sums = db.execute(
        select(
            func.coalesce(func.sum(MarketingCampaign.budget), 0),
            func.coalesce(func.sum(MarketingCampaign.spend), 0),
            func.coalesce(func.sum(MarketingCampaign.impressions), 0),
            func.coalesce(func.sum(MarketingCampaign.clicks), 0),
            func.coalesce(func.sum(MarketingCampaign.leads_generated), 0),
            func.coalesce(func.sum(MarketingCampaign.conversions), 0),
            func.coalesce(func.sum(MarketingCampaign.revenue_generated), 0),
        ).where(*window)
    ).one()
    budget, spend, impressions, clicks, leads, conversions, revenue = sums
    spend = Decimal(str(spend))
    revenue = Decimal(str(revenue))

    return CampaignStats(
        total_campaigns=sum(by_status.values()),
        active_campaigns=by_status.get(CampaignStatus.ACTIVE.value, 0),
        by_status=by_status,
        by_type=by_type,
        total_budget=Decimal(str(budget)),
        total_spend=spend,
        total_impressions=int(impressions),
        total_clicks=int(clicks),
        total_leads=int(leads),
        total_conversions=int(conversions),
        total_revenue=revenue,
        overall_cost_per_lead=_ratio(spend, leads),
        overall_cost_per_conversion=_ratio(spend, conversions),
        overall_roi=_ratio(revenue - spend, spend) if spend > 0 else None,
    )
