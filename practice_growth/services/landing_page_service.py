"""Landing page service - view/submission counters feeding campaign attribution."""

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from practice_growth.core.exceptions import ConflictError, NotFoundError, ValidationError
from practice_growth.core.validators import require_text
from practice_growth.db.enums import AuditAction
from practice_growth.db.models import LandingPage
from practice_growth.repositories import LandingPageRepository
from practice_growth.schemas.campaign import LandingPageCreate
from practice_growth.services import audit_service, campaign_service
from practice_growth.services.audit_service import AuditSink
from practice_growth.utils.normalization import slugify

RATE_PRECISION = Decimal("0.0001")


class LandingPageNotFoundError(NotFoundError):
    """Landing page not found."""

    pass


class DuplicateSlugError(ConflictError):
    """Landing page slug already exists in org."""

    pass


def conversion_rate(views: int, submissions: int) -> Decimal:
    """submissions / views, 0 with no views."""
    if not views:
        return Decimal("0")
    return (Decimal(submissions) / Decimal(views)).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)


def create_landing_page(
    db: Session,
    org_id: UUID,
    data: LandingPageCreate,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> LandingPage:
    name = require_text(data.name, "name", max_length=200)
    slug = slugify(data.slug or name, max_length=100)
    if not slug:
        raise ValidationError("slug must contain letters or digits")
    if data.campaign_id:
        campaign_service.get_campaign(db, org_id, data.campaign_id)

    repo = LandingPageRepository(db)
    if repo.get_by_slug(org_id, slug):
        raise DuplicateSlugError(f"Landing page slug '{slug}' already exists")

    page = LandingPage(
        organization_id=org_id,
        campaign_id=data.campaign_id,
        name=name,
        slug=slug,
        headline=data.headline,
        content=data.content,
        is_published=data.is_published,
    )
    try:
        repo.add(page)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateSlugError(f"Landing page slug '{slug}' already exists")

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.CREATE,
        entity_type="landing_page",
        entity_id=page.id,
        actor_user_id=actor_user_id,
        changes={"slug": slug, "campaign_id": data.campaign_id},
    )
    return page


def get_landing_page(db: Session, org_id: UUID, page_id_or_slug: UUID | str) -> LandingPage:
    """Look up by id, or by slug when the value is not a UUID."""
    repo = LandingPageRepository(db)
    page = None
    if isinstance(page_id_or_slug, UUID):
        page = repo.get(org_id, page_id_or_slug)
    else:
        try:
            page = repo.get(org_id, UUID(str(page_id_or_slug)))
        except ValueError:
            page = repo.get_by_slug(org_id, str(page_id_or_slug))
    if not page:
        raise LandingPageNotFoundError("Landing page not found")
    return page


def list_landing_pages(db: Session, org_id: UUID, campaign_id: UUID | None = None) -> list[LandingPage]:
    criteria = [LandingPage.campaign_id == campaign_id] if campaign_id else []
    return LandingPageRepository(db).list(
        org_id, *criteria, order_by=(LandingPage.created_at.desc(),)
    )


def _recompute_rate(db: Session, page: LandingPage) -> LandingPage:
    db.refresh(page)
    page.conversion_rate = conversion_rate(page.views, page.submissions)
    db.commit()
    return page


def track_view(db: Session, org_id: UUID, page_id: UUID) -> LandingPage:
    page = get_landing_page(db, org_id, page_id)
    LandingPageRepository(db).increment(org_id, page.id, views=1)
    return _recompute_rate(db, page)


def track_submission(db: Session, org_id: UUID, page_id: UUID) -> LandingPage:
    page = get_landing_page(db, org_id, page_id)
    LandingPageRepository(db).increment(org_id, page.id, submissions=1)
    return _recompute_rate(db, page)
