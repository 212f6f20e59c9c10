"""Organization service - tenant bootstrap."""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from practice_growth.core.exceptions import ConflictError, NotFoundError
from practice_growth.core.structured_logging import build_log_context
from practice_growth.db.models import Organization
from practice_growth.repositories import OrganizationRepository
from practice_growth.schemas.org import OrgCreate

logger = logging.getLogger(__name__)


class OrganizationNotFoundError(NotFoundError):
    """Organization not found."""

    pass


class DuplicateOrgSlugError(ConflictError):
    """An organization with this slug already exists."""

    pass


def get_org_by_id(db: Session, org_id: UUID) -> Organization:
    org = OrganizationRepository(db).get(org_id)
    if not org:
        raise OrganizationNotFoundError("Organization not found")
    return org


def get_org_by_slug(db: Session, slug: str) -> Organization:
    org = OrganizationRepository(db).get_by_slug(slug.lower())
    if not org:
        raise OrganizationNotFoundError("Organization not found")
    return org


def create_org(db: Session, data: OrgCreate) -> Organization:
    """
    Create a new organization.

    Raises:
        DuplicateOrgSlugError: If slug already exists
    """
    repo = OrganizationRepository(db)
    if repo.get_by_slug(data.slug):
        raise DuplicateOrgSlugError(f"Organization with slug '{data.slug}' already exists")

    org = Organization(
        name=data.name,
        slug=data.slug,
        timezone=data.timezone,
        review_links={platform.value: url for platform, url in data.review_links.items()},
    )
    try:
        repo.add(org)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateOrgSlugError(f"Organization with slug '{data.slug}' already exists")
    db.refresh(org)
    logger.info("Organization created", extra={"context": build_log_context(org_id=org.id)})
    return org
