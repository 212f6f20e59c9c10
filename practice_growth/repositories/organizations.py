"""Organization repository (not tenant-scoped; tenants are the scope)."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from practice_growth.db.models import Organization


class OrganizationRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, org_id: UUID) -> Organization | None:
        return self.session.get(Organization, org_id)

    def get_by_slug(self, slug: str) -> Organization | None:
        return self.session.scalar(select(Organization).where(Organization.slug == slug))

    def list_all(self) -> list[Organization]:
        return list(self.session.scalars(select(Organization).order_by(Organization.created_at)))

    def add(self, org: Organization) -> Organization:
        self.session.add(org)
        self.session.flush()
        return org
