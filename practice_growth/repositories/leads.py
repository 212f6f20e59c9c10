"""Lead and lead activity repositories."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, or_, select

from practice_growth.db.enums import OPEN_LEAD_STATUSES
from practice_growth.db.models import Lead, LeadActivity
from practice_growth.repositories.base import OrgScopedRepository, in_window


class LeadRepository(OrgScopedRepository[Lead]):
    model_class = Lead

    def find_by_email(self, org_id: UUID, email: str) -> Lead | None:
        return self.session.scalar(
            select(Lead)
            .where(Lead.organization_id == org_id, func.lower(Lead.email) == email.lower())
            .order_by(Lead.created_at)
            .limit(1)
        )

    def find_by_phone(self, org_id: UUID, phone: str) -> Lead | None:
        return self.session.scalar(
            select(Lead)
            .where(Lead.organization_id == org_id, Lead.phone == phone)
            .order_by(Lead.created_at)
            .limit(1)
        )

    def follow_ups_due(self, org_id: UUID, now: datetime, limit: int | None = None) -> list[Lead]:
        return self.list(
            org_id,
            Lead.follow_up_at.is_not(None),
            Lead.follow_up_at <= now,
            Lead.status.in_(OPEN_LEAD_STATUSES),
            order_by=(Lead.follow_up_at.asc(), Lead.created_at.asc()),
            limit=limit,
        )

    def unresponsive_candidates(
        self, org_id: UUID, cutoff: datetime, min_attempts: int
    ) -> list[Lead]:
        """Open leads with enough unanswered attempts and no contact since ``cutoff``."""
        return self.list(
            org_id,
            Lead.status.in_(OPEN_LEAD_STATUSES),
            Lead.contact_attempts >= min_attempts,
            or_(Lead.last_contacted_at.is_(None), Lead.last_contacted_at < cutoff),
            Lead.created_at < cutoff,
            order_by=(Lead.created_at,),
        )

    def grouped_counts(
        self, org_id: UUID, column, start: datetime | None, end: datetime | None
    ) -> dict[str, int]:
        rows = self.session.execute(
            select(column, func.count())
            .where(Lead.organization_id == org_id, *in_window(Lead.created_at, start, end))
            .group_by(column)
        ).all()
        return {key: count for key, count in rows}

    def average_score(self, org_id: UUID, start: datetime | None, end: datetime | None) -> float:
        value = self.session.scalar(
            select(func.avg(Lead.score)).where(
                Lead.organization_id == org_id, *in_window(Lead.created_at, start, end)
            )
        )
        return float(value or 0)


class LeadActivityRepository(OrgScopedRepository[LeadActivity]):
    model_class = LeadActivity

    def list_for_lead(self, org_id: UUID, lead_id: UUID, limit: int | None = None) -> list[LeadActivity]:
        return self.list(
            org_id,
            LeadActivity.lead_id == lead_id,
            order_by=(LeadActivity.created_at.asc(),),
            limit=limit,
        )
