"""Review request repository."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, or_, select

from practice_growth.db.enums import ACTIVE_REVIEW_STATUSES, ReviewRequestStatus
from practice_growth.db.models import ReviewRequest
from practice_growth.repositories.base import OrgScopedRepository, in_window


class ReviewRequestRepository(OrgScopedRepository[ReviewRequest]):
    model_class = ReviewRequest

    def recent_active_for_patient(
        self, org_id: UUID, patient_id: UUID, since: datetime
    ) -> ReviewRequest | None:
        return self.session.scalar(
            select(ReviewRequest)
            .where(
                ReviewRequest.organization_id == org_id,
                ReviewRequest.patient_id == patient_id,
                ReviewRequest.status.in_(ACTIVE_REVIEW_STATUSES),
                ReviewRequest.created_at >= since,
            )
            .limit(1)
        )

    def appointment_ids_with_requests(self, org_id: UUID, appointment_ids: list[UUID]) -> set[UUID]:
        if not appointment_ids:
            return set()
        rows = self.session.scalars(
            select(ReviewRequest.triggered_by_appointment_id).where(
                ReviewRequest.organization_id == org_id,
                ReviewRequest.triggered_by_appointment_id.in_(appointment_ids),
            )
        )
        return set(rows)

    def pending_due(self, org_id: UUID, now: datetime, limit: int) -> list[ReviewRequest]:
        return self.list(
            org_id,
            ReviewRequest.status == ReviewRequestStatus.PENDING.value,
            or_(ReviewRequest.scheduled_for.is_(None), ReviewRequest.scheduled_for <= now),
            or_(ReviewRequest.expires_at.is_(None), ReviewRequest.expires_at > now),
            order_by=(ReviewRequest.created_at,),
            limit=limit,
        )

    def list_stale(self, org_id: UUID, now: datetime) -> list[ReviewRequest]:
        return self.list(
            org_id,
            ReviewRequest.status.in_(
                [ReviewRequestStatus.PENDING.value, ReviewRequestStatus.SENT.value]
            ),
            ReviewRequest.expires_at.is_not(None),
            ReviewRequest.expires_at < now,
            order_by=(ReviewRequest.expires_at,),
        )

    def grouped_counts(
        self, org_id: UUID, column, start: datetime | None, end: datetime | None
    ) -> dict[str, int]:
        rows = self.session.execute(
            select(column, func.count())
            .where(
                ReviewRequest.organization_id == org_id,
                *in_window(ReviewRequest.created_at, start, end),
            )
            .group_by(column)
        ).all()
        return {key: count for key, count in rows}

    def rating_summary(
        self, org_id: UUID, start: datetime | None, end: datetime | None
    ) -> tuple[int, float | None]:
        count, average = self.session.execute(
            select(func.count(ReviewRequest.rating), func.avg(ReviewRequest.rating)).where(
                ReviewRequest.organization_id == org_id,
                ReviewRequest.status == ReviewRequestStatus.REVIEWED.value,
                ReviewRequest.rating.is_not(None),
                *in_window(ReviewRequest.created_at, start, end),
            )
        ).one()
        return count or 0, (float(average) if average is not None else None)
