"""Referral program, referral and reward repositories."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from practice_growth.db.enums import OPEN_REFERRAL_STATUSES, ReferralStatus
from practice_growth.db.models import Referral, ReferralProgram, ReferralReward
from practice_growth.repositories.base import OrgScopedRepository, in_window


class ReferralProgramRepository(OrgScopedRepository[ReferralProgram]):
    model_class = ReferralProgram

    def get_by_name(self, org_id: UUID, name: str) -> ReferralProgram | None:
        return self.session.scalar(
            select(ReferralProgram).where(
                ReferralProgram.organization_id == org_id,
                func.lower(ReferralProgram.name) == name.lower(),
            )
        )

    def lock(self, org_id: UUID, program_id: UUID) -> ReferralProgram | None:
        """Row-lock the program until the current transaction ends."""
        return self.session.scalar(
            select(ReferralProgram)
            .where(
                ReferralProgram.id == program_id,
                ReferralProgram.organization_id == org_id,
            )
            .with_for_update()
        )

    def list_active(self, org_id: UUID, now: datetime) -> list[ReferralProgram]:
        return self.list(
            org_id,
            ReferralProgram.is_active.is_(True),
            or_(ReferralProgram.start_date.is_(None), ReferralProgram.start_date <= now),
            or_(ReferralProgram.end_date.is_(None), ReferralProgram.end_date >= now),
            order_by=(ReferralProgram.created_at.desc(),),
        )


class ReferralRepository(OrgScopedRepository[Referral]):
    model_class = Referral

    def get_by_code(self, org_id: UUID, code: str) -> Referral | None:
        return self.session.scalar(
            select(Referral).where(
                Referral.organization_id == org_id,
                Referral.referral_code == code.strip().upper(),
            )
        )

    def code_exists(self, org_id: UUID, code: str) -> bool:
        return self.get_by_code(org_id, code) is not None

    def count_live_for_referrer(self, org_id: UUID, program_id: UUID, referrer_id: UUID) -> int:
        """Referrals that count toward the per-participant cap (cancelled/expired excluded)."""
        return self.count(
            org_id,
            Referral.program_id == program_id,
            Referral.referrer_id == referrer_id,
            Referral.status.notin_(
                [ReferralStatus.CANCELLED.value, ReferralStatus.EXPIRED.value]
            ),
        )

    def list_stale(self, org_id: UUID, now: datetime, limit: int | None = None) -> list[Referral]:
        return self.list(
            org_id,
            Referral.status.in_(OPEN_REFERRAL_STATUSES),
            Referral.expires_at.is_not(None),
            Referral.expires_at < now,
            order_by=(Referral.expires_at,),
            limit=limit,
        )

    def status_counts(
        self, org_id: UUID, start: datetime | None, end: datetime | None
    ) -> dict[str, int]:
        rows = self.session.execute(
            select(Referral.status, func.count())
            .where(Referral.organization_id == org_id, *in_window(Referral.created_at, start, end))
            .group_by(Referral.status)
        ).all()
        return {status: count for status, count in rows}

    def top_referrers(
        self,
        org_id: UUID,
        start: datetime | None,
        end: datetime | None,
        limit: int,
    ) -> list[tuple[UUID, int, datetime]]:
        """Referrers ranked by completed referrals; ties go to the earliest referral."""
        completed = func.count(Referral.id)
        first_referral = func.min(Referral.created_at)
        rows = self.session.execute(
            select(Referral.referrer_id, completed, first_referral)
            .where(
                Referral.organization_id == org_id,
                Referral.status == ReferralStatus.COMPLETED.value,
                *in_window(Referral.completed_at, start, end),
            )
            .group_by(Referral.referrer_id)
            .order_by(completed.desc(), first_referral.asc(), Referral.referrer_id)
            .limit(limit)
        ).all()
        return [(row[0], row[1], row[2]) for row in rows]


class ReferralRewardRepository(OrgScopedRepository[ReferralReward]):
    model_class = ReferralReward

    def list_for_referral(self, org_id: UUID, referral_id: UUID) -> list[ReferralReward]:
        return self.list(
            org_id,
            ReferralReward.referral_id == referral_id,
            order_by=(ReferralReward.recipient_role.desc(),),
        )

    def totals_by_role(
        self, org_id: UUID, start: datetime | None, end: datetime | None
    ) -> dict[str, Decimal]:
        rows = self.session.execute(
            select(ReferralReward.recipient_role, func.sum(ReferralReward.amount))
            .where(
                ReferralReward.organization_id == org_id,
                *in_window(ReferralReward.issued_at, start, end),
            )
            .group_by(ReferralReward.recipient_role)
        ).all()
        return {role: Decimal(str(total or 0)) for role, total in rows}
