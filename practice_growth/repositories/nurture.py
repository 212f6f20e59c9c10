"""Nurture sequence, step, enrollment and execution repositories."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from practice_growth.db.enums import NurtureEnrollmentStatus
from practice_growth.db.models import (
    NurtureEnrollment,
    NurtureSequence,
    NurtureStep,
    NurtureStepExecution,
)
from practice_growth.repositories.base import OrgScopedRepository


class NurtureSequenceRepository(OrgScopedRepository[NurtureSequence]):
    model_class = NurtureSequence


class NurtureStepRepository(OrgScopedRepository[NurtureStep]):
    model_class = NurtureStep

    def list_for_sequence(self, org_id: UUID, sequence_id: UUID) -> list[NurtureStep]:
        return self.list(
            org_id,
            NurtureStep.sequence_id == sequence_id,
            order_by=(NurtureStep.step_number,),
        )

    def next_step_number(self, org_id: UUID, sequence_id: UUID) -> int:
        current = self.session.scalar(
            select(func.max(NurtureStep.step_number)).where(
                NurtureStep.organization_id == org_id,
                NurtureStep.sequence_id == sequence_id,
            )
        )
        return (current or 0) + 1


class NurtureEnrollmentRepository(OrgScopedRepository[NurtureEnrollment]):
    model_class = NurtureEnrollment

    def active_for_lead(self, org_id: UUID, lead_id: UUID) -> NurtureEnrollment | None:
        return self.session.scalar(
            select(NurtureEnrollment).where(
                NurtureEnrollment.organization_id == org_id,
                NurtureEnrollment.lead_id == lead_id,
                NurtureEnrollment.status == NurtureEnrollmentStatus.ACTIVE.value,
            )
        )

    def list_active(self, org_id: UUID, limit: int | None = None) -> list[NurtureEnrollment]:
        return self.list(
            org_id,
            NurtureEnrollment.status == NurtureEnrollmentStatus.ACTIVE.value,
            order_by=(NurtureEnrollment.enrolled_at, NurtureEnrollment.id),
            limit=limit,
        )

    def list_for_lead(self, org_id: UUID, lead_id: UUID) -> list[NurtureEnrollment]:
        return self.list(
            org_id,
            NurtureEnrollment.lead_id == lead_id,
            order_by=(NurtureEnrollment.enrolled_at.desc(),),
        )

    def count_active_for_sequence(self, org_id: UUID, sequence_id: UUID) -> int:
        return self.count(
            org_id,
            NurtureEnrollment.sequence_id == sequence_id,
            NurtureEnrollment.status == NurtureEnrollmentStatus.ACTIVE.value,
        )


class NurtureStepExecutionRepository(OrgScopedRepository[NurtureStepExecution]):
    model_class = NurtureStepExecution

    def step_ids_for_enrollment(self, org_id: UUID, enrollment_id: UUID) -> set[UUID]:
        return set(
            self.session.scalars(
                select(NurtureStepExecution.step_id).where(
                    NurtureStepExecution.organization_id == org_id,
                    NurtureStepExecution.enrollment_id == enrollment_id,
                )
            )
        )

    def list_for_enrollment(self, org_id: UUID, enrollment_id: UUID) -> list[NurtureStepExecution]:
        return self.list(
            org_id,
            NurtureStepExecution.enrollment_id == enrollment_id,
            order_by=(NurtureStepExecution.fired_at,),
        )
