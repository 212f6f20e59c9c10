"""
Nurture engine - enrolls leads and advances them through sequence steps.

The engine holds no timers. An external driver (worker loop, CLI, or the
internal scheduled endpoint) calls ``advance_due_leads(now)``; given the
same enrollment time, ``now`` and step configuration, the engine always
selects the same step and makes the same skip/exit decisions.

Per enrollment, one advance call:
1. Re-checks exit conditions (sequence closed, converted, opted out, max age).
2. Holds the lead if the sequence is PAUSED.
3. Walks pending steps in (offset, step_number) order, recording
   condition skips, until one step fires (or fails) or the next step is
   not yet due.
4. Completes the enrollment once every step has an execution record.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from practice_growth.core.config import settings
from practice_growth.core.exceptions import BadRequestError, ConflictError, NotFoundError
from practice_growth.core.structured_logging import build_log_context
from practice_growth.core.validators import parse_send_time
from practice_growth.db.enums import (
    OPEN_LEAD_STATUSES,
    AuditAction,
    LeadActivityType,
    LeadStatus,
    NurtureActionType,
    NurtureEnrollmentStatus,
    NurtureExitReason,
    NurtureSequenceStatus,
    NurtureStepOutcome,
    NurtureTriggerType,
)
from practice_growth.db.models import (
    Lead,
    NurtureEnrollment,
    NurtureSequence,
    NurtureStep,
    NurtureStepExecution,
)
from practice_growth.db.types import utcnow
from practice_growth.repositories import (
    NurtureEnrollmentRepository,
    NurtureSequenceRepository,
    NurtureStepExecutionRepository,
    OrganizationRepository,
)
from practice_growth.schemas.nurture import TASK_ASSIGN_LEAD_OWNER, NurtureAdvanceResult
from practice_growth.services import activity_service, audit_service, lead_service, nurture_service
from practice_growth.services.audit_service import AuditSink
from practice_growth.services.messaging import DispatchError, MessageDispatcher, default_dispatcher

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/Los_Angeles"


class LeadNotEligibleError(BadRequestError):
    """Lead does not meet the sequence's entry constraints."""

    pass


class SequenceNotActiveError(BadRequestError):
    """Only active sequences accept enrollments."""

    pass


class LeadAlreadyEnrolledError(ConflictError):
    """Lead is already enrolled in a nurture sequence."""

    pass


class EnrollmentNotFoundError(NotFoundError):
    """Lead has no active nurture enrollment."""

    pass


# =============================================================================
# Pure helpers
# =============================================================================

def ordered_steps(steps: list[NurtureStep]) -> list[NurtureStep]:
    """Steps by cumulative offset, ties broken by declaration order."""
    return sorted(steps, key=lambda s: (s.offset_hours, s.step_number))


def step_due_at(enrolled_at: datetime, step: NurtureStep, tz: ZoneInfo) -> datetime:
    """
    First instant the step may fire.

    Without ``send_time`` that is ``enrolled_at + offset``. With it, the
    first moment at or after that whose org-local time of day is
    ``send_time``.
    """
    base = enrolled_at + timedelta(hours=step.offset_hours)
    send_time = parse_send_time(step.send_time)
    if send_time is None:
        return base

    local = base.astimezone(tz)
    candidate = local.replace(hour=send_time.hour, minute=send_time.minute, second=0, microsecond=0)
    if candidate < local:
        candidate += timedelta(days=1)
    return candidate.astimezone(timezone.utc)


def _as_number(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compare(operator: str, actual: Any, expected: Any) -> bool:
    if operator == "eq":
        return str(actual) == str(expected)
    if operator == "ne":
        return str(actual) != str(expected)
    if operator in ("is_empty", "is_not_empty"):
        empty = actual is None or actual == ""
        wanted = operator == "is_empty"
        if expected is False:
            wanted = not wanted
        return empty == wanted
    if operator == "in":
        return str(actual) in {str(v) for v in expected or []}
    if operator == "not_in":
        return str(actual) not in {str(v) for v in expected or []}

    left, right = _as_number(actual), _as_number(expected)
    if left is None or right is None:
        return False
    if operator == "gt":
        return left > right
    if operator == "gte":
        return left >= right
    if operator == "lt":
        return left < right
    if operator == "lte":
        return left <= right
    return False


def evaluate_condition(condition: dict | None, lead: Lead) -> bool:
    """All entries of ``condition`` must hold against the lead's current attributes."""
    if not condition:
        return True
    for field, expected in condition.items():
        actual = getattr(lead, field, None)
        if isinstance(actual, UUID):
            actual = str(actual)
        if isinstance(expected, dict):
            if not all(_compare(op, actual, value) for op, value in expected.items()):
                return False
        elif not _compare("eq", actual, expected):
            return False
    return True


def exit_reason_for(
    sequence: NurtureSequence,
    enrollment: NurtureEnrollment,
    lead: Lead,
    now: datetime,
) -> NurtureExitReason | None:
    if sequence.status in nurture_service.CLOSED_SEQUENCE_STATUSES:
        return NurtureExitReason.SEQUENCE_CLOSED
    if sequence.exit_on_conversion and lead.status == LeadStatus.CONVERTED.value:
        return NurtureExitReason.CONVERTED
    if sequence.exit_on_unsubscribe and lead.is_opted_out:
        return NurtureExitReason.UNSUBSCRIBED
    if sequence.max_days and now - enrollment.enrolled_at > timedelta(days=sequence.max_days):
        return NurtureExitReason.MAX_DAYS
    return None


def eligibility_problem(sequence: NurtureSequence, lead: Lead) -> str | None:
    """Why ``lead`` cannot enter ``sequence``, or None when it can."""
    if lead.status == LeadStatus.CONVERTED.value:
        return "Converted leads cannot be enrolled"
    if sequence.exit_on_unsubscribe and lead.is_opted_out:
        return "Lead has opted out of marketing"
    if sequence.lead_sources and lead.source not in sequence.lead_sources:
        return f"Lead source '{lead.source}' is not eligible for this sequence"
    if sequence.min_score is not None and lead.score < sequence.min_score:
        return f"Lead score {lead.score} is below the sequence minimum {sequence.min_score}"
    if sequence.max_score is not None and lead.score > sequence.max_score:
        return f"Lead score {lead.score} is above the sequence maximum {sequence.max_score}"

    trigger = sequence.trigger_type
    if trigger == NurtureTriggerType.SOURCE.value and sequence.trigger_value:
        if lead.source != sequence.trigger_value:
            return f"Sequence only accepts '{sequence.trigger_value}' leads"
    if trigger == NurtureTriggerType.STATUS_CHANGED.value and sequence.trigger_value:
        if lead.status != sequence.trigger_value:
            return f"Sequence only accepts leads in status '{sequence.trigger_value}'"
    if trigger == NurtureTriggerType.SCORE_THRESHOLD.value and sequence.trigger_value:
        threshold = _as_number(sequence.trigger_value)
        if threshold is not None and lead.score < threshold:
            return f"Lead score {lead.score} has not reached {sequence.trigger_value}"
    return None


# =============================================================================
# Engine
# =============================================================================

class NurtureEngine:
    """Enrollment and step advance against a pluggable message dispatcher."""

    def __init__(self, dispatcher: MessageDispatcher | None = None):
        self.dispatcher = dispatcher or default_dispatcher

    # -------------------------------------------------------------------------
    # Enrollment
    # -------------------------------------------------------------------------

    def enroll_lead(
        self,
        db: Session,
        org_id: UUID,
        lead_id: UUID,
        sequence_id: UUID,
        now: datetime | None = None,
        actor_user_id: UUID | None = None,
        audit: AuditSink | None = None,
    ) -> NurtureEnrollment:
        """Enroll a lead in an ACTIVE sequence; a lead holds one sequence at a time."""
        now = now or utcnow()
        sequence = nurture_service.get_sequence(db, org_id, sequence_id)
        lead = lead_service.get_lead(db, org_id, lead_id)

        if sequence.status != NurtureSequenceStatus.ACTIVE.value:
            raise SequenceNotActiveError(f"Sequence is {sequence.status}; only active sequences accept leads")
        if lead.current_sequence_id is not None:
            raise LeadAlreadyEnrolledError("Lead is already enrolled in a nurture sequence")
        problem = eligibility_problem(sequence, lead)
        if problem:
            raise LeadNotEligibleError(problem)

        # Claim the lead's single sequence slot at the row level.
        claimed = db.execute(
            update(Lead)
            .where(Lead.id == lead.id, Lead.organization_id == org_id, Lead.current_sequence_id.is_(None))
            .values(current_sequence_id=sequence.id)
            .execution_options(synchronize_session=False)
        )
        db.expire(lead, ["current_sequence_id"])
        if claimed.rowcount != 1:
            db.rollback()
            raise LeadAlreadyEnrolledError("Lead is already enrolled in a nurture sequence")

        enrollment = NurtureEnrollment(
            organization_id=org_id,
            sequence_id=sequence.id,
            lead_id=lead.id,
            status=NurtureEnrollmentStatus.ACTIVE.value,
            enrolled_at=now,
        )
        NurtureEnrollmentRepository(db).add(enrollment)
        activity_service.log_activity(
            db,
            lead.id,
            org_id,
            LeadActivityType.NURTURE_ENROLLED,
            description=f"Enrolled in nurture sequence '{sequence.name}'",
            actor_user_id=actor_user_id,
            details={"sequence_id": sequence.id, "enrollment_id": enrollment.id},
        )
        db.commit()

        audit_service.emit(
            audit,
            org_id=org_id,
            action=AuditAction.ENROLL,
            entity_type="lead",
            entity_id=lead.id,
            actor_user_id=actor_user_id,
            changes={"sequence_id": sequence.id, "enrollment_id": enrollment.id},
        )
        return enrollment

    def unenroll_lead(
        self,
        db: Session,
        org_id: UUID,
        lead_id: UUID,
        now: datetime | None = None,
        actor_user_id: UUID | None = None,
        audit: AuditSink | None = None,
    ) -> NurtureEnrollment:
        now = now or utcnow()
        lead = lead_service.get_lead(db, org_id, lead_id)
        enrollment = NurtureEnrollmentRepository(db).active_for_lead(org_id, lead.id)
        if not enrollment:
            raise EnrollmentNotFoundError("Lead has no active nurture enrollment")
        if not nurture_service.exit_enrollment(
            db, org_id, enrollment, NurtureExitReason.MANUAL, now, actor_user_id=actor_user_id
        ):
            db.rollback()
            raise EnrollmentNotFoundError("Lead has no active nurture enrollment")
        db.commit()

        audit_service.emit(
            audit,
            org_id=org_id,
            action=AuditAction.UNENROLL,
            entity_type="lead",
            entity_id=lead.id,
            actor_user_id=actor_user_id,
            changes={"sequence_id": enrollment.sequence_id, "reason": NurtureExitReason.MANUAL.value},
        )
        return enrollment

    def auto_enroll(
        self,
        db: Session,
        org_id: UUID,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> int:
        """
        Enroll open, unenrolled leads into ACTIVE non-manual sequences.

        LEAD_CREATED sequences only take leads created after activation. A
        lead is never auto-enrolled in a sequence it has been through before.
        Sequences are considered oldest activation first.
        """
        now = now or utcnow()
        limit = limit or settings.WORKER_BATCH_SIZE
        sequences = NurtureSequenceRepository(db).list(
            org_id,
            NurtureSequence.status == NurtureSequenceStatus.ACTIVE.value,
            NurtureSequence.trigger_type != NurtureTriggerType.MANUAL.value,
            order_by=(NurtureSequence.activated_at, NurtureSequence.id),
        )
        enrolled = 0
        for sequence in sequences:
            criteria = [
                Lead.organization_id == org_id,
                Lead.current_sequence_id.is_(None),
                Lead.status.in_(OPEN_LEAD_STATUSES),
                ~Lead.id.in_(
                    select(NurtureEnrollment.lead_id).where(
                        NurtureEnrollment.organization_id == org_id,
                        NurtureEnrollment.sequence_id == sequence.id,
                    )
                ),
            ]
            if sequence.trigger_type == NurtureTriggerType.LEAD_CREATED.value and sequence.activated_at:
                criteria.append(Lead.created_at >= sequence.activated_at)
            candidates = db.scalars(
                select(Lead).where(*criteria).order_by(Lead.created_at, Lead.id).limit(limit)
            ).all()
            for lead in candidates:
                if eligibility_problem(sequence, lead):
                    continue
                try:
                    self.enroll_lead(db, org_id, lead.id, sequence.id, now=now)
                except LeadAlreadyEnrolledError:
                    continue
                enrolled += 1
        return enrolled

    # -------------------------------------------------------------------------
    # Advance
    # -------------------------------------------------------------------------

    def advance_due_leads(
        self,
        db: Session,
        org_id: UUID,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> NurtureAdvanceResult:
        """Advance every active enrollment in the org once."""
        now = now or utcnow()
        tz = self._org_timezone(db, org_id)
        result = NurtureAdvanceResult()
        enrollment_ids = [
            e.id for e in NurtureEnrollmentRepository(db).list_active(org_id, limit or settings.WORKER_BATCH_SIZE)
        ]
        for enrollment_id in enrollment_ids:
            enrollment = NurtureEnrollmentRepository(db).get(org_id, enrollment_id)
            if enrollment is None or enrollment.status != NurtureEnrollmentStatus.ACTIVE.value:
                continue
            result.processed += 1
            self.advance_enrollment(db, org_id, enrollment, now, tz, result)

        if result.processed:
            logger.info(
                "Nurture advance processed=%s executed=%s skipped=%s failed=%s exited=%s completed=%s",
                result.processed,
                result.executed,
                result.skipped,
                result.failed,
                result.exited,
                result.completed,
                extra={"context": build_log_context(org_id=org_id)},
            )
        return result

    def advance_enrollment(
        self,
        db: Session,
        org_id: UUID,
        enrollment: NurtureEnrollment,
        now: datetime,
        tz: ZoneInfo | None = None,
        result: NurtureAdvanceResult | None = None,
    ) -> NurtureAdvanceResult:
        """Advance one enrollment; commits its own outcome."""
        tz = tz or self._org_timezone(db, org_id)
        result = result or NurtureAdvanceResult()
        sequence = enrollment.sequence
        lead = db.get(Lead, enrollment.lead_id)

        reason = exit_reason_for(sequence, enrollment, lead, now)
        if reason is not None:
            if nurture_service.exit_enrollment(db, org_id, enrollment, reason, now):
                result.exited += 1
            db.commit()
            return result
        if sequence.status == NurtureSequenceStatus.PAUSED.value:
            return result

        done = NurtureStepExecutionRepository(db).step_ids_for_enrollment(org_id, enrollment.id)
        pending = [s for s in ordered_steps(sequence.steps) if s.id not in done]
        for step in pending:
            if step_due_at(enrollment.enrolled_at, step, tz) > now:
                break
            if not evaluate_condition(step.condition, lead):
                skipped = self._claim(db, org_id, enrollment, step, NurtureStepOutcome.SKIPPED, now, "Condition not met")
                if skipped is None:
                    db.commit()
                    return result
                self._log_outcome(db, org_id, enrollment, step, skipped)
                result.skipped += 1
                done.add(step.id)
                continue
            outcome = self._fire(db, org_id, enrollment, lead, step, now)
            if outcome is None:
                db.commit()
                return result
            if outcome == NurtureStepOutcome.EXECUTED:
                result.executed += 1
            else:
                result.failed += 1
            done.add(step.id)
            break

        if all(s.id in done for s in sequence.steps):
            if nurture_service.complete_enrollment(db, org_id, enrollment, now):
                result.completed += 1
        db.commit()
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _org_timezone(self, db: Session, org_id: UUID) -> ZoneInfo:
        org = OrganizationRepository(db).get(org_id)
        name = org.timezone if org and org.timezone else DEFAULT_TIMEZONE
        try:
            return ZoneInfo(name)
        except ZoneInfoNotFoundError:
            logger.warning("Unknown org timezone %s; using %s", name, DEFAULT_TIMEZONE)
            return ZoneInfo(DEFAULT_TIMEZONE)

    def _claim(
        self,
        db: Session,
        org_id: UUID,
        enrollment: NurtureEnrollment,
        step: NurtureStep,
        outcome: NurtureStepOutcome,
        now: datetime,
        message: str | None = None,
    ) -> NurtureStepExecution | None:
        """
        Take the (enrollment, step) slot.

        Returns None when another driver already recorded this step. Only
        the savepoint around this insert is rolled back, so outcomes already
        recorded earlier in the same advance are kept.
        """
        execution = NurtureStepExecution(
            organization_id=org_id,
            enrollment_id=enrollment.id,
            step_id=step.id,
            lead_id=enrollment.lead_id,
            status=outcome.value,
            message=message,
            fired_at=now,
        )
        try:
            with db.begin_nested():
                db.add(execution)
                db.flush()
        except IntegrityError:
            logger.info(
                "Nurture step already recorded by another driver",
                extra={"context": build_log_context(org_id=org_id, entity_type="nurture_step", entity_id=step.id)},
            )
            return None
        return execution

    def _log_outcome(
        self,
        db: Session,
        org_id: UUID,
        enrollment: NurtureEnrollment,
        step: NurtureStep,
        execution: NurtureStepExecution,
    ) -> None:
        outcome = NurtureStepOutcome(execution.status)
        activity_type = {
            NurtureStepOutcome.EXECUTED: LeadActivityType.NURTURE_STEP_EXECUTED,
            NurtureStepOutcome.SKIPPED: LeadActivityType.NURTURE_STEP_SKIPPED,
            NurtureStepOutcome.FAILED: LeadActivityType.NURTURE_STEP_FAILED,
        }[outcome]
        activity_service.log_activity(
            db,
            enrollment.lead_id,
            org_id,
            activity_type,
            description=f"Nurture step '{step.name}' {outcome.value}",
            details={
                "sequence_id": enrollment.sequence_id,
                "step_id": step.id,
                "step_number": step.step_number,
                "action_type": step.action_type,
                "message": execution.message,
                "external_id": execution.external_id,
            },
        )

    def _fire(
        self,
        db: Session,
        org_id: UUID,
        enrollment: NurtureEnrollment,
        lead: Lead,
        step: NurtureStep,
        now: datetime,
    ) -> NurtureStepOutcome | None:
        execution = self._claim(db, org_id, enrollment, step, NurtureStepOutcome.EXECUTED, now)
        if execution is None:
            return None
        try:
            execution.external_id = self._perform(db, org_id, enrollment, lead, step)
        except DispatchError as exc:
            execution.status = NurtureStepOutcome.FAILED.value
            execution.message = str(exc) or "Dispatch failed"
            logger.warning(
                "Nurture step dispatch failed",
                extra={"context": build_log_context(org_id=org_id, entity_type="nurture_step", entity_id=step.id)},
            )
        self._log_outcome(db, org_id, enrollment, step, execution)
        return NurtureStepOutcome(execution.status)

    def _perform(
        self,
        db: Session,
        org_id: UUID,
        enrollment: NurtureEnrollment,
        lead: Lead,
        step: NurtureStep,
    ) -> str | None:
        """Apply the step's action. Returns the dispatcher's external id, if any."""
        context = {
            "entity_type": "lead",
            "entity_id": str(lead.id),
            "sequence_id": str(enrollment.sequence_id),
            "step_id": str(step.id),
            "first_name": lead.first_name,
        }
        action = step.action_type
        if action == NurtureActionType.UPDATE_SCORE.value:
            lead_service.apply_score_change(db, org_id, lead, "nurture_step", step.score_change or 0)
            return None
        if action == NurtureActionType.SEND_EMAIL.value:
            if not lead.email:
                raise DispatchError("Lead has no email address")
            return self.dispatcher.send_email(org_id, lead.email, step.template_id, context)
        if action == NurtureActionType.SEND_SMS.value:
            if not lead.phone:
                raise DispatchError("Lead has no phone number")
            return self.dispatcher.send_sms(org_id, lead.phone, step.template_id, context)
        if action == NurtureActionType.CREATE_TASK.value:
            return self.dispatcher.create_task(
                org_id,
                step.task_title or step.name,
                step.task_description,
                self._task_assignee(lead, step),
                context,
            )
        raise DispatchError(f"Unsupported action type '{action}'")

    @staticmethod
    def _task_assignee(lead: Lead, step: NurtureStep) -> UUID | None:
        if not step.task_assign_to:
            return None
        if step.task_assign_to == TASK_ASSIGN_LEAD_OWNER:
            return lead.assigned_to_user_id
        try:
            return UUID(step.task_assign_to)
        except ValueError:
            return None


engine = NurtureEngine()
