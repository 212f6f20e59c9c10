"""Nurture sequence service - sequence definitions, steps and lifecycle.

Steps are editable only while a sequence is DRAFT. Activation is a
one-way DRAFT -> ACTIVE transition guarded at the row level, so two
concurrent activations see exactly one winner.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from practice_growth.core.exceptions import BadRequestError, ConflictError, NotFoundError, ValidationError
from practice_growth.core.structured_logging import build_log_context
from practice_growth.core.validators import parse_send_time, require_text
from practice_growth.db.enums import (
    AuditAction,
    LeadActivityType,
    NurtureEnrollmentStatus,
    NurtureExitReason,
    NurtureSequenceStatus,
)
from practice_growth.db.models import Lead, NurtureEnrollment, NurtureSequence, NurtureStep
from practice_growth.db.types import utcnow
from practice_growth.repositories import (
    NurtureEnrollmentRepository,
    NurtureSequenceRepository,
    NurtureStepRepository,
)
from practice_growth.schemas.nurture import NurtureSequenceCreate, NurtureStepCreate
from practice_growth.services import activity_service, audit_service
from practice_growth.services.audit_service import AuditSink

logger = logging.getLogger(__name__)

# Allowed manual transitions; DRAFT -> ACTIVE goes through activate_sequence.
SEQUENCE_TRANSITIONS: dict[str, set[str]] = {
    NurtureSequenceStatus.DRAFT.value: {
        NurtureSequenceStatus.ACTIVE.value,
        NurtureSequenceStatus.CANCELLED.value,
    },
    NurtureSequenceStatus.ACTIVE.value: {
        NurtureSequenceStatus.PAUSED.value,
        NurtureSequenceStatus.COMPLETED.value,
        NurtureSequenceStatus.CANCELLED.value,
    },
    NurtureSequenceStatus.PAUSED.value: {
        NurtureSequenceStatus.ACTIVE.value,
        NurtureSequenceStatus.COMPLETED.value,
        NurtureSequenceStatus.CANCELLED.value,
    },
    NurtureSequenceStatus.COMPLETED.value: set(),
    NurtureSequenceStatus.CANCELLED.value: set(),
}

CLOSED_SEQUENCE_STATUSES = (
    NurtureSequenceStatus.COMPLETED.value,
    NurtureSequenceStatus.CANCELLED.value,
)


class NurtureSequenceNotFoundError(NotFoundError):
    """Nurture sequence not found."""

    pass


class SequenceNotEditableError(BadRequestError):
    """Only draft sequences accept step changes."""

    pass


class InvalidSequenceTransitionError(BadRequestError):
    """Sequence status does not allow this transition."""

    pass


class SequenceConflictError(ConflictError):
    """Another request changed the sequence first."""

    pass


# =============================================================================
# Sequences
# =============================================================================

def _step_from_schema(org_id: UUID, sequence_id: UUID, step_number: int, data: NurtureStepCreate) -> NurtureStep:
    parse_send_time(data.send_time)
    return NurtureStep(
        organization_id=org_id,
        sequence_id=sequence_id,
        step_number=step_number,
        name=require_text(data.name, "name", max_length=200),
        delay_days=data.delay_days,
        delay_hours=data.delay_hours,
        send_time=data.send_time,
        action_type=data.action_type.value,
        template_id=data.template_id,
        task_title=data.task_title,
        task_description=data.task_description,
        task_assign_to=data.task_assign_to,
        score_change=data.score_change,
        condition=data.condition,
    )


def create_sequence(
    db: Session,
    org_id: UUID,
    data: NurtureSequenceCreate,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> NurtureSequence:
    """Create a DRAFT sequence, with any steps given in declaration order."""
    sequence = NurtureSequence(
        organization_id=org_id,
        name=require_text(data.name, "name", max_length=200),
        description=data.description,
        trigger_type=data.trigger_type.value,
        trigger_value=data.trigger_value,
        lead_sources=[s.value for s in data.lead_sources],
        min_score=data.min_score,
        max_score=data.max_score,
        exit_on_conversion=data.exit_on_conversion,
        exit_on_unsubscribe=data.exit_on_unsubscribe,
        max_days=data.max_days,
        status=NurtureSequenceStatus.DRAFT.value,
        created_by_user_id=actor_user_id,
    )
    NurtureSequenceRepository(db).add(sequence)
    for number, step_data in enumerate(data.steps, start=1):
        db.add(_step_from_schema(org_id, sequence.id, number, step_data))
    db.commit()
    db.refresh(sequence)

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.CREATE,
        entity_type="nurture_sequence",
        entity_id=sequence.id,
        actor_user_id=actor_user_id,
        changes={"name": sequence.name, "steps": len(data.steps)},
    )
    return sequence


def get_sequence(db: Session, org_id: UUID, sequence_id: UUID) -> NurtureSequence:
    sequence = NurtureSequenceRepository(db).get(org_id, sequence_id)
    if not sequence:
        raise NurtureSequenceNotFoundError("Nurture sequence not found")
    return sequence


def list_sequences(
    db: Session,
    org_id: UUID,
    status: NurtureSequenceStatus | None = None,
) -> list[NurtureSequence]:
    criteria = [NurtureSequence.status == NurtureSequenceStatus(status).value] if status else []
    return NurtureSequenceRepository(db).list(
        org_id, *criteria, order_by=(NurtureSequence.created_at.desc(),)
    )


def _require_draft(sequence: NurtureSequence) -> None:
    if sequence.status != NurtureSequenceStatus.DRAFT.value:
        raise SequenceNotEditableError(f"Sequence is {sequence.status}; only draft sequences can change steps")


# =============================================================================
# Steps
# =============================================================================

def add_step(
    db: Session,
    org_id: UUID,
    sequence_id: UUID,
    data: NurtureStepCreate,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> NurtureStep:
    sequence = get_sequence(db, org_id, sequence_id)
    _require_draft(sequence)

    repo = NurtureStepRepository(db)
    step = _step_from_schema(org_id, sequence.id, repo.next_step_number(org_id, sequence.id), data)
    repo.add(step)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise SequenceConflictError("Step was added concurrently; retry")
    db.expire(sequence, ["steps"])

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.UPDATE,
        entity_type="nurture_sequence",
        entity_id=sequence.id,
        actor_user_id=actor_user_id,
        changes={"added_step": step.id, "step_number": step.step_number},
    )
    return step


def reorder_steps(
    db: Session,
    org_id: UUID,
    sequence_id: UUID,
    step_ids: list[UUID],
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> list[NurtureStep]:
    """Renumber a draft sequence's steps to match ``step_ids``."""
    sequence = get_sequence(db, org_id, sequence_id)
    _require_draft(sequence)

    steps = NurtureStepRepository(db).list_for_sequence(org_id, sequence.id)
    by_id = {step.id: step for step in steps}
    if len(step_ids) != len(set(step_ids)) or set(step_ids) != set(by_id):
        raise ValidationError("step_ids must list every step of the sequence exactly once")

    # Park numbers out of range first so the unique (sequence, number) key never collides.
    parking = max(step.step_number for step in steps) + 1
    for offset, step in enumerate(steps):
        step.step_number = parking + offset
    db.flush()
    for number, step_id in enumerate(step_ids, start=1):
        by_id[step_id].step_number = number
    db.commit()
    db.expire(sequence, ["steps"])

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.UPDATE,
        entity_type="nurture_sequence",
        entity_id=sequence.id,
        actor_user_id=actor_user_id,
        changes={"step_order": [str(step_id) for step_id in step_ids]},
    )
    return [by_id[step_id] for step_id in step_ids]


# =============================================================================
# Lifecycle
# =============================================================================

def activate_sequence(
    db: Session,
    org_id: UUID,
    sequence_id: UUID,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> NurtureSequence:
    """
    DRAFT -> ACTIVE.

    Activating an already-ACTIVE sequence returns it unchanged.
    """
    now = now or utcnow()
    sequence = get_sequence(db, org_id, sequence_id)
    if sequence.status == NurtureSequenceStatus.ACTIVE.value:
        return sequence
    if sequence.status != NurtureSequenceStatus.DRAFT.value:
        raise InvalidSequenceTransitionError(f"Cannot activate a {sequence.status} sequence")
    if not sequence.steps:
        raise InvalidSequenceTransitionError("Sequence needs at least one step before activation")

    won = NurtureSequenceRepository(db).compare_and_set(
        org_id,
        sequence.id,
        [NurtureSequenceStatus.DRAFT.value],
        {"status": NurtureSequenceStatus.ACTIVE.value, "activated_at": now, "updated_at": now},
    )
    db.commit()
    if not won:
        if sequence.status == NurtureSequenceStatus.ACTIVE.value:
            return sequence
        raise SequenceConflictError("Sequence status changed by another request")

    logger.info(
        "Nurture sequence activated",
        extra={"context": build_log_context(org_id=org_id, entity_type="nurture_sequence", entity_id=sequence.id)},
    )
    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.ACTIVATE,
        entity_type="nurture_sequence",
        entity_id=sequence.id,
        actor_user_id=actor_user_id,
        changes={"from": NurtureSequenceStatus.DRAFT.value, "to": NurtureSequenceStatus.ACTIVE.value},
    )
    return sequence


def update_sequence_status(
    db: Session,
    org_id: UUID,
    sequence_id: UUID,
    new_status: NurtureSequenceStatus,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> NurtureSequence:
    """
    Pause, resume, complete or cancel a sequence.

    Closing a sequence (COMPLETED/CANCELLED) exits every active enrollment.
    """
    now = now or utcnow()
    target = NurtureSequenceStatus(new_status).value
    sequence = get_sequence(db, org_id, sequence_id)
    if sequence.status == target:
        return sequence
    if sequence.status == NurtureSequenceStatus.DRAFT.value and target == NurtureSequenceStatus.ACTIVE.value:
        return activate_sequence(db, org_id, sequence_id, now=now, actor_user_id=actor_user_id, audit=audit)
    if target not in SEQUENCE_TRANSITIONS.get(sequence.status, set()):
        raise InvalidSequenceTransitionError(f"Cannot move sequence from {sequence.status} to {target}")

    old_status = sequence.status
    if not NurtureSequenceRepository(db).compare_and_set(
        org_id, sequence.id, [old_status], {"status": target, "updated_at": now}
    ):
        db.rollback()
        raise SequenceConflictError("Sequence status changed by another request")

    closed = 0
    if target in CLOSED_SEQUENCE_STATUSES:
        for enrollment in NurtureEnrollmentRepository(db).list(
            org_id,
            NurtureEnrollment.sequence_id == sequence.id,
            NurtureEnrollment.status == NurtureEnrollmentStatus.ACTIVE.value,
        ):
            if exit_enrollment(db, org_id, enrollment, NurtureExitReason.SEQUENCE_CLOSED, now):
                closed += 1
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.STATUS_CHANGE,
        entity_type="nurture_sequence",
        entity_id=sequence.id,
        actor_user_id=actor_user_id,
        changes={"from": old_status, "to": target, "exited_enrollments": closed},
    )
    return sequence


# =============================================================================
# Enrollment records
# =============================================================================

def _release_lead(db: Session, enrollment: NurtureEnrollment) -> None:
    lead = db.get(Lead, enrollment.lead_id)
    if lead is not None and lead.current_sequence_id == enrollment.sequence_id:
        lead.current_sequence_id = None


def exit_enrollment(
    db: Session,
    org_id: UUID,
    enrollment: NurtureEnrollment,
    reason: NurtureExitReason,
    now: datetime,
    actor_user_id: UUID | None = None,
) -> bool:
    """
    Close an active enrollment and free the lead; flushes only.

    Returns False when another caller already closed it.
    """
    won = NurtureEnrollmentRepository(db).compare_and_set(
        org_id,
        enrollment.id,
        [NurtureEnrollmentStatus.ACTIVE.value],
        {
            "status": NurtureEnrollmentStatus.EXITED.value,
            "exited_at": now,
            "exit_reason": NurtureExitReason(reason).value,
        },
    )
    if not won:
        return False
    _release_lead(db, enrollment)
    activity_service.log_activity(
        db,
        enrollment.lead_id,
        org_id,
        LeadActivityType.NURTURE_EXITED,
        description=f"Left nurture sequence ({NurtureExitReason(reason).value})",
        actor_user_id=actor_user_id,
        details={"sequence_id": enrollment.sequence_id, "reason": NurtureExitReason(reason).value},
    )
    return True


def complete_enrollment(db: Session, org_id: UUID, enrollment: NurtureEnrollment, now: datetime) -> bool:
    """Mark an enrollment whose steps have all run as COMPLETED; flushes only."""
    won = NurtureEnrollmentRepository(db).compare_and_set(
        org_id,
        enrollment.id,
        [NurtureEnrollmentStatus.ACTIVE.value],
        {"status": NurtureEnrollmentStatus.COMPLETED.value, "completed_at": now},
    )
    if not won:
        return False
    _release_lead(db, enrollment)
    activity_service.log_activity(
        db,
        enrollment.lead_id,
        org_id,
        LeadActivityType.NURTURE_COMPLETED,
        description="Finished nurture sequence",
        details={"sequence_id": enrollment.sequence_id},
    )
    return True


def list_enrollment_history(db: Session, org_id: UUID, lead_id: UUID) -> list[NurtureEnrollment]:
    return NurtureEnrollmentRepository(db).list_for_lead(org_id, lead_id)
