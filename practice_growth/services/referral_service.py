"""Referral program service - programs, referral lifecycle and reward issuance.

Referral status only moves pending → qualified → completed, or to
expired/cancelled from pending/qualified. Every transition is a guarded
UPDATE (compare-and-set on status) so concurrent callers see exactly one
winner, and rewards are inserted in the same transaction as the
qualified → completed transition.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from practice_growth.core.config import settings
from practice_growth.core.exceptions import BadRequestError, ConflictError, NotFoundError, ValidationError
from practice_growth.core.structured_logging import build_log_context
from practice_growth.core.validators import (
    require_non_negative,
    require_positive,
    require_positive_int,
    require_date_window,
    require_text,
)
from practice_growth.db.enums import (
    OPEN_REFERRAL_STATUSES,
    AuditAction,
    ReferralRewardType,
    ReferralStatus,
    RewardRecipientRole,
)
from practice_growth.db.models import Referral, ReferralProgram, ReferralReward
from practice_growth.db.types import utcnow
from practice_growth.repositories import (
    ReferralProgramRepository,
    ReferralRepository,
    ReferralRewardRepository,
)
from practice_growth.schemas.referral import (
    ReferralCreate,
    ReferralLink,
    ReferralProgramCreate,
    ReferralProgramUpdate,
    ReferralStats,
    TopReferrer,
)
from practice_growth.services import audit_service
from practice_growth.services.audit_service import AuditSink
from practice_growth.utils.normalization import normalize_email, normalize_name, normalize_phone

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CENT = Decimal("0.01")


class ReferralProgramNotFoundError(NotFoundError):
    """Referral program not found."""

    pass


class ReferralNotFoundError(NotFoundError):
    """Referral not found."""

    pass


class DuplicateProgramNameError(ConflictError):
    """Referral program name already exists in org."""

    pass


class ReferralCapExceededError(ConflictError):
    """Referrer has reached the program's referral limit."""

    pass


class ReferralAlreadyLinkedError(ConflictError):
    """Referral already has a referee."""

    pass


class ReferralCodeGenerationError(ConflictError):
    """Could not allocate a unique referral code."""

    pass


class ReferralTransitionConflictError(ConflictError):
    """Another request changed the referral first."""

    pass


class ProgramInactiveError(BadRequestError):
    """Referral program is not accepting referrals."""

    pass


class InvalidReferralTransitionError(BadRequestError):
    """Referral status does not allow this operation."""

    pass


class ReferralExpiredError(BadRequestError):
    """Referral has expired."""

    pass


@dataclass
class ReferralCompletion:
    """Rewards issued by completing a referral (same value on every repeat call)."""

    referral: Referral
    referrer_reward: ReferralReward | None
    referee_reward: ReferralReward | None


# =============================================================================
# Rewards
# =============================================================================

def calculate_reward(
    reward_type: str,
    value: Decimal,
    cap: Decimal | None = None,
    service_amount: Decimal | None = None,
) -> Decimal:
    """
    Reward amount for one recipient.

    Percent discounts are taken from ``service_amount`` (0 without one);
    every other type is worth its configured value. The result never
    exceeds ``cap``.
    """
    if reward_type == ReferralRewardType.DISCOUNT_PERCENT.value:
        amount = (service_amount * value / Decimal(100)) if service_amount else Decimal(0)
    else:
        amount = Decimal(value)
    if cap is not None and amount > cap:
        amount = Decimal(cap)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _validate_reward_rule(
    reward_type: str | None,
    value: Decimal | None,
    cap: Decimal | None,
    label: str,
) -> None:
    require_positive(value, f"{label}_reward_value")
    if cap is not None:
        require_positive(cap, f"{label}_reward_max")
    if reward_type == ReferralRewardType.DISCOUNT_PERCENT.value and Decimal(value) > 100:
        raise ValidationError(f"{label}_reward_value cannot exceed 100 percent")


def _validate_program_fields(fields: dict) -> None:
    require_text(fields.get("name"), "name", max_length=200)
    _validate_reward_rule(
        _enum_value(fields.get("referrer_reward_type")),
        fields.get("referrer_reward_value"),
        fields.get("referrer_reward_max"),
        "referrer",
    )
    if fields.get("referee_reward_type") is not None or fields.get("referee_reward_value") is not None:
        if fields.get("referee_reward_type") is None:
            raise ValidationError("referee_reward_type is required with referee_reward_value")
        _validate_reward_rule(
            _enum_value(fields.get("referee_reward_type")),
            fields.get("referee_reward_value"),
            fields.get("referee_reward_max"),
            "referee",
        )
    if fields.get("expiration_days") is not None:
        require_positive_int(fields["expiration_days"], "expiration_days")
    if fields.get("max_referrals_per_patient") is not None:
        require_positive_int(fields["max_referrals_per_patient"], "max_referrals_per_patient")
    require_date_window(fields.get("start_date"), fields.get("end_date"))


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


# =============================================================================
# Program CRUD
# =============================================================================

def create_program(
    db: Session,
    org_id: UUID,
    data: ReferralProgramCreate,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> ReferralProgram:
    """Create a referral program after validating its reward rules."""
    fields = data.model_dump()
    _validate_program_fields(fields)

    repo = ReferralProgramRepository(db)
    if repo.get_by_name(org_id, fields["name"].strip()):
        raise DuplicateProgramNameError(f"Referral program '{fields['name']}' already exists")

    fields["name"] = fields["name"].strip()
    fields["referrer_reward_type"] = _enum_value(fields["referrer_reward_type"])
    fields["referee_reward_type"] = _enum_value(fields["referee_reward_type"])
    program = ReferralProgram(organization_id=org_id, **fields)
    try:
        repo.add(program)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateProgramNameError(f"Referral program '{fields['name']}' already exists")

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.CREATE,
        entity_type="referral_program",
        entity_id=program.id,
        actor_user_id=actor_user_id,
        changes={"name": program.name, "referrer_reward_type": program.referrer_reward_type},
    )
    return program


def update_program(
    db: Session,
    org_id: UUID,
    program_id: UUID,
    data: ReferralProgramUpdate,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> ReferralProgram:
    """Apply a partial update; the merged program is validated like a new one."""
    program = get_program(db, org_id, program_id)
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        return program

    merged = {
        column: getattr(program, column)
        for column in ReferralProgramCreate.model_fields
        if hasattr(program, column)
    }
    merged.update(changes)
    _validate_program_fields(merged)

    if "name" in changes and changes["name"].strip().lower() != program.name.lower():
        if ReferralProgramRepository(db).get_by_name(org_id, changes["name"].strip()):
            raise DuplicateProgramNameError(f"Referral program '{changes['name']}' already exists")

    for field, value in changes.items():
        setattr(program, field, _enum_value(value))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateProgramNameError("Referral program name already exists")

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.UPDATE,
        entity_type="referral_program",
        entity_id=program.id,
        actor_user_id=actor_user_id,
        changes=changes,
    )
    return program


def get_program(db: Session, org_id: UUID, program_id: UUID) -> ReferralProgram:
    program = ReferralProgramRepository(db).get(org_id, program_id)
    if not program:
        raise ReferralProgramNotFoundError("Referral program not found")
    return program


def list_programs(db: Session, org_id: UUID, include_inactive: bool = False) -> list[ReferralProgram]:
    criteria = [] if include_inactive else [ReferralProgram.is_active.is_(True)]
    return ReferralProgramRepository(db).list(
        org_id, *criteria, order_by=(ReferralProgram.created_at.desc(),)
    )


def get_active_programs(db: Session, org_id: UUID, now: datetime | None = None) -> list[ReferralProgram]:
    """Programs flagged active whose window contains ``now``."""
    return ReferralProgramRepository(db).list_active(org_id, now or utcnow())


def _program_accepts_referrals(program: ReferralProgram, now: datetime) -> bool:
    if not program.is_active:
        return False
    if program.start_date and program.start_date > now:
        return False
    if program.end_date and program.end_date < now:
        return False
    return True


# =============================================================================
# Referral codes
# =============================================================================

def generate_referral_code(length: int | None = None, prefix: str | None = None) -> str:
    """Random uppercase code from a CSPRNG, optionally prefixed (``SPRING-7KQ2M9XA``)."""
    body = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length or settings.REFERRAL_CODE_LENGTH))
    if prefix:
        clean_prefix = "".join(ch for ch in prefix.upper() if ch.isalnum())
        if clean_prefix:
            return f"{clean_prefix}-{body}"
    return body


# =============================================================================
# Referral lifecycle
# =============================================================================

def _check_referral_cap(db: Session, org_id: UUID, program: ReferralProgram, referrer_id: UUID) -> None:
    """
    Enforce ``max_referrals_per_patient``.

    The program row stays locked until the caller commits its insert, so
    concurrent creates for the same program count one after another.
    """
    ReferralProgramRepository(db).lock(org_id, program.id)
    existing = ReferralRepository(db).count_live_for_referrer(org_id, program.id, referrer_id)
    if existing >= program.max_referrals_per_patient:
        db.rollback()
        raise ReferralCapExceededError(
            f"Referrer has reached the limit of {program.max_referrals_per_patient} referrals"
        )


def create_referral(
    db: Session,
    org_id: UUID,
    data: ReferralCreate,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> Referral:
    """
    Create a PENDING referral with a fresh unique code.

    Raises:
        ReferralProgramNotFoundError: program missing or in another org
        ProgramInactiveError: program inactive or outside its window
        ReferralCapExceededError: referrer reached max_referrals_per_patient
        ReferralCodeGenerationError: no unique code within the configured attempts
    """
    now = now or utcnow()
    referee = data.referee
    try:
        referee_email = normalize_email(referee.email) if referee else None
        referee_phone = normalize_phone(referee.phone) if referee else None
    except ValueError as exc:
        raise ValidationError(str(exc))

    program = get_program(db, org_id, data.program_id)
    if not _program_accepts_referrals(program, now):
        raise ProgramInactiveError(f"Referral program '{program.name}' is not accepting referrals")

    repo = ReferralRepository(db)
    expires_at = now + timedelta(days=program.expiration_days) if program.expiration_days else None
    referral = None
    for attempt in range(1, settings.REFERRAL_CODE_MAX_ATTEMPTS + 1):
        if program.max_referrals_per_patient:
            _check_referral_cap(db, org_id, program, data.referrer_id)
        code = generate_referral_code(prefix=data.code_prefix)
        if repo.code_exists(org_id, code):
            logger.info("Referral code collision on attempt %s", attempt)
            continue
        referral = Referral(
            organization_id=org_id,
            program_id=program.id,
            referrer_id=data.referrer_id,
            referee_name=normalize_name(referee.name) if referee else None,
            referee_email=referee_email,
            referee_phone=referee_phone,
            referee_notes=referee.notes if referee else None,
            referral_code=code,
            status=ReferralStatus.PENDING.value,
            utm_source=data.utm_source,
            utm_medium=data.utm_medium,
            utm_campaign=data.utm_campaign,
            expires_at=expires_at,
            created_at=now,
        )
        try:
            repo.add(referral)
            db.commit()
            break
        except IntegrityError:
            # Lost a race for the same code against another writer.
            db.rollback()
            referral = None
            logger.info("Referral code insert conflict on attempt %s", attempt)
    if referral is None:
        raise ReferralCodeGenerationError("Could not generate a unique referral code")

    logger.info(
        "Referral created",
        extra={"context": build_log_context(org_id=org_id, entity_type="referral", entity_id=referral.id)},
    )
    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.CREATE,
        entity_type="referral",
        entity_id=referral.id,
        actor_user_id=actor_user_id,
        changes={"program_id": program.id, "referrer_id": data.referrer_id, "referral_code": code},
    )
    return referral


def _is_past_expiry(referral: Referral, now: datetime) -> bool:
    return (
        referral.status in OPEN_REFERRAL_STATUSES
        and referral.expires_at is not None
        and now > referral.expires_at
    )


def _expire(
    db: Session,
    org_id: UUID,
    referral: Referral,
    now: datetime,
    audit: AuditSink | None,
) -> bool:
    """Persist EXPIRED for an open referral past its expiry; returns whether this call did it."""
    won = ReferralRepository(db).compare_and_set(
        org_id,
        referral.id,
        OPEN_REFERRAL_STATUSES,
        {"status": ReferralStatus.EXPIRED.value, "expired_at": now, "updated_at": now},
    )
    db.commit()
    if won:
        audit_service.emit(
            audit,
            org_id=org_id,
            action=AuditAction.STATUS_CHANGE,
            entity_type="referral",
            entity_id=referral.id,
            changes={"status": ReferralStatus.EXPIRED.value},
        )
    return won


def _check_expiry(
    db: Session,
    org_id: UUID,
    referral: Referral,
    now: datetime,
    audit: AuditSink | None = None,
) -> Referral:
    """Lazily expire a referral whose age exceeds the program's expiration window."""
    if _is_past_expiry(referral, now):
        _expire(db, org_id, referral, now, audit)
    return referral


def expire_stale_referrals(
    db: Session,
    org_id: UUID,
    now: datetime | None = None,
    audit: AuditSink | None = None,
) -> int:
    """Sweep entry point for the external scheduler. Returns how many referrals expired."""
    now = now or utcnow()
    expired = 0
    for referral in ReferralRepository(db).list_stale(org_id, now):
        if _expire(db, org_id, referral, now, audit):
            expired += 1
    if expired:
        logger.info("Expired %s referrals", expired, extra={"context": build_log_context(org_id=org_id)})
    return expired


def get_referral(
    db: Session,
    org_id: UUID,
    referral_id: UUID,
    now: datetime | None = None,
    audit: AuditSink | None = None,
) -> Referral:
    referral = ReferralRepository(db).get(org_id, referral_id)
    if not referral:
        raise ReferralNotFoundError("Referral not found")
    return _check_expiry(db, org_id, referral, now or utcnow(), audit)


def get_referral_by_code(
    db: Session,
    org_id: UUID,
    code: str,
    now: datetime | None = None,
    audit: AuditSink | None = None,
) -> Referral:
    referral = ReferralRepository(db).get_by_code(org_id, code)
    if not referral:
        raise ReferralNotFoundError(f"No referral matches code '{code}'")
    return _check_expiry(db, org_id, referral, now or utcnow(), audit)


def list_referrals(
    db: Session,
    org_id: UUID,
    status: ReferralStatus | None = None,
    program_id: UUID | None = None,
    referrer_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
    now: datetime | None = None,
) -> tuple[list[Referral], int]:
    """List referrals (newest first) after expiring any that are past due."""
    expire_stale_referrals(db, org_id, now)

    criteria = []
    if status:
        criteria.append(Referral.status == _enum_value(status))
    if program_id:
        criteria.append(Referral.program_id == program_id)
    if referrer_id:
        criteria.append(Referral.referrer_id == referrer_id)

    repo = ReferralRepository(db)
    total = repo.count(org_id, *criteria)
    items = repo.list(
        org_id,
        *criteria,
        order_by=(Referral.created_at.desc(), Referral.id),
        limit=limit,
        offset=offset,
    )
    return items, total


def link_referee_patient(
    db: Session,
    org_id: UUID,
    data: ReferralLink,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> Referral:
    """
    Attach the referee's patient record and move PENDING → QUALIFIED.

    When the program requires a new patient and the patient record predates
    the referral, qualification still proceeds with ``existing_patient_flag``
    set for manual review.
    """
    now = now or utcnow()
    referral = get_referral_by_code(db, org_id, data.referral_code, now=now, audit=audit)

    if referral.status == ReferralStatus.EXPIRED.value:
        raise ReferralExpiredError("Referral has expired")
    if referral.referee_id is not None:
        raise ReferralAlreadyLinkedError("Referral is already linked to a patient")
    if referral.status != ReferralStatus.PENDING.value:
        raise InvalidReferralTransitionError(
            f"Cannot link a referral in status '{referral.status}'"
        )

    flagged = bool(
        referral.program.require_new_patient
        and data.patient_created_at is not None
        and data.patient_created_at < referral.created_at
    )

    won = ReferralRepository(db).compare_and_set(
        org_id,
        referral.id,
        [ReferralStatus.PENDING.value],
        {
            "status": ReferralStatus.QUALIFIED.value,
            "referee_id": data.patient_id,
            "qualified_at": now,
            "existing_patient_flag": flagged,
            "updated_at": now,
        },
    )
    if not won:
        db.rollback()
        raise ReferralAlreadyLinkedError("Referral was linked by another request")
    db.commit()

    context = build_log_context(org_id=org_id, entity_type="referral", entity_id=referral.id)
    if flagged:
        logger.warning("Referral qualified for an existing patient", extra={"context": context})
    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.LINK,
        entity_type="referral",
        entity_id=referral.id,
        actor_user_id=actor_user_id,
        changes={
            "status": ReferralStatus.QUALIFIED.value,
            "referee_id": data.patient_id,
            "existing_patient_flag": flagged,
        },
    )
    return referral


def _prior_completion(db: Session, org_id: UUID, referral: Referral) -> ReferralCompletion:
    rewards = {
        reward.recipient_role: reward
        for reward in ReferralRewardRepository(db).list_for_referral(org_id, referral.id)
    }
    return ReferralCompletion(
        referral=referral,
        referrer_reward=rewards.get(RewardRecipientRole.REFERRER.value),
        referee_reward=rewards.get(RewardRecipientRole.REFEREE.value),
    )


def complete_referral(
    db: Session,
    org_id: UUID,
    referral_id: UUID,
    service_amount: Decimal | None = None,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> ReferralCompletion:
    """
    Move QUALIFIED → COMPLETED and issue rewards at most once.

    Calling this again on a COMPLETED referral returns the rewards issued
    the first time. The status transition and both reward rows commit
    together or not at all.
    """
    now = now or utcnow()
    if service_amount is not None:
        service_amount = require_non_negative(service_amount, "service_amount")

    referral = get_referral(db, org_id, referral_id, now=now, audit=audit)
    if referral.status == ReferralStatus.COMPLETED.value:
        return _prior_completion(db, org_id, referral)
    if referral.status == ReferralStatus.EXPIRED.value:
        raise ReferralExpiredError("Referral has expired")
    if referral.status != ReferralStatus.QUALIFIED.value:
        raise InvalidReferralTransitionError(
            f"Referral must be qualified to complete (status '{referral.status}')"
        )

    program = referral.program
    referrer_amount = calculate_reward(
        program.referrer_reward_type,
        program.referrer_reward_value,
        program.referrer_reward_max,
        service_amount,
    )
    referee_amount = None
    if program.referee_reward_type and program.referee_reward_value is not None:
        referee_amount = calculate_reward(
            program.referee_reward_type,
            program.referee_reward_value,
            program.referee_reward_max,
            service_amount,
        )

    repo = ReferralRepository(db)
    won = repo.compare_and_set(
        org_id,
        referral.id,
        [ReferralStatus.QUALIFIED.value],
        {
            "status": ReferralStatus.COMPLETED.value,
            "completed_at": now,
            "referrer_reward_amount": referrer_amount,
            "referee_reward_amount": referee_amount,
            "updated_at": now,
        },
    )
    if not won:
        db.rollback()
        referral = get_referral(db, org_id, referral_id, now=now)
        if referral.status == ReferralStatus.COMPLETED.value:
            return _prior_completion(db, org_id, referral)
        raise ReferralTransitionConflictError("Referral changed while completing")

    referrer_reward = ReferralReward(
        organization_id=org_id,
        referral_id=referral.id,
        recipient_role=RewardRecipientRole.REFERRER.value,
        recipient_id=referral.referrer_id,
        reward_type=program.referrer_reward_type,
        amount=referrer_amount,
        note=program.referrer_reward_note,
        issued_at=now,
    )
    referee_reward = None
    if referee_amount is not None:
        referee_reward = ReferralReward(
            organization_id=org_id,
            referral_id=referral.id,
            recipient_role=RewardRecipientRole.REFEREE.value,
            recipient_id=referral.referee_id,
            reward_type=program.referee_reward_type,
            amount=referee_amount,
            note=program.referee_reward_note,
            issued_at=now,
        )

    reward_repo = ReferralRewardRepository(db)
    try:
        for reward in (referrer_reward, referee_reward):
            if reward is not None:
                reward_repo.add(reward)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ReferralTransitionConflictError("Rewards for this referral were already issued")

    logger.info(
        "Referral completed",
        extra={"context": build_log_context(org_id=org_id, entity_type="referral", entity_id=referral.id)},
    )
    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.COMPLETE,
        entity_type="referral",
        entity_id=referral.id,
        actor_user_id=actor_user_id,
        changes={
            "status": ReferralStatus.COMPLETED.value,
            "referrer_reward_amount": referrer_amount,
            "referee_reward_amount": referee_amount,
        },
    )
    for reward in (referrer_reward, referee_reward):
        if reward is not None:
            audit_service.emit(
                audit,
                org_id=org_id,
                action=AuditAction.ISSUE_REWARD,
                entity_type="referral_reward",
                entity_id=reward.id,
                actor_user_id=actor_user_id,
                changes={"recipient_role": reward.recipient_role, "amount": reward.amount},
            )
    return ReferralCompletion(referral, referrer_reward, referee_reward)


def cancel_referral(
    db: Session,
    org_id: UUID,
    referral_id: UUID,
    now: datetime | None = None,
    actor_user_id: UUID | None = None,
    audit: AuditSink | None = None,
) -> Referral:
    """PENDING/QUALIFIED → CANCELLED."""
    now = now or utcnow()
    referral = get_referral(db, org_id, referral_id, now=now, audit=audit)
    if referral.status == ReferralStatus.EXPIRED.value:
        raise ReferralExpiredError("Referral has expired")
    if referral.status not in OPEN_REFERRAL_STATUSES:
        raise InvalidReferralTransitionError(
            f"Cannot cancel a referral in status '{referral.status}'"
        )

    won = ReferralRepository(db).compare_and_set(
        org_id,
        referral.id,
        OPEN_REFERRAL_STATUSES,
        {"status": ReferralStatus.CANCELLED.value, "cancelled_at": now, "updated_at": now},
    )
    if not won:
        db.rollback()
        raise ReferralTransitionConflictError("Referral changed while cancelling")
    db.commit()

    audit_service.emit(
        audit,
        org_id=org_id,
        action=AuditAction.STATUS_CHANGE,
        entity_type="referral",
        entity_id=referral.id,
        actor_user_id=actor_user_id,
        changes={"status": ReferralStatus.CANCELLED.value},
    )
    return referral


# =============================================================================
# Reporting
# =============================================================================

def _percent(numerator: int, denominator: int) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 2)


def get_statistics(
    db: Session,
    org_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
    now: datetime | None = None,
) -> ReferralStats:
    """Referral funnel counts and issued reward totals for referrals created in the range."""
    require_date_window(start, end, "start", "end")
    expire_stale_referrals(db, org_id, now)

    counts = ReferralRepository(db).status_counts(org_id, start, end)
    rewards = ReferralRewardRepository(db).totals_by_role(org_id, start, end)
    total = sum(counts.values())
    qualified = counts.get(ReferralStatus.QUALIFIED.value, 0)
    completed = counts.get(ReferralStatus.COMPLETED.value, 0)
    return ReferralStats(
        total=total,
        pending=counts.get(ReferralStatus.PENDING.value, 0),
        qualified=qualified,
        completed=completed,
        expired=counts.get(ReferralStatus.EXPIRED.value, 0),
        cancelled=counts.get(ReferralStatus.CANCELLED.value, 0),
        conversion_rate=_percent(qualified + completed, total),
        completion_rate=_percent(completed, qualified + completed),
        total_referrer_rewards=rewards.get(RewardRecipientRole.REFERRER.value, Decimal("0")),
        total_referee_rewards=rewards.get(RewardRecipientRole.REFEREE.value, Decimal("0")),
    )


def get_top_referrers(
    db: Session,
    org_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 10,
) -> list[TopReferrer]:
    """Referrers ranked by referrals completed in the range; ties go to the earliest referrer."""
    require_date_window(start, end, "start", "end")
    require_positive_int(limit, "limit")
    return [
        TopReferrer(referrer_id=referrer_id, completed_referrals=count, first_referral_at=first)
        for referrer_id, count, first in ReferralRepository(db).top_referrers(org_id, start, end, limit)
    ]
