"""Tests for referral programs, codes, lifecycle and reward issuance."""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from practice_growth.core.exceptions import ValidationError
from practice_growth.db.enums import AuditAction, ReferralRewardType, ReferralStatus
from practice_growth.db.models import ReferralReward
from practice_growth.schemas.referral import (
    RefereeContact,
    ReferralCreate,
    ReferralLink,
    ReferralProgramCreate,
    ReferralProgramUpdate,
)
from practice_growth.services import referral_service


@pytest.fixture
def program(db, test_org):
    return referral_service.create_program(
        db,
        test_org.id,
        ReferralProgramCreate(
            name="Friends & Family",
            referrer_reward_type=ReferralRewardType.CREDIT,
            referrer_reward_value=Decimal("25"),
            referee_reward_type=ReferralRewardType.DISCOUNT_PERCENT,
            referee_reward_value=Decimal("20"),
            referee_reward_max=Decimal("30"),
            expiration_days=30,
            max_referrals_per_patient=2,
        ),
    )


def _refer(db, org_id, program, now, referrer_id=None, **kwargs):
    return referral_service.create_referral(
        db,
        org_id,
        ReferralCreate(program_id=program.id, referrer_id=referrer_id or uuid.uuid4(), **kwargs),
        now=now,
    )


def _qualify(db, org_id, referral, now, patient_id=None):
    return referral_service.link_referee_patient(
        db,
        org_id,
        ReferralLink(referral_code=referral.referral_code, patient_id=patient_id or uuid.uuid4()),
        now=now,
    )


# =============================================================================
# Reward calculation
# =============================================================================

def test_percent_reward_is_taken_from_service_amount_and_capped():
    amount = referral_service.calculate_reward(
        ReferralRewardType.DISCOUNT_PERCENT.value, Decimal("20"), Decimal("30"), Decimal("200")
    )
    assert amount == Decimal("30.00")


def test_percent_reward_without_service_amount_is_zero():
    amount = referral_service.calculate_reward(ReferralRewardType.DISCOUNT_PERCENT.value, Decimal("15"))
    assert amount == Decimal("0.00")


def test_fixed_reward_rounds_to_cents():
    amount = referral_service.calculate_reward(ReferralRewardType.CASH.value, Decimal("12.345"))
    assert amount == Decimal("12.35")


def test_fixed_reward_respects_cap():
    amount = referral_service.calculate_reward(ReferralRewardType.GIFT_CARD.value, Decimal("75"), Decimal("50"))
    assert amount == Decimal("50.00")


# =============================================================================
# Programs
# =============================================================================

def test_program_percent_over_100_is_rejected(db, test_org):
    with pytest.raises(ValidationError):
        referral_service.create_program(
            db,
            test_org.id,
            ReferralProgramCreate(
                name="Too generous",
                referrer_reward_type=ReferralRewardType.DISCOUNT_PERCENT,
                referrer_reward_value=Decimal("120"),
            ),
        )


def test_program_requires_positive_reward(db, test_org):
    with pytest.raises(ValidationError):
        referral_service.create_program(
            db,
            test_org.id,
            ReferralProgramCreate(
                name="Nothing",
                referrer_reward_type=ReferralRewardType.CREDIT,
                referrer_reward_value=Decimal("0"),
            ),
        )


def test_duplicate_program_name_conflicts(db, test_org, program):
    with pytest.raises(referral_service.DuplicateProgramNameError):
        referral_service.create_program(
            db,
            test_org.id,
            ReferralProgramCreate(
                name="friends & family",
                referrer_reward_type=ReferralRewardType.CREDIT,
                referrer_reward_value=Decimal("10"),
            ),
        )


def test_update_program_validates_merged_fields(db, test_org, program):
    with pytest.raises(ValidationError):
        referral_service.update_program(
            db,
            test_org.id,
            program.id,
            ReferralProgramUpdate(referrer_reward_type=ReferralRewardType.DISCOUNT_PERCENT, referrer_reward_value=Decimal("150")),
        )

    updated = referral_service.update_program(
        db, test_org.id, program.id, ReferralProgramUpdate(referrer_reward_value=Decimal("40"))
    )
    assert updated.referrer_reward_value == Decimal("40")


def test_inactive_program_rejects_referrals(db, test_org, program, now):
    referral_service.update_program(db, test_org.id, program.id, ReferralProgramUpdate(is_active=False))

    with pytest.raises(referral_service.ProgramInactiveError):
        _refer(db, test_org.id, program, now)


def test_active_programs_exclude_ended_windows(db, test_org, program, now):
    referral_service.create_program(
        db,
        test_org.id,
        ReferralProgramCreate(
            name="Last winter",
            referrer_reward_type=ReferralRewardType.CREDIT,
            referrer_reward_value=Decimal("10"),
            start_date=now - timedelta(days=90),
            end_date=now - timedelta(days=30),
        ),
    )

    active = referral_service.get_active_programs(db, test_org.id, now=now)

    assert [p.id for p in active] == [program.id]


# =============================================================================
# Codes and creation
# =============================================================================

def test_generated_codes_are_unique_uppercase():
    codes = {referral_service.generate_referral_code() for _ in range(200)}
    assert len(codes) == 200
    assert all(code == code.upper() and len(code) == 8 for code in codes)


def test_code_prefix_is_cleaned():
    code = referral_service.generate_referral_code(prefix="spring!")
    prefix, body = code.split("-")
    assert prefix == "SPRING"
    assert len(body) == 8


def test_create_referral_sets_pending_and_expiry(db, test_org, program, now, audit_sink):
    referral = referral_service.create_referral(
        db,
        test_org.id,
        ReferralCreate(
            program_id=program.id,
            referrer_id=uuid.uuid4(),
            referee=RefereeContact(name="  Jamie   Doe ", email="Jamie@Example.com", phone="(555) 123-4567"),
        ),
        now=now,
        audit=audit_sink,
    )

    assert referral.status == ReferralStatus.PENDING.value
    assert referral.expires_at == now + timedelta(days=30)
    assert referral.referee_name == "Jamie Doe"
    assert referral.referee_email == "jamie@example.com"
    assert referral.referee_phone == "+15551234567"
    assert audit_sink.events[0].changes["referral_code"] == referral.referral_code


def test_referral_cap_counts_only_live_referrals(db, test_org, program, now):
    referrer_id = uuid.uuid4()
    first = _refer(db, test_org.id, program, now, referrer_id)
    _refer(db, test_org.id, program, now, referrer_id)

    with pytest.raises(referral_service.ReferralCapExceededError):
        _refer(db, test_org.id, program, now, referrer_id)

    referral_service.cancel_referral(db, test_org.id, first.id, now=now)
    third = _refer(db, test_org.id, program, now, referrer_id)
    assert third.status == ReferralStatus.PENDING.value


def test_referral_is_invisible_to_other_org(db, test_org, other_org, program, now):
    referral = _refer(db, test_org.id, program, now)

    with pytest.raises(referral_service.ReferralNotFoundError):
        referral_service.get_referral(db, other_org.id, referral.id, now=now)
    with pytest.raises(referral_service.ReferralNotFoundError):
        referral_service.get_referral_by_code(db, other_org.id, referral.referral_code, now=now)


def test_program_from_other_org_is_not_found(db, other_org, program, now):
    with pytest.raises(referral_service.ReferralProgramNotFoundError):
        _refer(db, other_org.id, program, now)


# =============================================================================
# Linking and expiry
# =============================================================================

def test_link_qualifies_referral(db, test_org, program, now):
    referral = _refer(db, test_org.id, program, now)
    patient_id = uuid.uuid4()

    linked = _qualify(db, test_org.id, referral, now + timedelta(days=2), patient_id)

    assert linked.status == ReferralStatus.QUALIFIED.value
    assert linked.referee_id == patient_id
    assert linked.existing_patient_flag is False


def test_link_lookup_ignores_code_case(db, test_org, program, now):
    referral = _refer(db, test_org.id, program, now)

    linked = referral_service.link_referee_patient(
        db,
        test_org.id,
        ReferralLink(referral_code=referral.referral_code.lower(), patient_id=uuid.uuid4()),
        now=now,
    )

    assert linked.id == referral.id


def test_existing_patient_is_flagged_not_blocked(db, test_org, program, now):
    referral = _refer(db, test_org.id, program, now)

    linked = referral_service.link_referee_patient(
        db,
        test_org.id,
        ReferralLink(
            referral_code=referral.referral_code,
            patient_id=uuid.uuid4(),
            patient_created_at=now - timedelta(days=365),
        ),
        now=now + timedelta(hours=1),
    )

    assert linked.status == ReferralStatus.QUALIFIED.value
    assert linked.existing_patient_flag is True


def test_relinking_a_referral_conflicts(db, test_org, program, now):
    referral = _refer(db, test_org.id, program, now)
    _qualify(db, test_org.id, referral, now)

    with pytest.raises(referral_service.ReferralAlreadyLinkedError) as exc_info:
        _qualify(db, test_org.id, referral, now)
    assert exc_info.value.status_code == 409


def test_referral_expires_lazily_on_read(db, test_org, program, now, audit_sink):
    referral = _refer(db, test_org.id, program, now)
    later = now + timedelta(days=31)

    fetched = referral_service.get_referral(db, test_org.id, referral.id, now=later, audit=audit_sink)
    again = referral_service.get_referral(db, test_org.id, referral.id, now=later, audit=audit_sink)

    assert fetched.status == ReferralStatus.EXPIRED.value
    assert again.expired_at == later
    assert audit_sink.actions("referral") == [AuditAction.STATUS_CHANGE]


def test_expired_referral_cannot_be_linked(db, test_org, program, now):
    referral = _refer(db, test_org.id, program, now)

    with pytest.raises(referral_service.ReferralExpiredError):
        _qualify(db, test_org.id, referral, now + timedelta(days=45))


def test_expiry_sweep_only_touches_overdue_open_referrals(db, test_org, program, now):
    stale = _refer(db, test_org.id, program, now - timedelta(days=40))
    fresh = _refer(db, test_org.id, program, now)
    done = _refer(db, test_org.id, program, now - timedelta(days=40))
    _qualify(db, test_org.id, done, now - timedelta(days=39))
    referral_service.complete_referral(db, test_org.id, done.id, now=now - timedelta(days=38))

    assert referral_service.expire_stale_referrals(db, test_org.id, now=now) == 1

    db.expire_all()
    assert referral_service.get_referral(db, test_org.id, stale.id, now=now).status == ReferralStatus.EXPIRED.value
    assert referral_service.get_referral(db, test_org.id, fresh.id, now=now).status == ReferralStatus.PENDING.value
    assert referral_service.get_referral(db, test_org.id, done.id, now=now).status == ReferralStatus.COMPLETED.value


# =============================================================================
# Completion
# =============================================================================

def test_complete_issues_both_rewards(db, test_org, program, now, audit_sink):
    referral = _refer(db, test_org.id, program, now)
    _qualify(db, test_org.id, referral, now)

    result = referral_service.complete_referral(
        db, test_org.id, referral.id, service_amount=Decimal("200"), now=now, audit=audit_sink
    )

    assert result.referral.status == ReferralStatus.COMPLETED.value
    assert result.referrer_reward.amount == Decimal("25.00")
    assert result.referee_reward.amount == Decimal("30.00")
    assert result.referee_reward.recipient_id == referral.referee_id
    assert audit_sink.actions("referral_reward") == [AuditAction.ISSUE_REWARD, AuditAction.ISSUE_REWARD]


def test_complete_is_idempotent(db, test_org, program, now, audit_sink):
    referral = _refer(db, test_org.id, program, now)
    _qualify(db, test_org.id, referral, now)

    first = referral_service.complete_referral(
        db, test_org.id, referral.id, service_amount=Decimal("100"), now=now, audit=audit_sink
    )
    second = referral_service.complete_referral(
        db, test_org.id, referral.id, service_amount=Decimal("500"), now=now + timedelta(days=1), audit=audit_sink
    )

    assert second.referrer_reward.id == first.referrer_reward.id
    assert second.referee_reward.amount == Decimal("20.00")
    assert db.query(ReferralReward).filter_by(referral_id=referral.id).count() == 2
    assert audit_sink.actions("referral").count(AuditAction.COMPLETE) == 1


def test_pending_referral_cannot_complete(db, test_org, program, now):
    referral = _refer(db, test_org.id, program, now)

    with pytest.raises(referral_service.InvalidReferralTransitionError):
        referral_service.complete_referral(db, test_org.id, referral.id, now=now)


def test_cancelled_referral_cannot_complete(db, test_org, program, now):
    referral = _refer(db, test_org.id, program, now)
    _qualify(db, test_org.id, referral, now)
    referral_service.cancel_referral(db, test_org.id, referral.id, now=now)

    with pytest.raises(referral_service.InvalidReferralTransitionError):
        referral_service.complete_referral(db, test_org.id, referral.id, now=now)


def test_completed_referral_cannot_be_cancelled(db, test_org, program, now):
    referral = _refer(db, test_org.id, program, now)
    _qualify(db, test_org.id, referral, now)
    referral_service.complete_referral(db, test_org.id, referral.id, now=now)

    with pytest.raises(referral_service.InvalidReferralTransitionError):
        referral_service.cancel_referral(db, test_org.id, referral.id, now=now)


# =============================================================================
# Reporting
# =============================================================================

def test_statistics_rates_and_reward_totals(db, test_org, program, now):
    completed = _refer(db, test_org.id, program, now)
    _qualify(db, test_org.id, completed, now)
    referral_service.complete_referral(db, test_org.id, completed.id, now=now)
    _refer(db, test_org.id, program, now)
    cancelled = _refer(db, test_org.id, program, now)
    referral_service.cancel_referral(db, test_org.id, cancelled.id, now=now)

    stats = referral_service.get_statistics(db, test_org.id, now=now)

    assert stats.total == 3
    assert stats.completed == 1
    assert stats.pending == 1
    assert stats.cancelled == 1
    assert stats.conversion_rate == 33.33
    assert stats.completion_rate == 100.0
    assert stats.total_referrer_rewards == Decimal("25")
    assert stats.total_referee_rewards == Decimal("0")


def test_statistics_empty_org_has_zero_rates(db, test_org, now):
    stats = referral_service.get_statistics(db, test_org.id, now=now)
    assert stats.total == 0
    assert stats.conversion_rate == 0.0


def test_statistics_rejects_inverted_window(db, test_org, now):
    with pytest.raises(ValidationError):
        referral_service.get_statistics(db, test_org.id, start=now, end=now - timedelta(days=1))


def test_top_referrers_ranked_by_completions(db, test_org, program, now):
    busy, quiet = uuid.uuid4(), uuid.uuid4()
    for referrer_id, count in ((quiet, 1), (busy, 2)):
        for _ in range(count):
            referral = _refer(db, test_org.id, program, now, referrer_id)
            _qualify(db, test_org.id, referral, now)
            referral_service.complete_referral(db, test_org.id, referral.id, now=now)

    top = referral_service.get_top_referrers(db, test_org.id)

    assert [(t.referrer_id, t.completed_referrals) for t in top] == [(busy, 2), (quiet, 1)]


# =============================================================================
# Concurrent writers
# =============================================================================

def test_cap_count_runs_under_program_lock(db, test_org, program, now, monkeypatch):
    from practice_growth.repositories import ReferralProgramRepository, ReferralRepository

    calls = []
    original_lock = ReferralProgramRepository.lock
    original_count = ReferralRepository.count_live_for_referrer

    def lock(self, org_id, program_id):
        calls.append("lock")
        return original_lock(self, org_id, program_id)

    def count(self, org_id, program_id, referrer_id):
        calls.append("count")
        return original_count(self, org_id, program_id, referrer_id)

    monkeypatch.setattr(ReferralProgramRepository, "lock", lock)
    monkeypatch.setattr(ReferralRepository, "count_live_for_referrer", count)

    _refer(db, test_org.id, program, now)

    assert calls == ["lock", "count"]


def test_concurrent_completion_issues_rewards_once(db, second_session, test_org, program, now):
    referral = _refer(db, test_org.id, program, now)
    _qualify(db, test_org.id, referral, now)
    # The second writer read the referral while it was still QUALIFIED.
    referral_service.get_referral(second_session, test_org.id, referral.id, now=now)

    first = referral_service.complete_referral(db, test_org.id, referral.id, Decimal("200"), now=now)
    second = referral_service.complete_referral(
        second_session, test_org.id, referral.id, Decimal("200"), now=now + timedelta(minutes=1)
    )

    assert second.referral.status == ReferralStatus.COMPLETED.value
    assert second.referral.completed_at == now
    assert second.referrer_reward.id == first.referrer_reward.id
    assert second.referee_reward.id == first.referee_reward.id
    assert db.query(ReferralReward).filter_by(referral_id=referral.id).count() == 2


def test_concurrent_link_reports_already_linked(db, second_session, test_org, program, now):
    referral = _refer(db, test_org.id, program, now)
    winner = uuid.uuid4()
    # The second writer read the referral while it was still PENDING.
    referral_service.get_referral_by_code(second_session, test_org.id, referral.referral_code, now=now)

    _qualify(db, test_org.id, referral, now, patient_id=winner)
    with pytest.raises(referral_service.ReferralAlreadyLinkedError):
        referral_service.link_referee_patient(
            second_session,
            test_org.id,
            ReferralLink(referral_code=referral.referral_code, patient_id=uuid.uuid4()),
            now=now,
        )

    db.refresh(referral)
    assert referral.status == ReferralStatus.QUALIFIED.value
    assert referral.referee_id == winner
