"""Referral program models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from practice_growth.db.base import Base
from practice_growth.db.enums import ReferralStatus
from practice_growth.db.types import utcnow


class ReferralProgram(Base):
    """
    Reward rules for a practice's referral program.

    Reward values are validated as positive on create and update. A
    program stays editable after referrals point at it; already issued
    rewards are stored on ``ReferralReward`` and never recomputed.
    """

    __tablename__ = "referral_programs"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_referral_program_name"),
        Index("idx_referral_programs_org_active", "organization_id", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Referrer reward
    referrer_reward_type: Mapped[str] = mapped_column(String(30), nullable=False)
    referrer_reward_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    referrer_reward_max: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    referrer_reward_note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Referee reward (optional)
    referee_reward_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    referee_reward_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    referee_reward_max: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    referee_reward_note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Rules
    qualification_criteria: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    expiration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_referrals_per_patient: Mapped[int | None] = mapped_column(Integer, nullable=True)
    require_new_patient: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    terms_and_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Active window
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    start_date: Mapped[datetime | None] = mapped_column(nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class Referral(Base):
    """
    A single tracked introduction from a referrer to a prospective patient.

    ``referee_id`` is written once, by the PENDING → QUALIFIED transition.
    """

    __tablename__ = "referrals"
    __table_args__ = (
        UniqueConstraint("organization_id", "referral_code", name="uq_referral_code"),
        Index("idx_referrals_org_status", "organization_id", "status"),
        Index("idx_referrals_org_referrer", "organization_id", "referrer_id"),
        Index("idx_referrals_org_created", "organization_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    program_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("referral_programs.id", ondelete="RESTRICT"), nullable=False
    )

    # Participants (patient records live in the practice-management system)
    referrer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    referee_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Referee contact captured before the referee becomes a patient
    referee_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    referee_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    referee_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    referee_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    referral_code: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ReferralStatus.PENDING.value, nullable=False
    )
    # Set when require_new_patient is on and the referee predates the referral
    existing_patient_flag: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Attribution
    utm_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Issued reward amounts (mirrors ReferralReward rows)
    referrer_reward_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    referee_reward_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    qualified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    program: Mapped["ReferralProgram"] = relationship()
    rewards: Mapped[list["ReferralReward"]] = relationship(
        back_populates="referral", order_by="ReferralReward.recipient_role.desc()"
    )


class ReferralReward(Base):
    """
    A reward issued for a completed referral.

    At most one row per (referral, recipient role); the unique constraint
    is what makes reward issuance at-most-once under concurrent calls.
    """

    __tablename__ = "referral_rewards"
    __table_args__ = (
        UniqueConstraint("referral_id", "recipient_role", name="uq_referral_reward_role"),
        Index("idx_referral_rewards_org_issued", "organization_id", "issued_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    referral_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("referrals.id", ondelete="CASCADE"), nullable=False
    )
    recipient_role: Mapped[str] = mapped_column(String(20), nullable=False)
    recipient_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    reward_type: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    issued_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    referral: Mapped["Referral"] = relationship(back_populates="rewards")
