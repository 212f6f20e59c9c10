"""Lead models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from practice_growth.db.base import Base
from practice_growth.db.enums import LeadSource, LeadStatus
from practice_growth.db.types import utcnow


class Lead(Base):
    """
    A prospective patient captured before conversion.

    ``status == converted`` implies ``converted_patient_id`` is set, and
    a converted lead accepts no further status writes.
    """

    __tablename__ = "leads"
    __table_args__ = (
        Index("idx_leads_org_status", "organization_id", "status"),
        Index("idx_leads_org_email", "organization_id", "email"),
        Index("idx_leads_org_phone", "organization_id", "phone"),
        Index("idx_leads_org_follow_up", "organization_id", "follow_up_at"),
        Index("idx_leads_org_created", "organization_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )

    # Contact
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    preferred_contact: Mapped[str | None] = mapped_column(String(20), nullable=True)
    preferred_times: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    primary_concern: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Lifecycle
    source: Mapped[str] = mapped_column(String(30), default=LeadSource.OTHER.value, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=LeadStatus.NEW.value, nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    score_factors: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    assigned_to_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Attribution
    utm_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_content: Mapped[str | None] = mapped_column(String(100), nullable=True)
    utm_term: Mapped[str | None] = mapped_column(String(100), nullable=True)
    landing_page: Mapped[str | None] = mapped_column(String(500), nullable=True)
    referrer_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    campaign_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("marketing_campaigns.id", ondelete="SET NULL"), nullable=True
    )
    referral_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("referrals.id", ondelete="SET NULL"), nullable=True
    )

    # Nurture
    current_sequence_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("nurture_sequences.id", ondelete="SET NULL"), nullable=True
    )

    # Follow-up tracking
    follow_up_at: Mapped[datetime | None] = mapped_column(nullable=True)
    contact_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_contacted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    opted_out_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Conversion
    converted_patient_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    converted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    activities: Mapped[list["LeadActivity"]] = relationship(
        back_populates="lead", order_by="LeadActivity.created_at"
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    @property
    def is_opted_out(self) -> bool:
        return self.opted_out_at is not None


class LeadActivity(Base):
    """Append-only trail of what happened to a lead. Rows are never updated."""

    __tablename__ = "lead_activities"
    __table_args__ = (
        Index("idx_lead_activities_lead", "lead_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    lead_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    activity_type: Mapped[str] = mapped_column(String(40), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    lead: Mapped["Lead"] = relationship(back_populates="activities")
