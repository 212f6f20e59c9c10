"""Baseline migration - tenants and growth tables

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Creates organizations plus the referral, lead, nurture, review and
campaign tables.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _org_fk() -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE")


def upgrade() -> None:
    """Create tenant and growth tables."""

    # ==========================================================================
    # Organizations
    # ==========================================================================
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("timezone", sa.String(50), nullable=False),
        sa.Column("review_links", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    # ==========================================================================
    # Referrals
    # ==========================================================================
    op.create_table(
        "referral_programs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("referrer_reward_type", sa.String(30), nullable=False),
        sa.Column("referrer_reward_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("referrer_reward_max", sa.Numeric(12, 2), nullable=True),
        sa.Column("referrer_reward_note", sa.String(500), nullable=True),
        sa.Column("referee_reward_type", sa.String(30), nullable=True),
        sa.Column("referee_reward_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("referee_reward_max", sa.Numeric(12, 2), nullable=True),
        sa.Column("referee_reward_note", sa.String(500), nullable=True),
        sa.Column("qualification_criteria", sa.JSON(), nullable=False),
        sa.Column("expiration_days", sa.Integer(), nullable=True),
        sa.Column("max_referrals_per_patient", sa.Integer(), nullable=True),
        sa.Column("require_new_patient", sa.Boolean(), nullable=False),
        sa.Column("terms_and_conditions", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.UniqueConstraint("organization_id", "name", name="uq_referral_program_name"),
    )
    op.create_index("idx_referral_programs_org_active", "referral_programs", ["organization_id", "is_active"])

    op.create_table(
        "referrals",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("program_id", sa.Uuid(), nullable=False),
        sa.Column("referrer_id", sa.Uuid(), nullable=False),
        sa.Column("referee_id", sa.Uuid(), nullable=True),
        sa.Column("referee_name", sa.String(255), nullable=True),
        sa.Column("referee_email", sa.String(255), nullable=True),
        sa.Column("referee_phone", sa.String(50), nullable=True),
        sa.Column("referee_notes", sa.Text(), nullable=True),
        sa.Column("referral_code", sa.String(40), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("existing_patient_flag", sa.Boolean(), nullable=False),
        sa.Column("utm_source", sa.String(100), nullable=True),
        sa.Column("utm_medium", sa.String(100), nullable=True),
        sa.Column("utm_campaign", sa.String(100), nullable=True),
        sa.Column("referrer_reward_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("referee_reward_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("qualified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["program_id"], ["referral_programs.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("organization_id", "referral_code", name="uq_referral_code"),
    )
    op.create_index("idx_referrals_org_status", "referrals", ["organization_id", "status"])
    op.create_index("idx_referrals_org_referrer", "referrals", ["organization_id", "referrer_id"])
    op.create_index("idx_referrals_org_created", "referrals", ["organization_id", "created_at"])

    op.create_table(
        "referral_rewards",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("referral_id", sa.Uuid(), nullable=False),
        sa.Column("recipient_role", sa.String(20), nullable=False),
        sa.Column("recipient_id", sa.Uuid(), nullable=True),
        sa.Column("reward_type", sa.String(30), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["referral_id"], ["referrals.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("referral_id", "recipient_role", name="uq_referral_reward_role"),
    )
    op.create_index("idx_referral_rewards_org_issued", "referral_rewards", ["organization_id", "issued_at"])

    # ==========================================================================
    # Campaigns
    # ==========================================================================
    op.create_table(
        "marketing_campaigns",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("campaign_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("budget", sa.Numeric(12, 2), nullable=True),
        sa.Column("target_leads", sa.Integer(), nullable=True),
        sa.Column("target_conversions", sa.Integer(), nullable=True),
        sa.Column("target_revenue", sa.Numeric(12, 2), nullable=True),
        sa.Column("utm_source", sa.String(100), nullable=True),
        sa.Column("utm_medium", sa.String(100), nullable=True),
        sa.Column("utm_campaign", sa.String(100), nullable=False),
        sa.Column("utm_content", sa.String(100), nullable=True),
        sa.Column("target_audience", sa.JSON(), nullable=False),
        sa.Column("content", sa.JSON(), nullable=False),
        sa.Column("impressions", sa.Integer(), nullable=False),
        sa.Column("clicks", sa.Integer(), nullable=False),
        sa.Column("spend", sa.Numeric(12, 2), nullable=False),
        sa.Column("leads_generated", sa.Integer(), nullable=False),
        sa.Column("conversions", sa.Integer(), nullable=False),
        sa.Column("revenue_generated", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_by_user_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.UniqueConstraint("organization_id", "utm_campaign", name="uq_campaign_utm"),
    )
    op.create_index("idx_marketing_campaigns_org_status", "marketing_campaigns", ["organization_id", "status"])
    op.create_index("idx_marketing_campaigns_org_created", "marketing_campaigns", ["organization_id", "created_at"])

    op.create_table(
        "landing_pages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("campaign_id", sa.Uuid(), nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("headline", sa.String(255), nullable=True),
        sa.Column("content", sa.JSON(), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False),
        sa.Column("views", sa.Integer(), nullable=False),
        sa.Column("submissions", sa.Integer(), nullable=False),
        sa.Column("conversion_rate", sa.Numeric(7, 4), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["campaign_id"], ["marketing_campaigns.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("organization_id", "slug", name="uq_landing_page_slug"),
    )

    # ==========================================================================
    # Nurture sequences
    # ==========================================================================
    op.create_table(
        "nurture_sequences",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("trigger_type", sa.String(30), nullable=False),
        sa.Column("trigger_value", sa.String(100), nullable=True),
        sa.Column("lead_sources", sa.JSON(), nullable=False),
        sa.Column("min_score", sa.Integer(), nullable=True),
        sa.Column("max_score", sa.Integer(), nullable=True),
        sa.Column("exit_on_conversion", sa.Boolean(), nullable=False),
        sa.Column("exit_on_unsubscribe", sa.Boolean(), nullable=False),
        sa.Column("max_days", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_user_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
    )
    op.create_index("idx_nurture_sequences_org_status", "nurture_sequences", ["organization_id", "status"])

    op.create_table(
        "nurture_steps",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("sequence_id", sa.Uuid(), nullable=False),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("delay_days", sa.Integer(), nullable=False),
        sa.Column("delay_hours", sa.Integer(), nullable=False),
        sa.Column("send_time", sa.String(5), nullable=True),
        sa.Column("action_type", sa.String(30), nullable=False),
        sa.Column("template_id", sa.String(100), nullable=True),
        sa.Column("task_title", sa.String(255), nullable=True),
        sa.Column("task_description", sa.Text(), nullable=True),
        sa.Column("task_assign_to", sa.String(100), nullable=True),
        sa.Column("score_change", sa.Integer(), nullable=True),
        sa.Column("condition", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["sequence_id"], ["nurture_sequences.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("sequence_id", "step_number", name="uq_nurture_step_number"),
    )

    # ==========================================================================
    # Leads
    # ==========================================================================
    op.create_table(
        "leads",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("preferred_contact", sa.String(20), nullable=True),
        sa.Column("preferred_times", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(50), nullable=True),
        sa.Column("zip_code", sa.String(20), nullable=True),
        sa.Column("primary_concern", sa.String(500), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("source", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("score_factors", sa.JSON(), nullable=False),
        sa.Column("assigned_to_user_id", sa.Uuid(), nullable=True),
        sa.Column("utm_source", sa.String(100), nullable=True),
        sa.Column("utm_medium", sa.String(100), nullable=True),
        sa.Column("utm_campaign", sa.String(100), nullable=True),
        sa.Column("utm_content", sa.String(100), nullable=True),
        sa.Column("utm_term", sa.String(100), nullable=True),
        sa.Column("landing_page", sa.String(500), nullable=True),
        sa.Column("referrer_url", sa.String(500), nullable=True),
        sa.Column("campaign_id", sa.Uuid(), nullable=True),
        sa.Column("referral_id", sa.Uuid(), nullable=True),
        sa.Column("current_sequence_id", sa.Uuid(), nullable=True),
        sa.Column("follow_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("contact_attempts", sa.Integer(), nullable=False),
        sa.Column("last_contacted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opted_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("converted_patient_id", sa.Uuid(), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["campaign_id"], ["marketing_campaigns.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["referral_id"], ["referrals.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["current_sequence_id"], ["nurture_sequences.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_leads_org_status", "leads", ["organization_id", "status"])
    op.create_index("idx_leads_org_email", "leads", ["organization_id", "email"])
    op.create_index("idx_leads_org_phone", "leads", ["organization_id", "phone"])
    op.create_index("idx_leads_org_follow_up", "leads", ["organization_id", "follow_up_at"])
    op.create_index("idx_leads_org_created", "leads", ["organization_id", "created_at"])

    op.create_table(
        "lead_activities",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("activity_type", sa.String(40), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_lead_activities_lead", "lead_activities", ["lead_id", "created_at"])

    op.create_table(
        "nurture_enrollments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("sequence_id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exit_reason", sa.String(30), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["sequence_id"], ["nurture_sequences.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_nurture_enrollments_org_status", "nurture_enrollments", ["organization_id", "status"])
    op.create_index("idx_nurture_enrollments_lead", "nurture_enrollments", ["lead_id", "enrolled_at"])

    op.create_table(
        "nurture_step_executions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("enrollment_id", sa.Uuid(), nullable=False),
        sa.Column("step_id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("fired_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
        sa.ForeignKeyConstraint(["enrollment_id"], ["nurture_enrollments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["step_id"], ["nurture_steps.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lead_id"], ["leads.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("enrollment_id", "step_id", name="uq_nurture_step_execution"),
    )

    # ==========================================================================
    # Review requests
    # ==========================================================================
    op.create_table(
        "review_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.Uuid(), nullable=False),
        sa.Column("patient_id", sa.Uuid(), nullable=False),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("review_url", sa.String(500), nullable=True),
        sa.Column("triggered_by_appointment_id", sa.Uuid(), nullable=True),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_via", sa.String(10), nullable=True),
        sa.Column("message_id", sa.String(255), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("declined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        _org_fk(),
    )
    op.create_index("idx_review_requests_org_status", "review_requests", ["organization_id", "status"])
    op.create_index(
        "idx_review_requests_org_patient", "review_requests", ["organization_id", "patient_id", "created_at"]
    )


def downgrade() -> None:
    """Drop all growth tables."""
    for table in (
        "review_requests",
        "nurture_step_executions",
        "nurture_enrollments",
        "lead_activities",
        "leads",
        "nurture_steps",
        "nurture_sequences",
        "landing_pages",
        "marketing_campaigns",
        "referral_rewards",
        "referrals",
        "referral_programs",
        "organizations",
    ):
        op.drop_table(table)
