"""initial tables

Revision ID: 0001_init
Revises:
Create Date: 2026-01-01 00:00:00
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, **kw):
    return sa.Column(name, sa.DateTime(timezone=True), **kw)


def upgrade():
    # ACCOUNTS
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("domain", sa.String(), nullable=True),
        _ts("created_at", server_default=sa.func.now()),
    )
    op.create_index("ix_accounts_name", "accounts", ["name"])
    op.create_index("ix_accounts_domain", "accounts", ["domain"])

    # CAMPAIGNS
    op.create_table(
        "campaigns",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("lead_cap_per_account", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("eligibility_config", sa.JSON(), nullable=True),
        sa.Column("priority_config", sa.JSON(), nullable=True),
        sa.Column("ok_email_states", sa.JSON(), nullable=True),
        _ts("created_at", server_default=sa.func.now()),
        _ts("updated_at", server_default=sa.func.now()),
    )
    op.create_index("ix_campaigns_status", "campaigns", ["status"])

    # CONTACTS
    op.create_table(
        "contacts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("account_id", sa.String(36), sa.ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("source_type", sa.String(32), nullable=False, server_default="New_Sourced"),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("first_name", sa.String()),
        sa.Column("last_name", sa.String()),
        sa.Column("title", sa.String()),
        sa.Column("email", sa.String()),
        sa.Column("phone", sa.String()),
        sa.Column("mobile", sa.String()),
        sa.Column("linkedin_url", sa.String()),
        sa.Column("address1", sa.String()),
        sa.Column("address2", sa.String()),
        sa.Column("city", sa.String()),
        sa.Column("state", sa.String()),
        sa.Column("postal_code", sa.String()),
        sa.Column("country", sa.String()),
        sa.Column("cav_id", sa.String()),
        sa.Column("cav_user_id", sa.String()),
        sa.Column("email_lower", sa.String()),
        sa.Column("first_name_norm", sa.String()),
        sa.Column("last_name_norm", sa.String()),
        sa.Column("company_key", sa.String()),
        sa.Column("contact_country_key", sa.String()),
        sa.Column("name_company_hash", sa.String(64)),
        sa.Column("eligibility_status", sa.String(32), nullable=False, server_default="Out_of_Scope"),
        sa.Column("eligibility_reason", sa.String()),
        sa.Column("priority_score", sa.Float()),
        sa.Column("seniority_level", sa.String(32)),
        sa.Column("verification_status", sa.String(32), nullable=False, server_default="Pending"),
        sa.Column("email_status", sa.String(32), nullable=False, server_default="unknown"),
        sa.Column("suppressed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("in_submission_buffer", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _ts("created_at", server_default=sa.func.now()),
        _ts("updated_at", server_default=sa.func.now()),
    )
    op.create_index("ix_contacts_campaign_id", "contacts", ["campaign_id"])
    op.create_index("ix_contacts_account_id", "contacts", ["account_id"])
    op.create_index("ix_contacts_email_lower", "contacts", ["email_lower"])
    op.create_index("ix_contacts_cav_id", "contacts", ["cav_id"])
    op.create_index("ix_contacts_cav_user_id", "contacts", ["cav_user_id"])
    op.create_index("ix_contacts_name_company_hash", "contacts", ["name_company_hash"])
    op.create_index(
        "ix_contacts_campaign_queue", "contacts", ["campaign_id", "eligibility_status", "verification_status"]
    )
    op.create_index("ix_contacts_campaign_account", "contacts", ["campaign_id", "account_id"])

    # SUPPRESSION LIST (campaign_id NULL = global)
    op.create_table(
        "suppression_list",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=True),
        sa.Column("email", sa.String()),
        sa.Column("email_lower", sa.String()),
        sa.Column("cav_id", sa.String()),
        sa.Column("cav_user_id", sa.String()),
        sa.Column("first_name", sa.String()),
        sa.Column("last_name", sa.String()),
        sa.Column("company_name", sa.String()),
        sa.Column("name_company_hash", sa.String(64)),
        sa.Column("reason", sa.Text()),
        _ts("created_at", server_default=sa.func.now()),
    )
    op.create_index("ix_suppression_list_campaign_id", "suppression_list", ["campaign_id"])
    op.create_index("ix_suppression_list_email_lower", "suppression_list", ["email_lower"])
    op.create_index("ix_suppression_list_cav_id", "suppression_list", ["cav_id"])
    op.create_index("ix_suppression_list_cav_user_id", "suppression_list", ["cav_user_id"])
    op.create_index("ix_suppression_list_name_company_hash", "suppression_list", ["name_company_hash"])

    # LEAD SUBMISSIONS (one per contact)
    op.create_table(
        "lead_submissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("contact_id", sa.String(36), sa.ForeignKey("contacts.id", ondelete="CASCADE"),
                  nullable=False, unique=True),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("account_id", sa.String(36), sa.ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True),
        _ts("submitted_at", server_default=sa.func.now()),
    )
    op.create_index("ix_lead_submissions_campaign_account", "lead_submissions", ["campaign_id", "account_id"])

    # ACCOUNT CAP STATUS
    op.create_table(
        "account_cap_status",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("account_id", sa.String(36), sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("cap", sa.Integer(), nullable=True),
        sa.Column("submitted_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("eligible_count", sa.Integer(), nullable=False, server_default="0"),
        _ts("updated_at", server_default=sa.func.now()),
        sa.UniqueConstraint("campaign_id", "account_id", name="uq_account_cap_status_campaign_account"),
    )

    # EMAIL VALIDATION CACHE
    op.create_table(
        "email_validations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("contact_id", sa.String(36), sa.ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email_lower", sa.String(), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("raw_response", sa.JSON(), nullable=True),
        _ts("checked_at", server_default=sa.func.now()),
        sa.UniqueConstraint("contact_id", "email_lower", name="uq_email_validations_contact_email"),
    )
    op.create_index("ix_email_validations_email_lower", "email_validations", ["email_lower"])
    op.create_index("ix_email_validations_checked_at", "email_validations", ["checked_at"])

    # EMAIL VALIDATION JOBS
    op.create_table(
        "email_validation_jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="processing"),
        sa.Column("contact_ids", sa.JSON(), nullable=False),
        sa.Column("batch_size", sa.Integer(), nullable=False, server_default="500"),
        sa.Column("total_contacts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_batches", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_batch", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processed_contacts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status_counts", sa.JSON(), nullable=False),
        sa.Column("error_message", sa.Text()),
        _ts("started_at"),
        _ts("finished_at"),
        _ts("created_at", server_default=sa.func.now()),
        _ts("updated_at", server_default=sa.func.now()),
    )
    op.create_index("ix_email_validation_jobs_campaign_id", "email_validation_jobs", ["campaign_id"])
    op.create_index("ix_email_validation_jobs_status", "email_validation_jobs", ["status"])
    op.create_index("ix_email_validation_jobs_updated_at", "email_validation_jobs", ["updated_at"])

    # AUDIT LOG
    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("campaign_id", sa.String(36)),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_ids", sa.JSON()),
        sa.Column("details", sa.JSON()),
        sa.Column("actor", sa.String()),
        _ts("created_at", server_default=sa.func.now()),
    )
    op.create_index("ix_audit_log_campaign_id", "audit_log", ["campaign_id"])


def downgrade():
    op.drop_table("audit_log")
    op.drop_table("email_validation_jobs")
    op.drop_table("email_validations")
    op.drop_table("account_cap_status")
    op.drop_table("lead_submissions")
    op.drop_table("suppression_list")
    op.drop_table("contacts")
    op.drop_table("campaigns")
    op.drop_table("accounts")
