"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2025-11-03
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    op.create_table(
        "user_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("manager_id", sa.Integer(), nullable=True),
        sa.Column("available_balance", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("reserved_balance", sa.Numeric(12, 2), server_default="0", nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_user_accounts"),
        sa.ForeignKeyConstraint(
            ["manager_id"], ["user_accounts.id"], ondelete="SET NULL", name="fk_user_accounts_manager_id_user_accounts"
        ),
        sa.CheckConstraint("available_balance >= 0", name="ck_user_accounts_available_balance_non_negative"),
        sa.CheckConstraint("reserved_balance >= 0", name="ck_user_accounts_reserved_balance_non_negative"),
    )
    op.create_index("ix_user_accounts_manager_id", "user_accounts", ["manager_id"], unique=False)

    op.create_table(
        "campaigns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("manager_percentage", sa.Numeric(6, 4), server_default="0", nullable=False),
        sa.Column("status", sa.String(length=16), server_default="ACTIVE", nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_campaigns"),
    )

    op.create_table(
        "card_tier_rules",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("campaign_id", sa.Integer(), nullable=False),
        sa.Column("tier_number", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_card_tier_rules"),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["campaigns.id"], ondelete="CASCADE", name="fk_card_tier_rules_campaign_id_campaigns"
        ),
        sa.UniqueConstraint("campaign_id", "tier_number", name="uq_card_tier_rules_campaign_tier"),
    )
    op.create_index("ix_card_tier_rules_campaign_id", "card_tier_rules", ["campaign_id"], unique=False)

    op.create_table(
        "requirements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("card_tier_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("required_quantity", sa.Integer(), nullable=False),
        sa.Column("unit_type", sa.String(length=16), server_default="UNIT", nullable=False),
        sa.Column("ordinal", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_requirements"),
        sa.ForeignKeyConstraint(
            ["card_tier_id"],
            ["card_tier_rules.id"],
            ondelete="CASCADE",
            name="fk_requirements_card_tier_id_card_tier_rules",
        ),
        sa.UniqueConstraint("card_tier_id", "ordinal", name="uq_requirements_tier_ordinal"),
    )
    op.create_index("ix_requirements_card_tier_id", "requirements", ["card_tier_id"], unique=False)

    op.create_table(
        "requirement_conditions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("requirement_id", sa.Integer(), nullable=False),
        sa.Column("field", sa.String(length=32), nullable=False),
        sa.Column("operator", sa.String(length=16), nullable=False),
        sa.Column("value", sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_requirement_conditions"),
        sa.ForeignKeyConstraint(
            ["requirement_id"],
            ["requirements.id"],
            ondelete="CASCADE",
            name="fk_requirement_conditions_requirement_id_requirements",
        ),
    )
    op.create_index(
        "ix_requirement_conditions_requirement_id", "requirement_conditions", ["requirement_id"], unique=False
    )

    op.create_table(
        "sale_submissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("campaign_id", sa.Integer(), nullable=False),
        sa.Column("requirement_id", sa.Integer(), nullable=True),
        sa.Column("order_number", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="PENDING_REVIEW", nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("base_reward_value", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("applied_multiplier", sa.Numeric(6, 4), server_default="1", nullable=False),
        sa.Column("final_value_with_event", sa.Numeric(12, 2), nullable=True),
        sa.Column("card_tier_attained", sa.Integer(), nullable=True),
        sa.Column("reward_added_to_balance", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("reward_settled", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_sale_submissions"),
        sa.ForeignKeyConstraint(
            ["vendor_id"], ["user_accounts.id"], ondelete="CASCADE", name="fk_sale_submissions_vendor_id_user_accounts"
        ),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["campaigns.id"], ondelete="CASCADE", name="fk_sale_submissions_campaign_id_campaigns"
        ),
        sa.ForeignKeyConstraint(
            ["requirement_id"],
            ["requirements.id"],
            ondelete="SET NULL",
            name="fk_sale_submissions_requirement_id_requirements",
        ),
        sa.CheckConstraint(
            "(reward_added_to_balance AND final_value_with_event IS NOT NULL)"
            " OR (NOT reward_added_to_balance AND final_value_with_event IS NULL)",
            name="ck_sale_submissions_final_value_iff_rewarded",
        ),
        sa.CheckConstraint(
            "card_tier_attained IS NULL OR status = 'VALIDATED'",
            name="ck_sale_submissions_tier_only_when_validated",
        ),
    )
    op.create_index("ix_sale_submissions_vendor_id", "sale_submissions", ["vendor_id"], unique=False)
    op.create_index("ix_sale_submissions_campaign_id", "sale_submissions", ["campaign_id"], unique=False)
    op.create_index("ix_sale_submissions_requirement_id", "sale_submissions", ["requirement_id"], unique=False)
    op.create_index(
        "ix_sale_submissions_vendor_campaign_tier",
        "sale_submissions",
        ["vendor_id", "campaign_id", "card_tier_attained", "status"],
        unique=False,
    )
    op.create_index(
        "ix_sale_submissions_payout_scan",
        "sale_submissions",
        ["vendor_id", "reward_added_to_balance", "reward_settled"],
        unique=False,
    )

    op.create_table(
        "completed_card_tiers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("campaign_id", sa.Integer(), nullable=False),
        sa.Column("tier_number", sa.Integer(), nullable=False),
        _created_at("completed_at"),
        sa.PrimaryKeyConstraint("id", name="pk_completed_card_tiers"),
        sa.ForeignKeyConstraint(
            ["vendor_id"],
            ["user_accounts.id"],
            ondelete="CASCADE",
            name="fk_completed_card_tiers_vendor_id_user_accounts",
        ),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["campaigns.id"], ondelete="CASCADE", name="fk_completed_card_tiers_campaign_id_campaigns"
        ),
        sa.UniqueConstraint(
            "vendor_id", "campaign_id", "tier_number", name="uq_completed_card_tiers_vendor_campaign_tier"
        ),
    )
    op.create_index("ix_completed_card_tiers_vendor_id", "completed_card_tiers", ["vendor_id"], unique=False)
    op.create_index("ix_completed_card_tiers_campaign_id", "completed_card_tiers", ["campaign_id"], unique=False)

    op.create_table(
        "special_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("campaign_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("multiplier", sa.Numeric(6, 4), nullable=False),
        sa.Column("active_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("active_to", sa.DateTime(timezone=True), nullable=False),
        sa.Column("enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_special_events"),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["campaigns.id"], ondelete="CASCADE", name="fk_special_events_campaign_id_campaigns"
        ),
    )
    op.create_index("ix_special_events_campaign_id", "special_events", ["campaign_id"], unique=False)

    op.create_table(
        "payout_reports",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("batch_number", sa.String(length=32), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("campaign_id", sa.Integer(), nullable=True),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="PENDING", nullable=False),
        sa.Column("included_sales", sa.JSON(), nullable=False),
        sa.Column("cutoff_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        _created_at(),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_payout_reports"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["user_accounts.id"], ondelete="CASCADE", name="fk_payout_reports_user_id_user_accounts"
        ),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["campaigns.id"], ondelete="SET NULL", name="fk_payout_reports_campaign_id_campaigns"
        ),
    )
    op.create_index("ix_payout_reports_batch_number", "payout_reports", ["batch_number"], unique=False)
    op.create_index("ix_payout_reports_user_status", "payout_reports", ["user_id", "status"], unique=False)
    # at most one PENDING report per account
    op.create_index(
        "uq_payout_reports_pending_user",
        "payout_reports",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
        sqlite_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["user_accounts.id"], ondelete="CASCADE", name="fk_notifications_user_id_user_accounts"
        ),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)

    op.create_table(
        "financial_audit",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("batch_number", sa.String(length=32), nullable=True),
        sa.Column("admin_id", sa.String(length=64), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_financial_audit"),
    )
    op.create_index("ix_financial_audit_action", "financial_audit", ["action"], unique=False)
    op.create_index("ix_financial_audit_batch_number", "financial_audit", ["batch_number"], unique=False)
    op.create_index("ix_financial_audit_created_at", "financial_audit", ["created_at"], unique=False)
    op.create_index("ix_financial_audit_admin_created", "financial_audit", ["admin_id", "created_at"], unique=False)


def downgrade() -> None:
    op.drop_table("financial_audit")
    op.drop_table("notifications")
    op.drop_index("uq_payout_reports_pending_user", table_name="payout_reports")
    op.drop_table("payout_reports")
    op.drop_table("special_events")
    op.drop_table("completed_card_tiers")
    op.drop_table("sale_submissions")
    op.drop_table("requirement_conditions")
    op.drop_table("requirements")
    op.drop_table("card_tier_rules")
    op.drop_table("campaigns")
    op.drop_table("user_accounts")
