"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-03-02
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
Money = sa.Numeric(18, 2)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # --- Opportunities
    op.create_table(
        "opportunities",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("fields", JSONType, nullable=False),
        sa.Column("risk_score", sa.Integer(), nullable=True),
        sa.Column("risk_level", sa.String(length=10), nullable=True),
        sa.Column("last_validation", JSONType, nullable=True),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('draft', 'under_review', 'published', 'funded', 'closed')",
            name="ck_opportunity_valid_status",
        ),
        sa.CheckConstraint(
            "risk_score IS NULL OR (risk_score >= 0 AND risk_score <= 100)",
            name="ck_opportunity_risk_bounds",
        ),
    )
    op.create_index("idx_opportunity_owner", "opportunities", ["owner_id"])
    op.create_index("idx_opportunity_status", "opportunities", ["status"])

    op.create_table(
        "milestones",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            "opportunity_id",
            sa.Uuid(),
            sa.ForeignKey("opportunities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("target_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("completion_percentage", sa.Float(), nullable=True),
        sa.Column("dependencies", JSONType, nullable=False),
        sa.Column("budget", Money, nullable=True),
        sa.Column("actual_cost", Money, nullable=True),
        sa.Column("progress_notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'overdue', 'cancelled')",
            name="ck_milestone_valid_status",
        ),
    )
    op.create_index("idx_milestone_opportunity", "milestones", ["opportunity_id"])

    # --- Escrow
    op.create_table(
        "escrow_accounts",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("account_number", sa.String(length=40), nullable=False, unique=True),
        sa.Column("opportunity_id", sa.Uuid(), nullable=False),
        sa.Column("investor_id", sa.String(length=64), nullable=False),
        sa.Column("entrepreneur_id", sa.String(length=64), nullable=False),
        sa.Column("escrow_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_amount", Money, nullable=False),
        sa.Column("available_balance", Money, nullable=False),
        sa.Column("held_amount", Money, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("auto_release_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'funded', 'active', 'released', 'disputed', 'cancelled')",
            name="ck_escrow_valid_status",
        ),
        sa.CheckConstraint("total_amount > 0", name="ck_escrow_positive_total"),
        sa.CheckConstraint(
            "available_balance >= 0 AND held_amount >= 0",
            name="ck_escrow_non_negative_balances",
        ),
    )
    op.create_index("idx_escrow_status", "escrow_accounts", ["status"])
    op.create_index("idx_escrow_investor", "escrow_accounts", ["investor_id"])
    op.create_index("idx_escrow_entrepreneur", "escrow_accounts", ["entrepreneur_id"])
    op.create_index("idx_escrow_opportunity", "escrow_accounts", ["opportunity_id"])

    op.create_table(
        "escrow_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            "account_id",
            sa.Uuid(),
            sa.ForeignKey("escrow_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("amount", Money, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("reference", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("fee_amount", Money, nullable=True),
        sa.Column("metadata", JSONType, nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "type IN ('deposit', 'withdrawal', 'release', 'refund', 'fee')",
            name="ck_transaction_valid_type",
        ),
        sa.CheckConstraint("amount > 0", name="ck_transaction_positive_amount"),
    )
    op.create_index("idx_transaction_account", "escrow_transactions", ["account_id"])
    op.create_index("idx_transaction_date", "escrow_transactions", ["transaction_date"])

    op.create_table(
        "escrow_release_conditions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            "account_id",
            sa.Uuid(),
            sa.ForeignKey("escrow_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("condition_type", sa.String(length=40), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("required_documents", JSONType, nullable=False),
        sa.Column("is_met", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_condition_account", "escrow_release_conditions", ["account_id"])
    op.create_index(
        "idx_condition_reference",
        "escrow_release_conditions",
        ["condition_type", "reference_id"],
    )


def downgrade() -> None:
    op.drop_table("escrow_release_conditions")
    op.drop_table("escrow_transactions")
    op.drop_table("escrow_accounts")
    op.drop_table("milestones")
    op.drop_table("opportunities")
