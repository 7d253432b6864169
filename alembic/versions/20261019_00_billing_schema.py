"""billing schema

Revision ID: 20261019_00
Revises:
Create Date: 2026-10-19 09:00:00

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261019_00"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    op.create_table(
        "features",
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_features_code"),
    )

    op.create_table(
        "subscription_plans",
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("price_per_seat", sa.Numeric(15, 2), nullable=False),
        sa.Column("tier_level", sa.Integer(), nullable=False),
        sa.Column("max_seats", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_subscription_plans_name"),
        sa.CheckConstraint("price_per_seat >= 0", name="ck_subscription_plans_price_non_negative"),
        sa.CheckConstraint("tier_level >= 0", name="ck_subscription_plans_tier_non_negative"),
        sa.CheckConstraint("max_seats IS NULL OR max_seats > 0", name="ck_subscription_plans_max_seats_positive"),
    )
    op.create_index("ix_subscription_plans_tier_level", "subscription_plans", ["tier_level"], unique=False)

    op.create_table(
        "plan_features",
        sa.Column("plan_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("feature_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["plan_id"], ["subscription_plans.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["feature_id"], ["features.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("plan_id", "feature_id"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("plan_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="trial"),
        sa.Column("max_seats", sa.Integer(), nullable=False),
        sa.Column("pending_max_seats", sa.Integer(), nullable=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("trial_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pending_plan_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("billing_cycle", sa.String(length=20), nullable=False, server_default="monthly"),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["plan_id"], ["subscription_plans.id"]),
        sa.ForeignKeyConstraint(["pending_plan_id"], ["subscription_plans.id"]),
        sa.UniqueConstraint("tenant_id", name="uq_subscriptions_tenant_id"),
        sa.CheckConstraint(
            "status IN ('trial', 'active', 'past_due', 'cancelled', 'expired')",
            name="ck_subscriptions_status",
        ),
        sa.CheckConstraint("billing_cycle IN ('monthly', 'yearly')", name="ck_subscriptions_billing_cycle"),
        sa.CheckConstraint("max_seats > 0", name="ck_subscriptions_max_seats_positive"),
        sa.CheckConstraint("current_period_end > current_period_start", name="ck_subscriptions_period_order"),
        sa.CheckConstraint(
            "pending_max_seats IS NULL OR pending_max_seats < max_seats",
            name="ck_subscriptions_pending_seats_decrease",
        ),
        sa.CheckConstraint(
            "pending_plan_id IS NULL OR pending_plan_id <> plan_id",
            name="ck_subscriptions_pending_plan_differs",
        ),
    )
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"], unique=False)
    op.create_index("ix_subscriptions_current_period_end", "subscriptions", ["current_period_end"], unique=False)
    op.create_index(
        "ix_subscriptions_pending_changes",
        "subscriptions",
        ["current_period_end"],
        unique=False,
        postgresql_where=sa.text("pending_plan_id IS NOT NULL OR pending_max_seats IS NOT NULL"),
    )

    op.create_table(
        "invoices",
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("subscription_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("plan_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("gateway_invoice_id", sa.String(length=255), nullable=True),
        sa.Column("gateway_invoice_url", sa.Text(), nullable=True),
        sa.Column("gateway_expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("is_prorated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("plan_snapshot_name", sa.String(length=50), nullable=False),
        sa.Column("price_per_seat_snapshot", sa.Numeric(15, 2), nullable=False),
        sa.Column("seat_count_snapshot", sa.Integer(), nullable=False),
        sa.Column("billing_cycle_snapshot", sa.String(length=20), nullable=False),
        sa.Column("seat_delta_snapshot", sa.Integer(), nullable=True),
        sa.Column("proration_ratio_snapshot", sa.Numeric(9, 6), nullable=True),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("issue_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("payment_channel", sa.String(length=50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"]),
        sa.ForeignKeyConstraint(["plan_id"], ["subscription_plans.id"]),
        sa.UniqueConstraint("gateway_invoice_id", name="uq_invoices_gateway_invoice_id"),
        sa.CheckConstraint("status IN ('pending', 'paid', 'expired', 'failed')", name="ck_invoices_status"),
        sa.CheckConstraint("amount > 0", name="ck_invoices_amount_positive"),
        sa.CheckConstraint("seat_count_snapshot > 0", name="ck_invoices_seat_count_positive"),
        sa.CheckConstraint(
            "billing_cycle_snapshot IN ('monthly', 'yearly')",
            name="ck_invoices_billing_cycle_snapshot",
        ),
    )
    op.create_index("ix_invoices_tenant_id", "invoices", ["tenant_id"], unique=False)
    op.create_index("ix_invoices_subscription_id", "invoices", ["subscription_id"], unique=False)
    op.create_index("ix_invoices_status", "invoices", ["status"], unique=False)
    op.create_index(
        "uq_invoices_one_pending_per_subscription",
        "invoices",
        ["subscription_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("uq_invoices_one_pending_per_subscription", table_name="invoices")
    op.drop_index("ix_invoices_status", table_name="invoices")
    op.drop_index("ix_invoices_subscription_id", table_name="invoices")
    op.drop_index("ix_invoices_tenant_id", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("ix_subscriptions_pending_changes", table_name="subscriptions")
    op.drop_index("ix_subscriptions_current_period_end", table_name="subscriptions")
    op.drop_index("ix_subscriptions_status", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("plan_features")
    op.drop_index("ix_subscription_plans_tier_level", table_name="subscription_plans")
    op.drop_table("subscription_plans")
    op.drop_table("features")
