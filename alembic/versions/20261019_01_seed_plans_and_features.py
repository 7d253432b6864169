"""seed plans and features

Revision ID: 20261019_01
Revises: 20261019_00
Create Date: 2026-10-19 09:30:00

"""
from __future__ import annotations

import uuid
from decimal import Decimal

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = "20261019_00"
branch_labels = None
depends_on = None

SEED_NAMESPACE = uuid.UUID("6f1d1c3e-3c1a-4f57-9a53-6a6f0c2b7d10")

FEATURES = [
    ("attendance", "Attendance System", "Clock in/out, attendance tracking, GPS-based attendance"),
    ("leave", "Leave Management", "Leave requests, approvals, quota management"),
    ("payroll", "Payroll System", "Salary calculation, payslips, payroll reports"),
    ("invitation", "Employee Invitation", "Invite employees via email with role assignment"),
    ("schedule", "Work Schedule", "Work schedule management and assignment"),
    ("report", "Advanced Reports", "Detailed reports and analytics"),
]

# name, price per seat, tier, max seats, feature codes
PLANS = [
    ("Free Trial", Decimal("0"), 0, 5, ["attendance", "leave"]),
    ("Standard", Decimal("12000"), 1, 50, ["attendance", "leave", "invitation", "schedule"]),
    ("Premium", Decimal("15000"), 2, 200, ["attendance", "leave", "invitation", "schedule", "payroll", "report"]),
    ("Ultra", Decimal("20000"), 3, None, ["attendance", "leave", "invitation", "schedule", "payroll", "report"]),
]


def _seed_id(kind: str, key: str) -> uuid.UUID:
    return uuid.uuid5(SEED_NAMESPACE, f"{kind}:{key}")


features_table = sa.table(
    "features",
    sa.column("id", postgresql.UUID(as_uuid=True)),
    sa.column("code", sa.String),
    sa.column("name", sa.String),
    sa.column("description", sa.Text),
)
plans_table = sa.table(
    "subscription_plans",
    sa.column("id", postgresql.UUID(as_uuid=True)),
    sa.column("name", sa.String),
    sa.column("price_per_seat", sa.Numeric),
    sa.column("tier_level", sa.Integer),
    sa.column("max_seats", sa.Integer),
    sa.column("is_active", sa.Boolean),
)
plan_features_table = sa.table(
    "plan_features",
    sa.column("plan_id", postgresql.UUID(as_uuid=True)),
    sa.column("feature_id", postgresql.UUID(as_uuid=True)),
    sa.column("is_active", sa.Boolean),
)


def upgrade() -> None:
    op.bulk_insert(
        features_table,
        [
            {"id": _seed_id("feature", code), "code": code, "name": name, "description": description}
            for code, name, description in FEATURES
        ],
    )
    op.bulk_insert(
        plans_table,
        [
            {
                "id": _seed_id("plan", name),
                "name": name,
                "price_per_seat": price,
                "tier_level": tier,
                "max_seats": max_seats,
                "is_active": True,
            }
            for name, price, tier, max_seats, _ in PLANS
        ],
    )
    op.bulk_insert(
        plan_features_table,
        [
            {"plan_id": _seed_id("plan", name), "feature_id": _seed_id("feature", code), "is_active": True}
            for name, _, _, _, codes in PLANS
            for code in codes
        ],
    )


def downgrade() -> None:
    plan_ids = [_seed_id("plan", name) for name, *_ in PLANS]
    feature_ids = [_seed_id("feature", code) for code, *_ in FEATURES]
    op.execute(plan_features_table.delete().where(plan_features_table.c.plan_id.in_(plan_ids)))
    op.execute(plans_table.delete().where(plans_table.c.id.in_(plan_ids)))
    op.execute(features_table.delete().where(features_table.c.id.in_(feature_ids)))
