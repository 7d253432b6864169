from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from hris_billing.models.base import TenantScopedBase
from hris_billing.models.enums import BillingCycle, SubscriptionStatus, string_enum


class Subscription(TenantScopedBase):
    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint("max_seats > 0", name="ck_subscriptions_max_seats_positive"),
        CheckConstraint(
            "current_period_end > current_period_start",
            name="ck_subscriptions_period_order",
        ),
        CheckConstraint(
            "pending_max_seats IS NULL OR pending_max_seats < max_seats",
            name="ck_subscriptions_pending_seats_decrease",
        ),
        CheckConstraint(
            "pending_plan_id IS NULL OR pending_plan_id <> plan_id",
            name="ck_subscriptions_pending_plan_differs",
        ),
    )

    # One subscription per tenant.
    tenant_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, unique=True)
    plan_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("subscription_plans.id"),
        nullable=False,
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        string_enum(SubscriptionStatus, "subscription_status"),
        nullable=False,
        default=SubscriptionStatus.TRIAL,
        index=True,
    )
    max_seats: Mapped[int] = mapped_column(nullable=False)
    pending_max_seats: Mapped[int | None] = mapped_column(nullable=True)
    current_period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    current_period_end: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    trial_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    pending_plan_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("subscription_plans.id"),
        nullable=True,
    )
    billing_cycle: Mapped[BillingCycle] = mapped_column(
        string_enum(BillingCycle, "billing_cycle"),
        nullable=False,
        default=BillingCycle.MONTHLY,
    )
    auto_renew: Mapped[bool] = mapped_column(nullable=False, default=False)
