from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from hris_billing.models.base import TenantScopedBase, utcnow
from hris_billing.models.enums import BillingCycle, InvoiceStatus, string_enum


class Invoice(TenantScopedBase):
    __tablename__ = "invoices"
    __table_args__ = (
        Index(
            "uq_invoices_one_pending_per_subscription",
            "subscription_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
        ),
    )

    subscription_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("subscriptions.id"),
        nullable=False,
        index=True,
    )
    plan_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("subscription_plans.id"),
        nullable=False,
    )

    gateway_invoice_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    gateway_invoice_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    gateway_expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    is_prorated: Mapped[bool] = mapped_column(nullable=False, default=False)

    # Frozen at creation; never recomputed from the live plan.
    plan_snapshot_name: Mapped[str] = mapped_column(String(50), nullable=False)
    price_per_seat_snapshot: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    seat_count_snapshot: Mapped[int] = mapped_column(nullable=False)
    billing_cycle_snapshot: Mapped[BillingCycle] = mapped_column(
        string_enum(BillingCycle, "billing_cycle"),
        nullable=False,
    )
    seat_delta_snapshot: Mapped[int | None] = mapped_column(nullable=True)
    proration_ratio_snapshot: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        string_enum(InvoiceStatus, "invoice_status"),
        nullable=False,
        default=InvoiceStatus.PENDING,
        index=True,
    )
    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_channel: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
