from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from hris_billing.core.billing.errors import (
    ExceedsPlanMaxSeatsError,
    InsufficientSeatsError,
    InvalidSeatCountError,
    InvoiceNotFoundError,
    InvoiceNotPendingError,
    PaymentGatewayError,
    PendingInvoiceExistsError,
    PlanNotActiveError,
    PlanNotPurchasableError,
)
from hris_billing.core.billing.ports import (
    EmployeeCounter,
    GatewayInvoice,
    InvoiceStore,
    PaymentGatewayClient,
)
from hris_billing.core.billing.pricing import (
    calculate_amount,
    calculate_period_end,
    calculate_prorated_amount,
    format_invoice_description,
    format_seat_increase_description,
    proration_ratio,
)
from hris_billing.core.config import settings
from hris_billing.models.enums import BillingCycle, InvoiceStatus
from hris_billing.models.invoice import Invoice
from hris_billing.models.plan import Plan
from hris_billing.models.subscription import Subscription

logger = logging.getLogger(__name__)

MIN_PRORATED_EXPIRY_SECONDS = 24 * 60 * 60


class InvoiceLifecycleManager:
    """Creates and transitions invoices. Time-based expiry belongs to the cron sweeps."""

    def __init__(
        self,
        invoices: InvoiceStore,
        employees: EmployeeCounter,
        gateway: PaymentGatewayClient,
        *,
        invoice_expiry_hours: int | None = None,
    ) -> None:
        self.invoices = invoices
        self.employees = employees
        self.gateway = gateway
        self.invoice_expiry_hours = invoice_expiry_hours or settings.invoice_expiry_hours

    async def checkout(
        self,
        subscription: Subscription,
        plan: Plan,
        *,
        seats: int,
        cycle: BillingCycle,
        payer_email: str,
        now: datetime,
    ) -> Invoice:
        if seats < 1:
            raise InvalidSeatCountError()
        await self.ensure_no_pending_invoice(subscription.id)
        if not plan.is_active:
            raise PlanNotActiveError()
        if plan.price_per_seat <= 0:
            raise PlanNotPurchasableError()
        if plan.max_seats is not None and seats > plan.max_seats:
            raise ExceedsPlanMaxSeatsError(
                f"Plan {plan.name} allows at most {plan.max_seats} seats"
            )

        active_employees = await self.employees.count_active_by_tenant(subscription.tenant_id)
        if seats < active_employees:
            raise InsufficientSeatsError(
                f"Seat count {seats} is below the {active_employees} active employees"
            )

        cycle = BillingCycle(cycle)
        amount = calculate_amount(plan.price_per_seat, seats, cycle)
        period_end = calculate_period_end(now, cycle)
        description = format_invoice_description(plan.name, seats, cycle)

        gateway_invoice = await self.gateway.create_invoice(
            external_id=f"sub-{subscription.id}-{int(now.timestamp())}",
            amount=amount,
            payer_email=payer_email,
            description=description,
            expiry_seconds=self.invoice_expiry_hours * 3600,
        )
        invoice = await self._persist(
            gateway_invoice,
            tenant_id=subscription.tenant_id,
            subscription_id=subscription.id,
            plan_id=plan.id,
            amount=amount,
            is_prorated=False,
            plan_snapshot_name=plan.name,
            price_per_seat_snapshot=plan.price_per_seat,
            seat_count_snapshot=seats,
            billing_cycle_snapshot=cycle,
            period_start=now,
            period_end=period_end,
            issue_date=now,
            description=description,
        )
        logger.info(
            "Checkout invoice created tenant=%s invoice=%s plan=%s seats=%s amount=%s",
            subscription.tenant_id,
            invoice.id,
            plan.name,
            seats,
            amount,
        )
        return invoice

    async def create_prorated_invoice(
        self,
        subscription: Subscription,
        plan: Plan,
        *,
        new_seats: int,
        payer_email: str,
        now: datetime,
    ) -> Invoice:
        await self.ensure_no_pending_invoice(subscription.id)

        seat_delta = new_seats - subscription.max_seats
        cycle = BillingCycle(subscription.billing_cycle)
        ratio = proration_ratio(subscription.current_period_start, subscription.current_period_end, now)
        amount = calculate_prorated_amount(plan.price_per_seat, seat_delta, cycle, ratio)
        description = format_seat_increase_description(plan.name, subscription.max_seats, new_seats)
        remaining_seconds = int((subscription.current_period_end - now).total_seconds())
        # The gateway link must not outlive the stale-invoice sweep.
        expiry_seconds = min(
            max(remaining_seconds, MIN_PRORATED_EXPIRY_SECONDS),
            self.invoice_expiry_hours * 3600,
        )

        gateway_invoice = await self.gateway.create_invoice(
            external_id=f"seat-up-{subscription.id}-{int(now.timestamp())}",
            amount=amount,
            payer_email=payer_email,
            description=description,
            expiry_seconds=expiry_seconds,
        )
        invoice = await self._persist(
            gateway_invoice,
            tenant_id=subscription.tenant_id,
            subscription_id=subscription.id,
            plan_id=subscription.plan_id,
            amount=amount,
            is_prorated=True,
            plan_snapshot_name=plan.name,
            price_per_seat_snapshot=plan.price_per_seat,
            seat_count_snapshot=new_seats,
            billing_cycle_snapshot=cycle,
            seat_delta_snapshot=seat_delta,
            proration_ratio_snapshot=ratio,
            period_start=subscription.current_period_start,
            period_end=subscription.current_period_end,
            issue_date=now,
            description=description,
        )
        logger.info(
            "Prorated seat invoice created tenant=%s invoice=%s seats=%s->%s amount=%s",
            subscription.tenant_id,
            invoice.id,
            subscription.max_seats,
            new_seats,
            amount,
        )
        return invoice

    async def ensure_no_pending_invoice(self, subscription_id: UUID) -> None:
        if await self.invoices.get_pending_for_subscription(subscription_id) is not None:
            raise PendingInvoiceExistsError()

    async def update_payment(
        self,
        invoice_id: UUID,
        status: InvoiceStatus,
        *,
        paid_at: datetime | None = None,
        payment_method: str | None = None,
        payment_channel: str | None = None,
        notes: str | None = None,
    ) -> bool:
        """Return True when this call moved the invoice out of pending.

        An invoice that is already terminal is left untouched and reported as
        False instead of raising, so duplicate deliveries are harmless.
        """
        invoice = await self.invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError()
        if InvoiceStatus(invoice.status).is_terminal:
            return False

        applied = await self.invoices.mark_status(
            invoice_id,
            status,
            paid_at=paid_at,
            payment_method=payment_method,
            payment_channel=payment_channel,
            notes=notes,
        )
        if not applied:
            logger.debug("Invoice %s left pending state concurrently", invoice_id)
        return applied

    async def list_invoices(self, tenant_id: UUID, *, limit: int = 100, offset: int = 0) -> list[Invoice]:
        return await self.invoices.list_for_tenant(tenant_id, limit=limit, offset=offset)

    async def get_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        invoice = await self.invoices.get_for_tenant(tenant_id, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError()
        return invoice

    async def cancel_pending_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        invoice = await self.get_invoice(tenant_id, invoice_id)
        if InvoiceStatus(invoice.status) is not InvoiceStatus.PENDING:
            raise InvoiceNotPendingError()

        applied = await self.invoices.mark_status(
            invoice.id,
            InvoiceStatus.EXPIRED,
            notes="Cancelled by tenant",
        )
        if not applied:
            raise InvoiceNotPendingError()

        if invoice.gateway_invoice_id:
            await self.void_gateway_invoice(invoice.gateway_invoice_id)
        logger.info("Pending invoice cancelled tenant=%s invoice=%s", tenant_id, invoice.id)
        return invoice

    async def void_pending_invoices(self, subscription_id: UUID) -> int:
        gateway_ids = await self.invoices.expire_pending_for_subscription(subscription_id)
        for gateway_id in gateway_ids:
            await self.void_gateway_invoice(gateway_id)
        return len(gateway_ids)

    async def void_gateway_invoice(self, gateway_invoice_id: str) -> None:
        try:
            await self.gateway.expire_invoice(gateway_invoice_id)
        except PaymentGatewayError as exc:
            logger.warning("Failed to expire gateway invoice %s: %s", gateway_invoice_id, exc)

    async def _persist(self, gateway_invoice: GatewayInvoice, **values: object) -> Invoice:
        try:
            return await self.invoices.create(
                gateway_invoice_id=gateway_invoice.gateway_id,
                gateway_invoice_url=gateway_invoice.url,
                gateway_expiry_date=gateway_invoice.expires_at,
                status=InvoiceStatus.PENDING,
                **values,
            )
        except PendingInvoiceExistsError:
            # A concurrent request took the pending slot after our check.
            await self.void_gateway_invoice(gateway_invoice.gateway_id)
            raise
