from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from hris_billing.core.billing.catalog import PlanCatalog
from hris_billing.core.billing.errors import (
    CannotUpgradeDuringGracePeriodError,
    ConcurrentUpdateError,
    ExceedsPlanMaxSeatsError,
    InsufficientSeatsError,
    InvalidSeatCountError,
    InvalidSubscriptionStateError,
    NotADowngradeError,
    NotAnUpgradeError,
    PlanNotPurchasableError,
    SameAsCurrentSeatsError,
    SamePlanError,
    SeatsBelowActiveError,
    SubscriptionAlreadyExistsError,
    SubscriptionNotFoundError,
)
from hris_billing.core.billing.invoices import InvoiceLifecycleManager
from hris_billing.core.billing.ports import (
    Clock,
    EmployeeCounter,
    InvoiceStore,
    PaymentGatewayClient,
    PlanReader,
    SubscriptionStore,
    Transaction,
)
from hris_billing.core.billing.pricing import DEFAULT_TRIAL_SEATS, TRIAL_DURATION_DAYS
from hris_billing.models.base import utcnow
from hris_billing.models.enums import ACCESS_STATUSES, BillingCycle, SubscriptionStatus
from hris_billing.models.invoice import Invoice
from hris_billing.models.plan import Plan
from hris_billing.models.subscription import Subscription

logger = logging.getLogger(__name__)

UPGRADABLE_STATUSES = (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)
CANCELLABLE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE)


@dataclass(slots=True)
class SubscriptionView:
    subscription: Subscription
    plan: Plan
    pending_plan: Plan | None
    features: list[str]
    used_seats: int


@dataclass(slots=True)
class SeatChange:
    subscription: Subscription
    invoice: Invoice | None

    @property
    def deferred(self) -> bool:
        return self.invoice is None


class SubscriptionService:
    """Per-tenant subscription state machine.

    Every mutation runs inside ``transaction()`` and carries the state it read
    into the conditional update, so a row moved by the webhook or a sweep in the
    meantime surfaces as ``ConcurrentUpdateError`` instead of being overwritten.
    """

    def __init__(
        self,
        *,
        plans: PlanReader,
        subscriptions: SubscriptionStore,
        invoices: InvoiceStore,
        employees: EmployeeCounter,
        gateway: PaymentGatewayClient,
        transaction: Transaction,
        clock: Clock = utcnow,
        invoice_expiry_hours: int | None = None,
    ) -> None:
        self.catalog = PlanCatalog(plans)
        self.subscriptions = subscriptions
        self.employees = employees
        self.transaction = transaction
        self.clock = clock
        self.lifecycle = InvoiceLifecycleManager(
            invoices,
            employees,
            gateway,
            invoice_expiry_hours=invoice_expiry_hours,
        )

    async def _require(self, tenant_id: UUID) -> Subscription:
        subscription = await self.subscriptions.get_by_tenant(tenant_id)
        if subscription is None:
            raise SubscriptionNotFoundError()
        return subscription

    async def _reload(self, subscription: Subscription) -> Subscription:
        return await self.subscriptions.get(subscription.id) or subscription

    async def create_trial_subscription(self, tenant_id: UUID) -> Subscription:
        async with self.transaction():
            if await self.subscriptions.get_by_tenant(tenant_id) is not None:
                raise SubscriptionAlreadyExistsError()

            plan = await self.catalog.get_trial_plan()
            now = self.clock()
            trial_end = now + timedelta(days=TRIAL_DURATION_DAYS)
            subscription = await self.subscriptions.create(
                tenant_id=tenant_id,
                plan_id=plan.id,
                status=SubscriptionStatus.TRIAL,
                max_seats=plan.max_seats or DEFAULT_TRIAL_SEATS,
                current_period_start=now,
                current_period_end=trial_end,
                trial_ends_at=trial_end,
                billing_cycle=BillingCycle.MONTHLY,
                auto_renew=False,
            )
        logger.info("Trial subscription created tenant=%s ends=%s", tenant_id, trial_end.isoformat())
        return subscription

    async def get_subscription(self, tenant_id: UUID) -> SubscriptionView:
        subscription = await self._require(tenant_id)
        plan = await self.catalog.get_plan(subscription.plan_id)
        pending_plan = None
        if subscription.pending_plan_id is not None:
            pending_plan = await self.catalog.get_plan(subscription.pending_plan_id)
        return SubscriptionView(
            subscription=subscription,
            plan=plan,
            pending_plan=pending_plan,
            features=await self.catalog.feature_codes(plan.id),
            used_seats=await self.employees.count_active_by_tenant(tenant_id),
        )

    async def checkout(
        self,
        tenant_id: UUID,
        *,
        plan_id: UUID,
        seats: int,
        cycle: BillingCycle,
        payer_email: str,
    ) -> Invoice:
        async with self.transaction():
            subscription = await self._require(tenant_id)
            plan = await self.catalog.get_purchasable_plan(plan_id)
            return await self.lifecycle.checkout(
                subscription,
                plan,
                seats=seats,
                cycle=cycle,
                payer_email=payer_email,
                now=self.clock(),
            )

    async def upgrade_plan(
        self,
        tenant_id: UUID,
        *,
        plan_id: UUID,
        payer_email: str,
        seats: int | None = None,
    ) -> Invoice:
        async with self.transaction():
            subscription = await self._require(tenant_id)
            if plan_id == subscription.plan_id:
                raise SamePlanError()
            if subscription.status not in UPGRADABLE_STATUSES:
                raise InvalidSubscriptionStateError(
                    f"Cannot upgrade a subscription in status {SubscriptionStatus(subscription.status).value}"
                )

            current = await self.catalog.get_plan(subscription.plan_id)
            target = await self.catalog.get_purchasable_plan(plan_id)
            if target.tier_level <= current.tier_level:
                raise NotAnUpgradeError()

            return await self.lifecycle.checkout(
                subscription,
                target,
                seats=subscription.max_seats if seats is None else seats,
                cycle=BillingCycle(subscription.billing_cycle),
                payer_email=payer_email,
                now=self.clock(),
            )

    async def downgrade_plan(self, tenant_id: UUID, *, plan_id: UUID) -> Subscription:
        async with self.transaction():
            subscription = await self._require(tenant_id)
            if plan_id == subscription.plan_id:
                raise SamePlanError()
            if subscription.status != SubscriptionStatus.ACTIVE:
                raise InvalidSubscriptionStateError("Only active subscriptions can schedule a downgrade")

            current = await self.catalog.get_plan(subscription.plan_id)
            target = await self.catalog.get_purchasable_plan(plan_id)
            if target.tier_level >= current.tier_level:
                raise NotADowngradeError()
            if target.price_per_seat <= 0:
                raise PlanNotPurchasableError()

            if target.max_seats is not None:
                active_employees = await self.employees.count_active_by_tenant(tenant_id)
                if target.max_seats < active_employees:
                    raise InsufficientSeatsError(
                        f"Plan {target.name} allows {target.max_seats} seats but "
                        f"{active_employees} employees are active"
                    )

            applied = await self.subscriptions.set_pending_plan(
                subscription.id,
                target.id,
                expected_plan_id=subscription.plan_id,
                expected_statuses=(SubscriptionStatus.ACTIVE,),
            )
            if not applied:
                raise ConcurrentUpdateError()
            subscription = await self._reload(subscription)

        logger.info(
            "Downgrade scheduled tenant=%s from=%s to=%s at=%s",
            tenant_id,
            current.name,
            target.name,
            subscription.current_period_end.isoformat(),
        )
        return subscription

    async def cancel_downgrade(self, tenant_id: UUID) -> Subscription:
        async with self.transaction():
            subscription = await self._require(tenant_id)
            if subscription.pending_plan_id is None:
                raise InvalidSubscriptionStateError("No downgrade is scheduled")

            applied = await self.subscriptions.set_pending_plan(
                subscription.id,
                None,
                expected_plan_id=subscription.plan_id,
                expected_statuses=tuple(ACCESS_STATUSES),
            )
            if not applied:
                raise ConcurrentUpdateError()
            subscription = await self._reload(subscription)

        logger.info("Scheduled downgrade cancelled tenant=%s", tenant_id)
        return subscription

    async def cancel_subscription(self, tenant_id: UUID, *, reason: str | None = None) -> Subscription:
        async with self.transaction():
            subscription = await self._require(tenant_id)
            if subscription.status not in CANCELLABLE_STATUSES:
                raise InvalidSubscriptionStateError(
                    f"Cannot cancel a subscription in status {SubscriptionStatus(subscription.status).value}"
                )

            applied = await self.subscriptions.cancel(subscription.id, from_statuses=CANCELLABLE_STATUSES)
            if not applied:
                raise ConcurrentUpdateError()
            voided = await self.lifecycle.void_pending_invoices(subscription.id)
            subscription = await self._reload(subscription)

        logger.info(
            "Subscription cancelled tenant=%s access_until=%s voided_invoices=%s reason=%s",
            tenant_id,
            subscription.current_period_end.isoformat(),
            voided,
            reason or "-",
        )
        return subscription

    async def change_seats(self, tenant_id: UUID, *, seats: int, payer_email: str) -> SeatChange:
        async with self.transaction():
            if seats < 1:
                raise InvalidSeatCountError()
            subscription = await self._require(tenant_id)
            if seats == subscription.max_seats:
                raise SameAsCurrentSeatsError()
            if subscription.status not in ACCESS_STATUSES:
                raise InvalidSubscriptionStateError("Subscription has no access")
            await self.lifecycle.ensure_no_pending_invoice(subscription.id)

            plan = await self.catalog.get_plan(subscription.plan_id)
            if plan.max_seats is not None and seats > plan.max_seats:
                raise ExceedsPlanMaxSeatsError(f"Plan {plan.name} allows at most {plan.max_seats} seats")
            if subscription.status == SubscriptionStatus.PAST_DUE:
                raise CannotUpgradeDuringGracePeriodError()

            if seats > subscription.max_seats:
                return await self._increase_seats(subscription, plan, seats, payer_email)
            return await self._schedule_seat_decrease(subscription, seats)

    async def _increase_seats(
        self,
        subscription: Subscription,
        plan: Plan,
        seats: int,
        payer_email: str,
    ) -> SeatChange:
        if subscription.status == SubscriptionStatus.TRIAL:
            raise InvalidSubscriptionStateError("Trial subscriptions add seats through checkout")
        now = self.clock()
        if now >= subscription.current_period_end:
            raise InvalidSubscriptionStateError("Current billing period has ended")

        invoice = await self.lifecycle.create_prorated_invoice(
            subscription,
            plan,
            new_seats=seats,
            payer_email=payer_email,
            now=now,
        )
        return SeatChange(subscription=subscription, invoice=invoice)

    async def _schedule_seat_decrease(self, subscription: Subscription, seats: int) -> SeatChange:
        active_employees = await self.employees.count_active_by_tenant(subscription.tenant_id)
        if seats < active_employees:
            raise SeatsBelowActiveError(
                f"Cannot reduce to {seats} seats while {active_employees} employees are active"
            )

        applied = await self.subscriptions.set_pending_max_seats(
            subscription.id,
            seats,
            expected_max_seats=subscription.max_seats,
            expected_statuses=UPGRADABLE_STATUSES,
        )
        if not applied:
            raise ConcurrentUpdateError()
        logger.info(
            "Seat decrease scheduled tenant=%s seats=%s->%s",
            subscription.tenant_id,
            subscription.max_seats,
            seats,
        )
        return SeatChange(subscription=await self._reload(subscription), invoice=None)

    async def apply_payment(self, invoice: Invoice) -> None:
        """Advance the owning subscription for a freshly paid invoice.

        Runs inside the caller's transaction; the caller guarantees the invoice
        has just moved from pending to paid so this is applied once.
        """
        if invoice.is_prorated:
            applied = await self.subscriptions.apply_paid_seats(
                invoice.subscription_id,
                max_seats=invoice.seat_count_snapshot,
            )
        else:
            applied = await self.subscriptions.apply_paid_period(
                invoice.subscription_id,
                plan_id=invoice.plan_id,
                max_seats=invoice.seat_count_snapshot,
                billing_cycle=BillingCycle(invoice.billing_cycle_snapshot),
                period_start=invoice.period_start,
                period_end=invoice.period_end,
            )
        if not applied:
            raise SubscriptionNotFoundError(f"Subscription {invoice.subscription_id} not found")

        logger.info(
            "Payment applied tenant=%s invoice=%s plan=%s seats=%s prorated=%s",
            invoice.tenant_id,
            invoice.id,
            invoice.plan_snapshot_name,
            invoice.seat_count_snapshot,
            invoice.is_prorated,
        )

    def _has_access(self, subscription: Subscription | None) -> bool:
        if subscription is None:
            return False
        if subscription.status in ACCESS_STATUSES:
            return True
        # Cancelled tenants keep what they paid for until the period ends.
        return subscription.status == SubscriptionStatus.CANCELLED and self.clock() < subscription.current_period_end

    async def has_access(self, tenant_id: UUID) -> bool:
        return self._has_access(await self.subscriptions.get_by_tenant(tenant_id))

    async def has_feature(self, tenant_id: UUID, feature_code: str) -> bool:
        return feature_code in await self.get_feature_codes(tenant_id)

    async def get_feature_codes(self, tenant_id: UUID) -> list[str]:
        subscription = await self.subscriptions.get_by_tenant(tenant_id)
        if not self._has_access(subscription):
            return []
        return await self.catalog.feature_codes(subscription.plan_id)

    async def can_add_employee(self, tenant_id: UUID) -> bool:
        subscription = await self.subscriptions.get_by_tenant(tenant_id)
        if not self._has_access(subscription):
            return False
        return await self.employees.count_active_by_tenant(tenant_id) < subscription.max_seats

    async def list_invoices(self, tenant_id: UUID, *, limit: int = 100, offset: int = 0) -> list[Invoice]:
        return await self.lifecycle.list_invoices(tenant_id, limit=limit, offset=offset)

    async def get_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        return await self.lifecycle.get_invoice(tenant_id, invoice_id)

    async def cancel_pending_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        async with self.transaction():
            return await self.lifecycle.cancel_pending_invoice(tenant_id, invoice_id)
