from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from hris_billing.models.enums import BillingCycle, InvoiceStatus, SubscriptionStatus
from hris_billing.models.invoice import Invoice
from hris_billing.models.plan import Feature, Plan
from hris_billing.models.subscription import Subscription

Transaction = Callable[[], AbstractAsyncContextManager[Any]]
Clock = Callable[[], datetime]


@dataclass(slots=True)
class GatewayInvoice:
    gateway_id: str
    url: str
    expires_at: datetime | None
    status: str = "PENDING"


class PlanReader(Protocol):
    async def get(self, plan_id: UUID) -> Plan | None: ...

    async def get_by_name(self, name: str) -> Plan | None: ...

    async def list_active(self) -> list[Plan]: ...

    async def list_features(self) -> list[Feature]: ...

    async def feature_codes(self, plan_id: UUID) -> list[str]: ...

    async def feature_codes_by_plan(self, plan_ids: Sequence[UUID]) -> dict[UUID, list[str]]: ...


class SubscriptionStore(Protocol):
    async def get(self, subscription_id: UUID) -> Subscription | None: ...

    async def get_by_tenant(self, tenant_id: UUID) -> Subscription | None: ...

    async def create(self, **values: object) -> Subscription: ...

    async def set_pending_plan(
        self,
        subscription_id: UUID,
        pending_plan_id: UUID | None,
        *,
        expected_plan_id: UUID,
        expected_statuses: Sequence[SubscriptionStatus],
    ) -> bool: ...

    async def set_pending_max_seats(
        self,
        subscription_id: UUID,
        pending_max_seats: int | None,
        *,
        expected_max_seats: int,
        expected_statuses: Sequence[SubscriptionStatus],
    ) -> bool: ...

    async def cancel(
        self,
        subscription_id: UUID,
        *,
        from_statuses: Sequence[SubscriptionStatus],
    ) -> bool: ...

    async def apply_paid_period(
        self,
        subscription_id: UUID,
        *,
        plan_id: UUID,
        max_seats: int,
        billing_cycle: BillingCycle,
        period_start: datetime,
        period_end: datetime,
    ) -> bool: ...

    async def apply_paid_seats(self, subscription_id: UUID, *, max_seats: int) -> bool: ...

    async def transition_overdue(
        self,
        *,
        from_statuses: Sequence[SubscriptionStatus],
        to_status: SubscriptionStatus,
        period_ended_before: datetime,
    ) -> int: ...

    async def apply_pending_seats(self, *, period_ended_by: datetime) -> int: ...

    async def apply_pending_plans(self, *, period_ended_by: datetime) -> int: ...


class InvoiceStore(Protocol):
    async def get(self, invoice_id: UUID) -> Invoice | None: ...

    async def get_for_tenant(self, tenant_id: UUID, invoice_id: UUID) -> Invoice | None: ...

    async def get_by_gateway_id(self, gateway_invoice_id: str) -> Invoice | None: ...

    async def get_pending_for_subscription(self, subscription_id: UUID) -> Invoice | None: ...

    async def list_for_tenant(self, tenant_id: UUID, *, limit: int = 100, offset: int = 0) -> list[Invoice]: ...

    async def create(self, **values: object) -> Invoice: ...

    async def mark_status(
        self,
        invoice_id: UUID,
        status: InvoiceStatus,
        *,
        paid_at: datetime | None = None,
        payment_method: str | None = None,
        payment_channel: str | None = None,
        notes: str | None = None,
    ) -> bool: ...

    async def expire_pending_for_subscription(self, subscription_id: UUID) -> list[str]: ...

    async def expire_stale(self, *, created_before: datetime) -> int: ...


class EmployeeCounter(Protocol):
    async def count_active_by_tenant(self, tenant_id: UUID) -> int: ...


class PaymentGatewayClient(Protocol):
    async def create_invoice(
        self,
        *,
        external_id: str,
        amount: Decimal,
        payer_email: str,
        description: str,
        expiry_seconds: int,
    ) -> GatewayInvoice: ...

    async def expire_invoice(self, gateway_invoice_id: str) -> None: ...


class WebhookVerifier(Protocol):
    def verify(self, body: bytes, headers: Mapping[str, str]) -> bool: ...
