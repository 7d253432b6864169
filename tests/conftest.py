from __future__ import annotations

import copy
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

from hris_billing.core.billing.errors import (
    PaymentGatewayError,
    PendingInvoiceExistsError,
    SubscriptionAlreadyExistsError,
)
from hris_billing.core.billing.ports import GatewayInvoice
from hris_billing.core.billing.subscriptions import SubscriptionService
from hris_billing.models.enums import BillingCycle, InvoiceStatus, SubscriptionStatus


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeDatabase:
    """In-memory rows with the same conditional-update semantics as the SQL stores."""

    def __init__(self) -> None:
        self.plans: dict[UUID, SimpleNamespace] = {}
        self.features: dict[UUID, SimpleNamespace] = {}
        self.plan_features: list[tuple[UUID, UUID, bool]] = []
        self.subscriptions: dict[UUID, SimpleNamespace] = {}
        self.invoices: dict[UUID, SimpleNamespace] = {}
        self.active_employees: dict[UUID, int] = {}

    def add_plan(
        self,
        name: str,
        price: str,
        tier: int,
        max_seats: int | None,
        features: Sequence[str] = (),
        *,
        is_active: bool = True,
    ) -> SimpleNamespace:
        plan = SimpleNamespace(
            id=uuid4(),
            name=name,
            price_per_seat=Decimal(price),
            tier_level=tier,
            max_seats=max_seats,
            is_active=is_active,
        )
        self.plans[plan.id] = plan
        for code in features:
            feature = self.feature(code)
            self.plan_features.append((plan.id, feature.id, True))
        return plan

    def feature(self, code: str) -> SimpleNamespace:
        for feature in self.features.values():
            if feature.code == code:
                return feature
        feature = SimpleNamespace(id=uuid4(), code=code, name=code.title(), description=None)
        self.features[feature.id] = feature
        return feature

    def plan_named(self, name: str) -> SimpleNamespace:
        return next(plan for plan in self.plans.values() if plan.name == name)

    def add_subscription(self, tenant_id: UUID, plan: SimpleNamespace, **overrides: object) -> SimpleNamespace:
        start = overrides.pop("current_period_start", datetime(2024, 1, 1, tzinfo=timezone.utc))
        values = {
            "id": uuid4(),
            "tenant_id": tenant_id,
            "plan_id": plan.id,
            "status": SubscriptionStatus.ACTIVE,
            "max_seats": 10,
            "pending_max_seats": None,
            "current_period_start": start,
            "current_period_end": datetime(2024, 1, 31, tzinfo=timezone.utc),
            "trial_ends_at": None,
            "pending_plan_id": None,
            "billing_cycle": BillingCycle.MONTHLY,
            "auto_renew": True,
            "created_at": start,
            "updated_at": start,
        }
        values.update(overrides)
        subscription = SimpleNamespace(**values)
        self.subscriptions[subscription.id] = subscription
        return subscription

    def pending_invoices(self, subscription_id: UUID) -> list[SimpleNamespace]:
        return [
            invoice
            for invoice in self.invoices.values()
            if invoice.subscription_id == subscription_id and invoice.status == InvoiceStatus.PENDING
        ]

    def snapshot(self) -> tuple[dict, dict]:
        return copy.deepcopy(self.subscriptions), copy.deepcopy(self.invoices)

    def restore(self, state: tuple[dict, dict]) -> None:
        self.subscriptions, self.invoices = state


class FakeTransaction:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.commits = 0
        self.rollbacks = 0

    def __call__(self):  # noqa: ANN204
        return self._unit()

    @asynccontextmanager
    async def _unit(self) -> AsyncIterator[FakeDatabase]:
        state = self.db.snapshot()
        try:
            yield self.db
        except BaseException:
            self.db.restore(state)
            self.rollbacks += 1
            raise
        self.commits += 1


class FakePlanReader:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    async def get(self, plan_id: UUID) -> SimpleNamespace | None:
        return self.db.plans.get(plan_id)

    async def get_by_name(self, name: str) -> SimpleNamespace | None:
        return next((plan for plan in self.db.plans.values() if plan.name == name), None)

    async def list_active(self) -> list[SimpleNamespace]:
        return [plan for plan in self.db.plans.values() if plan.is_active]

    async def list_features(self) -> list[SimpleNamespace]:
        return sorted(self.db.features.values(), key=lambda feature: feature.code)

    async def feature_codes(self, plan_id: UUID) -> list[str]:
        return sorted(
            self.db.features[feature_id].code
            for linked_plan, feature_id, active in self.db.plan_features
            if linked_plan == plan_id and active
        )

    async def feature_codes_by_plan(self, plan_ids: Sequence[UUID]) -> dict[UUID, list[str]]:
        return {plan_id: await self.feature_codes(plan_id) for plan_id in plan_ids}


class FakeSubscriptionStore:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    def _row(self, subscription_id: UUID) -> SimpleNamespace | None:
        return self.db.subscriptions.get(subscription_id)

    async def get(self, subscription_id: UUID) -> SimpleNamespace | None:
        return self._row(subscription_id)

    async def get_by_tenant(self, tenant_id: UUID) -> SimpleNamespace | None:
        return next((row for row in self.db.subscriptions.values() if row.tenant_id == tenant_id), None)

    async def create(self, **values: object) -> SimpleNamespace:
        if await self.get_by_tenant(values["tenant_id"]) is not None:
            raise SubscriptionAlreadyExistsError()
        row = SimpleNamespace(id=uuid4(), pending_max_seats=None, pending_plan_id=None, **values)
        self.db.subscriptions[row.id] = row
        return row

    async def set_pending_plan(self, subscription_id, pending_plan_id, *, expected_plan_id, expected_statuses):  # noqa: ANN001, ANN201
        row = self._row(subscription_id)
        if row is None or row.plan_id != expected_plan_id or row.status not in expected_statuses:
            return False
        row.pending_plan_id = pending_plan_id
        return True

    async def set_pending_max_seats(self, subscription_id, pending_max_seats, *, expected_max_seats, expected_statuses):  # noqa: ANN001, ANN201
        row = self._row(subscription_id)
        if row is None or row.max_seats != expected_max_seats or row.status not in expected_statuses:
            return False
        row.pending_max_seats = pending_max_seats
        return True

    async def cancel(self, subscription_id, *, from_statuses):  # noqa: ANN001, ANN201
        row = self._row(subscription_id)
        if row is None or row.status not in from_statuses:
            return False
        row.status = SubscriptionStatus.CANCELLED
        row.auto_renew = False
        return True

    async def apply_paid_period(self, subscription_id, *, plan_id, max_seats, billing_cycle, period_start, period_end):  # noqa: ANN001, ANN201
        row = self._row(subscription_id)
        if row is None:
            return False
        row.plan_id = plan_id
        row.max_seats = max_seats
        row.billing_cycle = billing_cycle
        row.current_period_start = period_start
        row.current_period_end = period_end
        row.status = SubscriptionStatus.ACTIVE
        row.pending_plan_id = None
        row.pending_max_seats = None
        row.trial_ends_at = None
        return True

    async def apply_paid_seats(self, subscription_id, *, max_seats):  # noqa: ANN001, ANN201
        row = self._row(subscription_id)
        if row is None:
            return False
        row.max_seats = max_seats
        row.pending_max_seats = None
        return True

    async def transition_overdue(self, *, from_statuses, to_status, period_ended_before):  # noqa: ANN001, ANN201
        moved = 0
        for row in self.db.subscriptions.values():
            if row.status in from_statuses and row.current_period_end < period_ended_before:
                row.status = to_status
                moved += 1
        return moved

    async def apply_pending_seats(self, *, period_ended_by):  # noqa: ANN001, ANN201
        moved = 0
        for row in self.db.subscriptions.values():
            if row.pending_max_seats is not None and row.current_period_end <= period_ended_by:
                row.max_seats = row.pending_max_seats
                row.pending_max_seats = None
                moved += 1
        return moved

    async def apply_pending_plans(self, *, period_ended_by):  # noqa: ANN001, ANN201
        moved = 0
        for row in self.db.subscriptions.values():
            if row.pending_plan_id is not None and row.current_period_end <= period_ended_by:
                cap = self.db.plans[row.pending_plan_id].max_seats
                row.plan_id = row.pending_plan_id
                row.pending_plan_id = None
                if cap is not None:
                    row.max_seats = min(row.max_seats, cap)
                moved += 1
        return moved


class FakeInvoiceStore:
    def __init__(self, db: FakeDatabase, clock: FakeClock) -> None:
        self.db = db
        self.clock = clock

    async def get(self, invoice_id: UUID) -> SimpleNamespace | None:
        return self.db.invoices.get(invoice_id)

    async def get_for_tenant(self, tenant_id: UUID, invoice_id: UUID) -> SimpleNamespace | None:
        invoice = self.db.invoices.get(invoice_id)
        if invoice is None or invoice.tenant_id != tenant_id:
            return None
        return invoice

    async def get_by_gateway_id(self, gateway_invoice_id: str) -> SimpleNamespace | None:
        return next(
            (row for row in self.db.invoices.values() if row.gateway_invoice_id == gateway_invoice_id),
            None,
        )

    async def get_pending_for_subscription(self, subscription_id: UUID) -> SimpleNamespace | None:
        pending = self.db.pending_invoices(subscription_id)
        return pending[0] if pending else None

    async def list_for_tenant(self, tenant_id: UUID, *, limit: int = 100, offset: int = 0) -> list[SimpleNamespace]:
        rows = [row for row in self.db.invoices.values() if row.tenant_id == tenant_id]
        rows.sort(key=lambda row: row.created_at, reverse=True)
        return rows[offset : offset + limit]

    async def create(self, **values: object) -> SimpleNamespace:
        if self.db.pending_invoices(values["subscription_id"]):
            raise PendingInvoiceExistsError()
        defaults = {
            "id": uuid4(),
            "created_at": self.clock(),
            "paid_at": None,
            "payment_method": None,
            "payment_channel": None,
            "notes": None,
            "seat_delta_snapshot": None,
            "proration_ratio_snapshot": None,
        }
        defaults.update(values)
        row = SimpleNamespace(**defaults)
        self.db.invoices[row.id] = row
        return row

    async def mark_status(self, invoice_id, status, *, paid_at=None, payment_method=None, payment_channel=None, notes=None):  # noqa: ANN001, ANN201
        row = self.db.invoices.get(invoice_id)
        if row is None or row.status != InvoiceStatus.PENDING:
            return False
        row.status = status
        if paid_at is not None:
            row.paid_at = paid_at
        if payment_method is not None:
            row.payment_method = payment_method
        if payment_channel is not None:
            row.payment_channel = payment_channel
        if notes is not None:
            row.notes = notes
        return True

    async def expire_pending_for_subscription(self, subscription_id: UUID) -> list[str]:
        expired = []
        for row in self.db.pending_invoices(subscription_id):
            row.status = InvoiceStatus.EXPIRED
            if row.gateway_invoice_id:
                expired.append(row.gateway_invoice_id)
        return expired

    async def expire_stale(self, *, created_before: datetime) -> int:
        moved = 0
        for row in self.db.invoices.values():
            if row.status == InvoiceStatus.PENDING and row.created_at < created_before:
                row.status = InvoiceStatus.EXPIRED
                moved += 1
        return moved


class FakeEmployeeCounter:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    async def count_active_by_tenant(self, tenant_id: UUID) -> int:
        return self.db.active_employees.get(tenant_id, 0)


class FakeGateway:
    def __init__(self) -> None:
        self.created: list[dict] = []
        self.expired: list[str] = []
        self.fail_create = False
        self.fail_expire = False

    async def create_invoice(self, **kwargs: object) -> GatewayInvoice:
        if self.fail_create:
            raise PaymentGatewayError()
        self.created.append(kwargs)
        gateway_id = f"xnd_{len(self.created)}"
        return GatewayInvoice(
            gateway_id=gateway_id,
            url=f"https://checkout.example.test/{gateway_id}",
            expires_at=None,
        )

    async def expire_invoice(self, gateway_invoice_id: str) -> None:
        if self.fail_expire:
            raise PaymentGatewayError()
        self.expired.append(gateway_invoice_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def db() -> FakeDatabase:
    database = FakeDatabase()
    database.add_plan("Free Trial", "0", 0, 5, ["attendance", "leave"])
    database.add_plan("Standard", "12000", 1, 50, ["attendance", "leave", "invitation", "schedule"])
    database.add_plan(
        "Premium", "15000", 2, 200, ["attendance", "leave", "invitation", "schedule", "payroll", "report"]
    )
    database.add_plan(
        "Ultra", "20000", 3, None, ["attendance", "leave", "invitation", "schedule", "payroll", "report"]
    )
    return database


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def transaction(db: FakeDatabase) -> FakeTransaction:
    return FakeTransaction(db)


@pytest.fixture
def subscription_store(db: FakeDatabase) -> FakeSubscriptionStore:
    return FakeSubscriptionStore(db)


@pytest.fixture
def invoice_store(db: FakeDatabase, clock: FakeClock) -> FakeInvoiceStore:
    return FakeInvoiceStore(db, clock)


@pytest.fixture
def service(
    db: FakeDatabase,
    gateway: FakeGateway,
    transaction: FakeTransaction,
    subscription_store: FakeSubscriptionStore,
    invoice_store: FakeInvoiceStore,
    clock: FakeClock,
) -> SubscriptionService:
    return SubscriptionService(
        plans=FakePlanReader(db),
        subscriptions=subscription_store,
        invoices=invoice_store,
        employees=FakeEmployeeCounter(db),
        gateway=gateway,
        transaction=transaction,
        clock=clock,
        invoice_expiry_hours=24,
    )
