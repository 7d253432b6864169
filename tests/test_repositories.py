from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError

from hris_billing.core.billing.errors import PendingInvoiceExistsError, SubscriptionAlreadyExistsError
from hris_billing.core.repositories import (
    InvoiceRepository,
    PlanRepository,
    SqlEmployeeCounter,
    SubscriptionRepository,
)
from hris_billing.core.repositories.base import violated_constraint
from hris_billing.core.repositories.invoices import PENDING_INVOICE_INDEX
from hris_billing.models.enums import InvoiceStatus, SubscriptionStatus


class _DriverError(Exception):
    def __init__(self, message: str, constraint_name: str | None = None) -> None:
        super().__init__(message)
        self.constraint_name = constraint_name


def _sql(stmt) -> str:  # noqa: ANN001
    return str(stmt.compile(dialect=postgresql.dialect()))


def _session(**result: object) -> Mock:
    session = Mock()
    session.execute = AsyncMock(return_value=SimpleNamespace(**result))
    session.add = Mock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    return session


def _executed(session: Mock):  # noqa: ANN202
    return session.execute.await_args.args[0]


def test_violated_constraint_reads_driver_error_and_cause() -> None:
    direct = IntegrityError("INSERT", {}, _DriverError("dup", constraint_name="uq_x"))
    assert violated_constraint(direct) == "uq_x"

    wrapped_orig = _DriverError("wrapper")
    wrapped_orig.__cause__ = _DriverError("dup", constraint_name="uq_y")
    assert violated_constraint(IntegrityError("INSERT", {}, wrapped_orig)) == "uq_y"

    assert violated_constraint(IntegrityError("INSERT", {}, _DriverError("plain"))) is None


def test_scoped_select_filters_by_tenant() -> None:
    tenant_id = uuid4()
    repo = InvoiceRepository(Mock())

    compiled = repo._scoped_select(tenant_id).compile(dialect=postgresql.dialect())

    assert "invoices.tenant_id = " in str(compiled)
    assert tenant_id in compiled.params.values()


@pytest.mark.asyncio
async def test_list_for_tenant_orders_newest_first() -> None:
    invoice = SimpleNamespace(id=uuid4())
    session = _session(scalars=lambda: SimpleNamespace(all=lambda: [invoice]))
    repo = InvoiceRepository(session)

    rows = await repo.list_for_tenant(uuid4(), limit=10, offset=20)

    sql = _sql(_executed(session))
    assert rows == [invoice]
    assert "ORDER BY invoices.created_at DESC" in sql
    assert "LIMIT" in sql and "OFFSET" in sql


@pytest.mark.asyncio
async def test_subscription_create_maps_unique_violation() -> None:
    session = _session()
    session.flush = AsyncMock(side_effect=IntegrityError("INSERT", {}, _DriverError("dup")))
    repo = SubscriptionRepository(session)

    with pytest.raises(SubscriptionAlreadyExistsError):
        await repo.create(tenant_id=uuid4(), plan_id=uuid4(), status=SubscriptionStatus.TRIAL, max_seats=5)


@pytest.mark.asyncio
async def test_set_pending_plan_is_conditional_on_read_state() -> None:
    session = _session(rowcount=1)
    repo = SubscriptionRepository(session)

    applied = await repo.set_pending_plan(
        uuid4(),
        uuid4(),
        expected_plan_id=uuid4(),
        expected_statuses=(SubscriptionStatus.ACTIVE,),
    )

    sql = _sql(_executed(session))
    assert applied is True
    assert sql.startswith("UPDATE subscriptions SET ")
    assert "pending_plan_id=" in sql
    assert "subscriptions.plan_id = " in sql
    assert "subscriptions.status IN" in sql

    session.execute = AsyncMock(return_value=SimpleNamespace(rowcount=0))
    assert (
        await repo.set_pending_plan(
            uuid4(),
            None,
            expected_plan_id=uuid4(),
            expected_statuses=(SubscriptionStatus.ACTIVE,),
        )
        is False
    )


@pytest.mark.asyncio
async def test_set_pending_max_seats_checks_current_limit() -> None:
    session = _session(rowcount=1)
    repo = SubscriptionRepository(session)

    assert await repo.set_pending_max_seats(
        uuid4(),
        18,
        expected_max_seats=20,
        expected_statuses=(SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE),
    )
    assert "subscriptions.max_seats = " in _sql(_executed(session))


@pytest.mark.asyncio
async def test_transition_overdue_returns_rowcount() -> None:
    session = _session(rowcount=3)
    repo = SubscriptionRepository(session)

    moved = await repo.transition_overdue(
        from_statuses=(SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE),
        to_status=SubscriptionStatus.PAST_DUE,
        period_ended_before=datetime(2024, 2, 1, tzinfo=timezone.utc),
    )

    sql = _sql(_executed(session))
    assert moved == 3
    assert "subscriptions.current_period_end < " in sql
    assert "subscriptions.status IN" in sql


@pytest.mark.asyncio
async def test_apply_pending_plans_clamps_seats_to_target_cap() -> None:
    session = _session(rowcount=1)
    repo = SubscriptionRepository(session)

    assert await repo.apply_pending_plans(period_ended_by=datetime(2024, 2, 1, tzinfo=timezone.utc)) == 1

    sql = _sql(_executed(session))
    assert "plan_id=subscriptions.pending_plan_id" in sql
    assert "least(subscriptions.max_seats, coalesce(" in sql
    assert "subscription_plans.max_seats" in sql
    assert "subscriptions.current_period_end <= " in sql


@pytest.mark.asyncio
async def test_apply_pending_seats_moves_pending_into_limit() -> None:
    session = _session(rowcount=2)
    repo = SubscriptionRepository(session)

    assert await repo.apply_pending_seats(period_ended_by=datetime(2024, 2, 1, tzinfo=timezone.utc)) == 2
    sql = _sql(_executed(session))
    assert "max_seats=subscriptions.pending_max_seats" in sql
    assert "subscriptions.pending_max_seats IS NOT NULL" in sql


@pytest.mark.asyncio
async def test_invoice_create_maps_pending_index_violation() -> None:
    session = _session()
    session.flush = AsyncMock(
        side_effect=IntegrityError("INSERT", {}, _DriverError("dup", constraint_name=PENDING_INVOICE_INDEX))
    )
    repo = InvoiceRepository(session)

    with pytest.raises(PendingInvoiceExistsError):
        await repo.create(subscription_id=uuid4(), tenant_id=uuid4(), status=InvoiceStatus.PENDING)


@pytest.mark.asyncio
async def test_invoice_create_reraises_other_integrity_errors() -> None:
    session = _session()
    session.flush = AsyncMock(side_effect=IntegrityError("INSERT", {}, _DriverError("fk", constraint_name="fk_x")))
    repo = InvoiceRepository(session)

    with pytest.raises(IntegrityError):
        await repo.create(subscription_id=uuid4(), tenant_id=uuid4(), status=InvoiceStatus.PENDING)


@pytest.mark.asyncio
async def test_mark_status_only_sets_provided_fields() -> None:
    session = _session(rowcount=1)
    repo = InvoiceRepository(session)

    applied = await repo.mark_status(
        uuid4(),
        InvoiceStatus.PAID,
        paid_at=datetime(2024, 1, 15, tzinfo=timezone.utc),
        payment_method="EWALLET",
    )

    compiled = _executed(session).compile(dialect=postgresql.dialect())
    assert applied is True
    assert "invoices.status = " in str(compiled)
    assert {"status", "paid_at", "payment_method"} <= set(compiled.params)
    assert "notes" not in compiled.params
    assert "payment_channel" not in compiled.params


@pytest.mark.asyncio
async def test_expire_pending_for_subscription_returns_gateway_ids() -> None:
    session = _session(scalars=lambda: SimpleNamespace(all=lambda: ["xnd_1", None]))
    repo = InvoiceRepository(session)

    gateway_ids = await repo.expire_pending_for_subscription(uuid4())

    assert gateway_ids == ["xnd_1"]
    assert "RETURNING invoices.gateway_invoice_id" in _sql(_executed(session))


@pytest.mark.asyncio
async def test_expire_stale_filters_pending_by_age() -> None:
    session = _session(rowcount=4)
    repo = InvoiceRepository(session)

    assert await repo.expire_stale(created_before=datetime(2024, 1, 14, tzinfo=timezone.utc)) == 4
    assert "invoices.created_at < " in _sql(_executed(session))


@pytest.mark.asyncio
async def test_feature_codes_by_plan_groups_rows() -> None:
    standard, premium = uuid4(), uuid4()
    rows = [
        SimpleNamespace(plan_id=standard, code="attendance"),
        SimpleNamespace(plan_id=premium, code="attendance"),
        SimpleNamespace(plan_id=premium, code="payroll"),
    ]
    session = _session(all=lambda: rows)
    repo = PlanRepository(session)

    codes = await repo.feature_codes_by_plan([standard, premium])

    assert codes == {standard: ["attendance"], premium: ["attendance", "payroll"]}
    assert "plan_features.is_active IS true" in _sql(_executed(session))

    session.execute.reset_mock()
    assert await repo.feature_codes_by_plan([]) == {}
    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_employee_counter_reads_active_count() -> None:
    tenant_id = uuid4()
    session = Mock()
    session.scalar = AsyncMock(return_value=7)

    assert await SqlEmployeeCounter(session).count_active_by_tenant(tenant_id) == 7
    assert session.scalar.await_args.args[1] == {"tenant_id": tenant_id}

    session.scalar = AsyncMock(return_value=None)
    assert await SqlEmployeeCounter(session).count_active_by_tenant(tenant_id) == 0
