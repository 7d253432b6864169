from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Update

from hris_billing.core.billing.errors import SubscriptionAlreadyExistsError
from hris_billing.core.repositories.base import TenantRepository
from hris_billing.models.enums import BillingCycle, SubscriptionStatus
from hris_billing.models.plan import Plan
from hris_billing.models.subscription import Subscription


class SubscriptionRepository(TenantRepository[Subscription]):
    """Every mutation is a conditional UPDATE; callers read the rowcount."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Subscription)

    async def create(self, **values: object) -> Subscription:
        try:
            return await super().create(**values)
        except IntegrityError as exc:
            raise SubscriptionAlreadyExistsError() from exc

    async def get_by_tenant(self, tenant_id: UUID) -> Subscription | None:
        result = await self.session.execute(self._scoped_select(tenant_id))
        return result.scalar_one_or_none()

    def _update_row(self, subscription_id: UUID, *conditions: object) -> Update:
        return (
            update(Subscription)
            .where(Subscription.id == subscription_id, *conditions)
            .execution_options(synchronize_session="fetch")
        )

    async def set_pending_plan(
        self,
        subscription_id: UUID,
        pending_plan_id: UUID | None,
        *,
        expected_plan_id: UUID,
        expected_statuses: Sequence[SubscriptionStatus],
    ) -> bool:
        stmt = self._update_row(
            subscription_id,
            Subscription.plan_id == expected_plan_id,
            Subscription.status.in_(list(expected_statuses)),
        ).values(pending_plan_id=pending_plan_id)
        return await self._rowcount(stmt) > 0

    async def set_pending_max_seats(
        self,
        subscription_id: UUID,
        pending_max_seats: int | None,
        *,
        expected_max_seats: int,
        expected_statuses: Sequence[SubscriptionStatus],
    ) -> bool:
        stmt = self._update_row(
            subscription_id,
            Subscription.max_seats == expected_max_seats,
            Subscription.status.in_(list(expected_statuses)),
        ).values(pending_max_seats=pending_max_seats)
        return await self._rowcount(stmt) > 0

    async def cancel(
        self,
        subscription_id: UUID,
        *,
        from_statuses: Sequence[SubscriptionStatus],
    ) -> bool:
        stmt = self._update_row(
            subscription_id,
            Subscription.status.in_(list(from_statuses)),
        ).values(status=SubscriptionStatus.CANCELLED, auto_renew=False)
        return await self._rowcount(stmt) > 0

    async def apply_paid_period(
        self,
        subscription_id: UUID,
        *,
        plan_id: UUID,
        max_seats: int,
        billing_cycle: BillingCycle,
        period_start: datetime,
        period_end: datetime,
    ) -> bool:
        stmt = self._update_row(subscription_id).values(
            plan_id=plan_id,
            max_seats=max_seats,
            billing_cycle=billing_cycle,
            current_period_start=period_start,
            current_period_end=period_end,
            status=SubscriptionStatus.ACTIVE,
            pending_plan_id=None,
            pending_max_seats=None,
            trial_ends_at=None,
        )
        return await self._rowcount(stmt) > 0

    async def apply_paid_seats(self, subscription_id: UUID, *, max_seats: int) -> bool:
        stmt = self._update_row(subscription_id).values(max_seats=max_seats, pending_max_seats=None)
        return await self._rowcount(stmt) > 0

    async def transition_overdue(
        self,
        *,
        from_statuses: Sequence[SubscriptionStatus],
        to_status: SubscriptionStatus,
        period_ended_before: datetime,
    ) -> int:
        stmt = (
            update(Subscription)
            .where(
                Subscription.status.in_(list(from_statuses)),
                Subscription.current_period_end < period_ended_before,
            )
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )
        return await self._rowcount(stmt)

    async def apply_pending_seats(self, *, period_ended_by: datetime) -> int:
        stmt = (
            update(Subscription)
            .where(
                Subscription.pending_max_seats.is_not(None),
                Subscription.current_period_end <= period_ended_by,
            )
            .values(max_seats=Subscription.pending_max_seats, pending_max_seats=None)
            .execution_options(synchronize_session=False)
        )
        return await self._rowcount(stmt)

    async def apply_pending_plans(self, *, period_ended_by: datetime) -> int:
        target_cap = (
            select(Plan.max_seats)
            .where(Plan.id == Subscription.pending_plan_id)
            .scalar_subquery()
        )
        stmt = (
            update(Subscription)
            .where(
                Subscription.pending_plan_id.is_not(None),
                Subscription.current_period_end <= period_ended_by,
            )
            .values(
                plan_id=Subscription.pending_plan_id,
                pending_plan_id=None,
                max_seats=func.least(
                    Subscription.max_seats,
                    func.coalesce(target_cap, Subscription.max_seats),
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return await self._rowcount(stmt)
