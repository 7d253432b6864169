from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from hris_billing.core.billing.ports import InvoiceStore, SubscriptionStore, Transaction
from hris_billing.core.billing.pricing import GRACE_PERIOD_DAYS
from hris_billing.core.config import settings
from hris_billing.models.enums import SubscriptionStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExpirySweepResult:
    past_due: int = 0
    expired_after_grace: int = 0
    expired_after_cancel: int = 0

    @property
    def total(self) -> int:
        return self.past_due + self.expired_after_grace + self.expired_after_cancel


@dataclass(slots=True)
class DeferredChangeResult:
    seats_applied: int = 0
    plans_applied: int = 0


class CronReconciler:
    """Set-based sweeps that close the loop for tenants that take no action.

    Each sweep is one transaction of conditional UPDATEs, so a row moved by a
    concurrent payment no longer matches and is skipped. Re-running a sweep is
    always a no-op for rows it already moved.
    """

    def __init__(
        self,
        *,
        subscriptions: SubscriptionStore,
        invoices: InvoiceStore,
        transaction: Transaction,
        stale_invoice_hours: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.subscriptions = subscriptions
        self.invoices = invoices
        self.transaction = transaction
        self.stale_invoice_hours = stale_invoice_hours or settings.invoice_expiry_hours
        self.timeout_seconds = timeout_seconds or settings.sweep_timeout_seconds

    async def expire_subscriptions(self, now: datetime) -> ExpirySweepResult:
        return await asyncio.wait_for(self._expire_subscriptions(now), timeout=self.timeout_seconds)

    async def expire_stale_invoices(self, now: datetime) -> int:
        return await asyncio.wait_for(self._expire_stale_invoices(now), timeout=self.timeout_seconds)

    async def apply_deferred_changes(self, now: datetime) -> DeferredChangeResult:
        return await asyncio.wait_for(self._apply_deferred_changes(now), timeout=self.timeout_seconds)

    async def _expire_subscriptions(self, now: datetime) -> ExpirySweepResult:
        result = ExpirySweepResult()
        async with self.transaction():
            # One step per row per tick: grace expiry before the past_due move.
            result.expired_after_grace = await self.subscriptions.transition_overdue(
                from_statuses=(SubscriptionStatus.PAST_DUE,),
                to_status=SubscriptionStatus.EXPIRED,
                period_ended_before=now - timedelta(days=GRACE_PERIOD_DAYS),
            )
            result.past_due = await self.subscriptions.transition_overdue(
                from_statuses=(SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE),
                to_status=SubscriptionStatus.PAST_DUE,
                period_ended_before=now,
            )
            result.expired_after_cancel = await self.subscriptions.transition_overdue(
                from_statuses=(SubscriptionStatus.CANCELLED,),
                to_status=SubscriptionStatus.EXPIRED,
                period_ended_before=now,
            )
        if result.total:
            logger.info(
                "Subscription sweep past_due=%s expired=%s cancelled_expired=%s",
                result.past_due,
                result.expired_after_grace,
                result.expired_after_cancel,
            )
        return result

    async def _expire_stale_invoices(self, now: datetime) -> int:
        cutoff = now - timedelta(hours=self.stale_invoice_hours)
        async with self.transaction():
            expired = await self.invoices.expire_stale(created_before=cutoff)
        if expired:
            logger.info("Expired %s stale pending invoices created before %s", expired, cutoff.isoformat())
        return expired

    async def _apply_deferred_changes(self, now: datetime) -> DeferredChangeResult:
        result = DeferredChangeResult()
        async with self.transaction():
            # Seats first; the plan step clamps the already-reduced seat limit.
            result.seats_applied = await self.subscriptions.apply_pending_seats(period_ended_by=now)
            result.plans_applied = await self.subscriptions.apply_pending_plans(period_ended_by=now)
        if result.seats_applied or result.plans_applied:
            logger.info(
                "Deferred changes applied seats=%s plans=%s",
                result.seats_applied,
                result.plans_applied,
            )
        return result
