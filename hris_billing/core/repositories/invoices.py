from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hris_billing.core.billing.errors import PendingInvoiceExistsError
from hris_billing.core.repositories.base import TenantRepository, violated_constraint
from hris_billing.models.enums import InvoiceStatus
from hris_billing.models.invoice import Invoice

PENDING_INVOICE_INDEX = "uq_invoices_one_pending_per_subscription"


class InvoiceRepository(TenantRepository[Invoice]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Invoice)

    async def create(self, **values: object) -> Invoice:
        try:
            return await super().create(**values)
        except IntegrityError as exc:
            if violated_constraint(exc) == PENDING_INVOICE_INDEX or PENDING_INVOICE_INDEX in str(exc):
                raise PendingInvoiceExistsError() from exc
            raise

    async def get_by_gateway_id(self, gateway_invoice_id: str) -> Invoice | None:
        result = await self.session.execute(
            select(Invoice).where(Invoice.gateway_invoice_id == gateway_invoice_id)
        )
        return result.scalar_one_or_none()

    async def get_pending_for_subscription(self, subscription_id: UUID) -> Invoice | None:
        result = await self.session.execute(
            select(Invoice).where(
                Invoice.subscription_id == subscription_id,
                Invoice.status == InvoiceStatus.PENDING,
            )
        )
        return result.scalars().first()

    async def mark_status(
        self,
        invoice_id: UUID,
        status: InvoiceStatus,
        *,
        paid_at: datetime | None = None,
        payment_method: str | None = None,
        payment_channel: str | None = None,
        notes: str | None = None,
    ) -> bool:
        values: dict[str, object] = {"status": status}
        if paid_at is not None:
            values["paid_at"] = paid_at
        if payment_method is not None:
            values["payment_method"] = payment_method
        if payment_channel is not None:
            values["payment_channel"] = payment_channel
        if notes is not None:
            values["notes"] = notes

        stmt = (
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == InvoiceStatus.PENDING)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return await self._rowcount(stmt) > 0

    async def expire_pending_for_subscription(self, subscription_id: UUID) -> list[str]:
        stmt = (
            update(Invoice)
            .where(
                Invoice.subscription_id == subscription_id,
                Invoice.status == InvoiceStatus.PENDING,
            )
            .values(status=InvoiceStatus.EXPIRED, notes="Voided by subscription cancellation")
            .returning(Invoice.gateway_invoice_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return [gateway_id for gateway_id in result.scalars().all() if gateway_id]

    async def expire_stale(self, *, created_before: datetime) -> int:
        stmt = (
            update(Invoice)
            .where(
                Invoice.status == InvoiceStatus.PENDING,
                Invoice.created_at < created_before,
            )
            .values(status=InvoiceStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        return await self._rowcount(stmt)
