from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from hris_billing.core.billing.catalog import PlanCatalog
from hris_billing.core.billing.reconciler import CronReconciler
from hris_billing.core.billing.subscriptions import SubscriptionService
from hris_billing.core.billing.webhooks import WebhookReconciler, build_webhook_verifier
from hris_billing.core.db import get_db_session, unit_of_work
from hris_billing.core.gateway import get_gateway_client
from hris_billing.core.repositories import (
    InvoiceRepository,
    PlanRepository,
    SqlEmployeeCounter,
    SubscriptionRepository,
)


def build_subscription_service(session: AsyncSession) -> SubscriptionService:
    return SubscriptionService(
        plans=PlanRepository(session),
        subscriptions=SubscriptionRepository(session),
        invoices=InvoiceRepository(session),
        employees=SqlEmployeeCounter(session),
        gateway=get_gateway_client(),
        transaction=lambda: unit_of_work(session),
    )


def build_cron_reconciler(session: AsyncSession) -> CronReconciler:
    return CronReconciler(
        subscriptions=SubscriptionRepository(session),
        invoices=InvoiceRepository(session),
        transaction=lambda: unit_of_work(session),
    )


async def get_plan_catalog(session: AsyncSession = Depends(get_db_session)) -> PlanCatalog:
    return PlanCatalog(PlanRepository(session))


async def get_subscription_service(
    session: AsyncSession = Depends(get_db_session),
) -> SubscriptionService:
    return build_subscription_service(session)


async def get_webhook_reconciler(
    session: AsyncSession = Depends(get_db_session),
) -> WebhookReconciler:
    return WebhookReconciler(
        service=build_subscription_service(session),
        verifier=build_webhook_verifier(),
        transaction=lambda: unit_of_work(session),
    )
