from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from hris_billing.api.routes.plans import plan_to_response
from hris_billing.core.auth import AuthContext, require_auth_context, require_owner
from hris_billing.core.billing.subscriptions import SubscriptionService
from hris_billing.core.dependencies import get_subscription_service
from hris_billing.models.invoice import Invoice
from hris_billing.models.subscription import Subscription
from hris_billing.schemas.billing import (
    CancelSubscriptionRequest,
    ChangeSeatsRequest,
    CheckoutRequest,
    DowngradeRequest,
    FeatureAccessResponse,
    InvoiceResponse,
    PendingChangeResponse,
    SeatChangeResponse,
    SubscriptionResponse,
    UpgradeRequest,
)

router = APIRouter(prefix="/subscription", tags=["subscription"])


def invoice_to_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        subscription_id=invoice.subscription_id,
        status=invoice.status,
        amount=invoice.amount,
        is_prorated=invoice.is_prorated,
        plan_name=invoice.plan_snapshot_name,
        price_per_seat=invoice.price_per_seat_snapshot,
        seat_count=invoice.seat_count_snapshot,
        billing_cycle=invoice.billing_cycle_snapshot,
        period_start=invoice.period_start,
        period_end=invoice.period_end,
        issue_date=invoice.issue_date,
        paid_at=invoice.paid_at,
        payment_method=invoice.payment_method,
        payment_channel=invoice.payment_channel,
        payment_url=invoice.gateway_invoice_url,
        expires_at=invoice.gateway_expiry_date,
        description=invoice.description,
    )


def _pending_change(subscription: Subscription) -> PendingChangeResponse:
    return PendingChangeResponse(
        status=subscription.status,
        plan_id=subscription.plan_id,
        pending_plan_id=subscription.pending_plan_id,
        max_seats=subscription.max_seats,
        pending_max_seats=subscription.pending_max_seats,
        effective_at=subscription.current_period_end,
    )


@router.get("", response_model=SubscriptionResponse)
async def get_subscription(
    auth: AuthContext = Depends(require_auth_context),
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    view = await service.get_subscription(auth.tenant_id)
    subscription = view.subscription
    return SubscriptionResponse(
        id=subscription.id,
        tenant_id=subscription.tenant_id,
        status=subscription.status,
        plan=plan_to_response(view.plan, view.features),
        pending_plan=plan_to_response(view.pending_plan) if view.pending_plan else None,
        max_seats=subscription.max_seats,
        pending_max_seats=subscription.pending_max_seats,
        used_seats=view.used_seats,
        billing_cycle=subscription.billing_cycle,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        trial_ends_at=subscription.trial_ends_at,
        auto_renew=subscription.auto_renew,
        features=view.features,
    )


@router.get("/features", response_model=FeatureAccessResponse)
async def get_feature_access(
    auth: AuthContext = Depends(require_auth_context),
    service: SubscriptionService = Depends(get_subscription_service),
) -> FeatureAccessResponse:
    return FeatureAccessResponse(
        features=await service.get_feature_codes(auth.tenant_id),
        can_add_employee=await service.can_add_employee(auth.tenant_id),
    )


@router.post("/checkout", response_model=InvoiceResponse, status_code=201)
async def checkout(
    payload: CheckoutRequest,
    auth: AuthContext = Depends(require_owner),
    service: SubscriptionService = Depends(get_subscription_service),
) -> InvoiceResponse:
    invoice = await service.checkout(
        auth.tenant_id,
        plan_id=payload.plan_id,
        seats=payload.seat_count,
        cycle=payload.billing_cycle,
        payer_email=payload.payer_email,
    )
    return invoice_to_response(invoice)


@router.post("/upgrade", response_model=InvoiceResponse, status_code=201)
async def upgrade(
    payload: UpgradeRequest,
    auth: AuthContext = Depends(require_owner),
    service: SubscriptionService = Depends(get_subscription_service),
) -> InvoiceResponse:
    invoice = await service.upgrade_plan(
        auth.tenant_id,
        plan_id=payload.plan_id,
        seats=payload.seat_count,
        payer_email=payload.payer_email,
    )
    return invoice_to_response(invoice)


@router.post("/downgrade", response_model=PendingChangeResponse)
async def downgrade(
    payload: DowngradeRequest,
    auth: AuthContext = Depends(require_owner),
    service: SubscriptionService = Depends(get_subscription_service),
) -> PendingChangeResponse:
    return _pending_change(await service.downgrade_plan(auth.tenant_id, plan_id=payload.plan_id))


@router.delete("/downgrade", response_model=PendingChangeResponse)
async def cancel_downgrade(
    auth: AuthContext = Depends(require_owner),
    service: SubscriptionService = Depends(get_subscription_service),
) -> PendingChangeResponse:
    return _pending_change(await service.cancel_downgrade(auth.tenant_id))


@router.post("/cancel", response_model=PendingChangeResponse)
async def cancel_subscription(
    payload: CancelSubscriptionRequest,
    auth: AuthContext = Depends(require_owner),
    service: SubscriptionService = Depends(get_subscription_service),
) -> PendingChangeResponse:
    return _pending_change(await service.cancel_subscription(auth.tenant_id, reason=payload.reason))


@router.post("/seats", response_model=SeatChangeResponse)
async def change_seats(
    payload: ChangeSeatsRequest,
    auth: AuthContext = Depends(require_owner),
    service: SubscriptionService = Depends(get_subscription_service),
) -> SeatChangeResponse:
    change = await service.change_seats(
        auth.tenant_id,
        seats=payload.seat_count,
        payer_email=payload.payer_email,
    )
    subscription = change.subscription
    return SeatChangeResponse(
        deferred=change.deferred,
        max_seats=subscription.max_seats,
        pending_max_seats=subscription.pending_max_seats,
        effective_at=subscription.current_period_end if change.deferred else None,
        invoice=invoice_to_response(change.invoice) if change.invoice else None,
    )


@router.get("/invoices", response_model=list[InvoiceResponse])
async def list_invoices(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(require_auth_context),
    service: SubscriptionService = Depends(get_subscription_service),
) -> list[InvoiceResponse]:
    invoices = await service.list_invoices(auth.tenant_id, limit=limit, offset=offset)
    return [invoice_to_response(invoice) for invoice in invoices]


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: UUID,
    auth: AuthContext = Depends(require_auth_context),
    service: SubscriptionService = Depends(get_subscription_service),
) -> InvoiceResponse:
    return invoice_to_response(await service.get_invoice(auth.tenant_id, invoice_id))


@router.post("/invoices/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_pending_invoice(
    invoice_id: UUID,
    auth: AuthContext = Depends(require_owner),
    service: SubscriptionService = Depends(get_subscription_service),
) -> InvoiceResponse:
    return invoice_to_response(await service.cancel_pending_invoice(auth.tenant_id, invoice_id))
