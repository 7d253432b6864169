from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from hris_billing.core.billing.webhooks import WebhookReconciler
from hris_billing.core.dependencies import get_webhook_reconciler
from hris_billing.schemas.billing import PaymentWebhookResponse

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/payments", response_model=PaymentWebhookResponse)
async def payment_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
) -> PaymentWebhookResponse:
    raw_body = await request.body()
    outcome = await reconciler.handle(raw_body, request.headers)
    return PaymentWebhookResponse(received=True, result=outcome.result, invoice_id=outcome.invoice_id)
