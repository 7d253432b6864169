from hris_billing.core.billing.catalog import PlanCatalog, PlanWithFeatures
from hris_billing.core.billing.invoices import InvoiceLifecycleManager
from hris_billing.core.billing.ports import GatewayInvoice
from hris_billing.core.billing.reconciler import CronReconciler, DeferredChangeResult, ExpirySweepResult
from hris_billing.core.billing.subscriptions import SeatChange, SubscriptionService, SubscriptionView
from hris_billing.core.billing.webhooks import (
    CallbackTokenVerifier,
    HmacSignatureVerifier,
    WebhookOutcome,
    WebhookReconciler,
    build_webhook_verifier,
)

__all__ = [
    "CallbackTokenVerifier",
    "CronReconciler",
    "DeferredChangeResult",
    "ExpirySweepResult",
    "GatewayInvoice",
    "HmacSignatureVerifier",
    "InvoiceLifecycleManager",
    "PlanCatalog",
    "PlanWithFeatures",
    "SeatChange",
    "SubscriptionService",
    "SubscriptionView",
    "WebhookOutcome",
    "WebhookReconciler",
    "build_webhook_verifier",
]
