from hris_billing.schemas.billing import (
    CancelSubscriptionRequest,
    ChangeSeatsRequest,
    CheckoutRequest,
    DowngradeRequest,
    FeatureAccessResponse,
    FeatureResponse,
    InvoiceResponse,
    PaymentWebhookPayload,
    PaymentWebhookResponse,
    PendingChangeResponse,
    PlanResponse,
    SeatChangeResponse,
    SubscriptionResponse,
    UpgradeRequest,
)

__all__ = [
    "CancelSubscriptionRequest",
    "ChangeSeatsRequest",
    "CheckoutRequest",
    "DowngradeRequest",
    "FeatureAccessResponse",
    "FeatureResponse",
    "InvoiceResponse",
    "PaymentWebhookPayload",
    "PaymentWebhookResponse",
    "PendingChangeResponse",
    "PlanResponse",
    "SeatChangeResponse",
    "SubscriptionResponse",
    "UpgradeRequest",
]
