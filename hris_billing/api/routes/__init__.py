from hris_billing.api.routes.plans import router as plans_router
from hris_billing.api.routes.subscriptions import router as subscriptions_router
from hris_billing.api.routes.webhooks import router as webhooks_router

__all__ = [
    "plans_router",
    "subscriptions_router",
    "webhooks_router",
]
