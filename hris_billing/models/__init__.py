from hris_billing.models.base import Base, EntityBase, TenantScopedBase
from hris_billing.models.enums import BillingCycle, InvoiceStatus, SubscriptionStatus
from hris_billing.models.invoice import Invoice
from hris_billing.models.plan import Feature, Plan, PlanFeature
from hris_billing.models.subscription import Subscription

__all__ = [
    "Base",
    "EntityBase",
    "TenantScopedBase",
    "BillingCycle",
    "InvoiceStatus",
    "SubscriptionStatus",
    "Feature",
    "Plan",
    "PlanFeature",
    "Subscription",
    "Invoice",
]
