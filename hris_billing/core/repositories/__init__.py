from hris_billing.core.repositories.base import Repository, TenantRepository
from hris_billing.core.repositories.employees import SqlEmployeeCounter
from hris_billing.core.repositories.invoices import InvoiceRepository
from hris_billing.core.repositories.plans import PlanRepository
from hris_billing.core.repositories.subscriptions import SubscriptionRepository

__all__ = [
    "Repository",
    "TenantRepository",
    "InvoiceRepository",
    "PlanRepository",
    "SqlEmployeeCounter",
    "SubscriptionRepository",
]
