from hris_billing.agents.billing_reconciler import app as billing_reconciler_app

__all__ = ["billing_reconciler_app"]
