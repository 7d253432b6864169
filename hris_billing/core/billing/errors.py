from __future__ import annotations


class BillingError(Exception):
    """Base for every failure the billing engine reports to its callers."""

    code = "billing_error"
    message = "Billing operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message


class BillingValidationError(BillingError):
    """Rejected input; nothing was changed."""

    code = "validation_error"


class BillingConflictError(BillingError):
    """The request collides with the current state of the subscription."""

    code = "conflict"


class BillingNotFoundError(BillingError):
    code = "not_found"


class BillingIntegrationError(BillingError):
    """An external collaborator failed; safe to retry."""

    code = "integration_error"
    message = "Payment provider is unavailable, please try again"


class BillingSecurityError(BillingError):
    code = "security_error"


class BillingForbiddenError(BillingError):
    """The tenant's subscription does not entitle it to the request."""

    code = "forbidden"


class SamePlanError(BillingValidationError):
    code = "same_plan"
    message = "Already subscribed to this plan"


class NotAnUpgradeError(BillingValidationError):
    code = "not_an_upgrade"
    message = "Target plan is not a higher tier than the current plan"


class NotADowngradeError(BillingValidationError):
    code = "not_a_downgrade"
    message = "Target plan is not a lower tier than the current plan"


class InvalidSeatCountError(BillingValidationError):
    code = "invalid_seat_count"
    message = "Seat count must be at least 1"


class SameAsCurrentSeatsError(BillingValidationError):
    code = "same_as_current_seats"
    message = "Requested seat count equals the current seat limit"


class InsufficientSeatsError(BillingValidationError):
    code = "insufficient_seats"
    message = "Seat count is below the number of active employees"


class SeatsBelowActiveError(InsufficientSeatsError):
    code = "seats_below_active"
    message = "Cannot reduce seats below the number of active employees"


class ExceedsPlanMaxSeatsError(BillingValidationError):
    code = "exceeds_plan_max_seats"
    message = "Seat count exceeds the plan maximum"


class PlanNotPurchasableError(BillingValidationError):
    code = "plan_not_purchasable"
    message = "This plan cannot be purchased"


class PlanNotActiveError(BillingValidationError):
    code = "plan_not_active"
    message = "Plan is not available"


class CannotUpgradeDuringGracePeriodError(BillingConflictError):
    code = "grace_period"
    message = "Settle the outstanding balance before changing seats"


class PendingInvoiceExistsError(BillingConflictError):
    code = "pending_invoice_exists"
    message = "A pending invoice already exists for this subscription"


class InvalidSubscriptionStateError(BillingConflictError):
    code = "invalid_subscription_state"
    message = "Operation is not allowed in the current subscription status"


class ConcurrentUpdateError(BillingConflictError):
    code = "concurrent_update"
    message = "Subscription was modified by another request, please retry"


class SubscriptionAlreadyExistsError(BillingConflictError):
    code = "subscription_already_exists"
    message = "Tenant already has a subscription"


class InvoiceNotPendingError(BillingConflictError):
    code = "invoice_not_pending"
    message = "Invoice is no longer pending"


class SubscriptionNotFoundError(BillingNotFoundError):
    code = "subscription_not_found"
    message = "Subscription not found"


class PlanNotFoundError(BillingNotFoundError):
    code = "plan_not_found"
    message = "Plan not found"


class InvoiceNotFoundError(BillingNotFoundError):
    code = "invoice_not_found"
    message = "Invoice not found"


class PaymentGatewayError(BillingIntegrationError):
    code = "payment_gateway_unavailable"


class InvalidWebhookSignatureError(BillingSecurityError):
    code = "invalid_webhook_signature"
    message = "Invalid webhook signature"


class InvalidWebhookPayloadError(BillingValidationError):
    code = "invalid_webhook_payload"
    message = "Invalid webhook payload"


class SubscriptionInactiveError(BillingForbiddenError):
    code = "subscription_inactive"
    message = "Subscription is not active, please renew to continue"


class FeatureNotAvailableError(BillingForbiddenError):
    code = "feature_not_available"
    message = "Feature is not available on the current plan"


class SeatLimitReachedError(BillingForbiddenError):
    code = "seat_limit_reached"
    message = "All paid seats are in use, add seats to invite more employees"
