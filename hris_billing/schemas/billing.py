from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from hris_billing.models.enums import BillingCycle, InvoiceStatus, SubscriptionStatus


class FeatureResponse(BaseModel):
    id: UUID
    code: str
    name: str
    description: str | None = None


class PlanResponse(BaseModel):
    id: UUID
    name: str
    price_per_seat: Decimal
    tier_level: int
    max_seats: int | None
    is_active: bool
    features: list[str] = Field(default_factory=list)


class SubscriptionResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    status: SubscriptionStatus
    plan: PlanResponse
    pending_plan: PlanResponse | None = None
    max_seats: int
    pending_max_seats: int | None = None
    used_seats: int
    billing_cycle: BillingCycle
    current_period_start: datetime
    current_period_end: datetime
    trial_ends_at: datetime | None = None
    auto_renew: bool
    features: list[str] = Field(default_factory=list)


class PendingChangeResponse(BaseModel):
    status: SubscriptionStatus
    plan_id: UUID
    pending_plan_id: UUID | None = None
    max_seats: int
    pending_max_seats: int | None = None
    effective_at: datetime


class InvoiceResponse(BaseModel):
    id: UUID
    subscription_id: UUID
    status: InvoiceStatus
    amount: Decimal
    is_prorated: bool
    plan_name: str
    price_per_seat: Decimal
    seat_count: int
    billing_cycle: BillingCycle
    period_start: datetime
    period_end: datetime
    issue_date: datetime
    paid_at: datetime | None = None
    payment_method: str | None = None
    payment_channel: str | None = None
    payment_url: str | None = None
    expires_at: datetime | None = None
    description: str | None = None


class CheckoutRequest(BaseModel):
    plan_id: UUID
    seat_count: int
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    payer_email: str = Field(min_length=3, max_length=255)


class UpgradeRequest(BaseModel):
    plan_id: UUID
    seat_count: int | None = None
    payer_email: str = Field(min_length=3, max_length=255)


class DowngradeRequest(BaseModel):
    plan_id: UUID


class CancelSubscriptionRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class ChangeSeatsRequest(BaseModel):
    seat_count: int
    payer_email: str = Field(min_length=3, max_length=255)


class SeatChangeResponse(BaseModel):
    deferred: bool
    max_seats: int
    pending_max_seats: int | None = None
    effective_at: datetime | None = None
    invoice: InvoiceResponse | None = None


class FeatureAccessResponse(BaseModel):
    features: list[str]
    can_add_employee: bool


class PaymentWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    external_id: str | None = None
    status: str
    amount: Decimal | None = None
    paid_amount: Decimal | None = None
    payer_email: str | None = None
    paid_at: datetime | None = None
    payment_method: str | None = None
    payment_channel: str | None = None


class PaymentWebhookResponse(BaseModel):
    received: bool
    result: str
    invoice_id: UUID | None = None
