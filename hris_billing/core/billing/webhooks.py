from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from pydantic import ValidationError

from hris_billing.core.billing.errors import InvalidWebhookPayloadError, InvalidWebhookSignatureError
from hris_billing.core.billing.ports import Clock, Transaction, WebhookVerifier
from hris_billing.core.billing.pricing import CENT
from hris_billing.core.billing.subscriptions import SubscriptionService
from hris_billing.core.config import settings
from hris_billing.models.base import utcnow
from hris_billing.models.enums import InvoiceStatus
from hris_billing.models.invoice import Invoice
from hris_billing.schemas.billing import PaymentWebhookPayload

logger = logging.getLogger(__name__)

CALLBACK_TOKEN_HEADER = "X-Callback-Token"
SIGNATURE_HEADER = "X-Callback-Signature"

GATEWAY_STATUS_MAP: dict[str, InvoiceStatus | None] = {
    "PAID": InvoiceStatus.PAID,
    "SETTLED": InvoiceStatus.PAID,
    "EXPIRED": InvoiceStatus.EXPIRED,
    "FAILED": InvoiceStatus.FAILED,
    "PENDING": None,
}

WebhookResult = Literal["applied", "duplicate", "ignored"]


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


class CallbackTokenVerifier:
    """Xendit style: a shared token echoed back in ``X-Callback-Token``."""

    def __init__(self, token: str) -> None:
        self.token = token.strip()

    def verify(self, body: bytes, headers: Mapping[str, str]) -> bool:
        provided = (_header(headers, CALLBACK_TOKEN_HEADER) or "").strip()
        if not self.token or not provided:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), self.token.encode("utf-8"))


class HmacSignatureVerifier:
    """Hex HMAC-SHA256 of the raw body in ``X-Callback-Signature``."""

    def __init__(self, secret: str) -> None:
        self.secret = secret

    def sign(self, body: bytes) -> str:
        return hmac.new(self.secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    def verify(self, body: bytes, headers: Mapping[str, str]) -> bool:
        provided = (_header(headers, SIGNATURE_HEADER) or "").strip().lower()
        if not self.secret or not provided:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), self.sign(body).encode("utf-8"))


def build_webhook_verifier(scheme: str | None = None, secret: str | None = None) -> WebhookVerifier:
    scheme = scheme or settings.webhook_signature_scheme
    secret = settings.webhook_verification_token if secret is None else secret
    if scheme == "hmac_sha256":
        return HmacSignatureVerifier(secret)
    if scheme == "callback_token":
        return CallbackTokenVerifier(secret)
    raise ValueError(f"Unsupported webhook signature scheme: {scheme}")


def parse_payload(body: bytes) -> PaymentWebhookPayload:
    try:
        return PaymentWebhookPayload.model_validate_json(body)
    except ValidationError as exc:
        raise InvalidWebhookPayloadError() from exc


@dataclass(slots=True)
class WebhookOutcome:
    result: WebhookResult
    invoice_id: UUID | None = None
    status: InvoiceStatus | None = None


class WebhookReconciler:
    def __init__(
        self,
        *,
        service: SubscriptionService,
        verifier: WebhookVerifier,
        transaction: Transaction,
        timeout_seconds: float | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.service = service
        self.verifier = verifier
        self.transaction = transaction
        self.timeout_seconds = timeout_seconds or settings.webhook_timeout_seconds
        self.clock = clock

    async def handle(self, body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
        if not self.verifier.verify(body, headers):
            logger.warning("Rejected payment webhook with invalid signature")
            raise InvalidWebhookSignatureError()

        payload = parse_payload(body)
        return await asyncio.wait_for(self._reconcile(payload), timeout=self.timeout_seconds)

    async def _reconcile(self, payload: PaymentWebhookPayload) -> WebhookOutcome:
        lifecycle = self.service.lifecycle
        async with self.transaction():
            invoice = await lifecycle.invoices.get_by_gateway_id(payload.id)
            if invoice is None:
                logger.info("Ignoring webhook for unknown gateway invoice %s", payload.id)
                return WebhookOutcome(result="ignored")

            current = InvoiceStatus(invoice.status)
            gateway_status = payload.status.strip().upper()
            if current.is_terminal:
                if GATEWAY_STATUS_MAP.get(gateway_status) is InvoiceStatus.PAID and current is not InvoiceStatus.PAID:
                    logger.warning(
                        "Payment reported for invoice %s already %s locally tenant=%s gateway_id=%s",
                        invoice.id,
                        current.value,
                        invoice.tenant_id,
                        payload.id,
                    )
                else:
                    logger.debug("Invoice %s already %s, webhook replay ignored", invoice.id, current.value)
                return WebhookOutcome(result="duplicate", invoice_id=invoice.id, status=current)

            if gateway_status not in GATEWAY_STATUS_MAP:
                logger.warning("Unknown gateway status %s for invoice %s", gateway_status, invoice.id)
                return WebhookOutcome(result="ignored", invoice_id=invoice.id, status=current)
            target = GATEWAY_STATUS_MAP[gateway_status]
            if target is None:
                return WebhookOutcome(result="ignored", invoice_id=invoice.id, status=current)

            paid_at = None
            if target is InvoiceStatus.PAID:
                paid_at = payload.paid_at or self.clock()

            applied = await lifecycle.update_payment(
                invoice.id,
                target,
                paid_at=paid_at,
                payment_method=payload.payment_method,
                payment_channel=payload.payment_channel,
                notes=self._amount_mismatch_note(invoice, payload),
            )
            if not applied:
                logger.debug("Invoice %s settled by a concurrent delivery", invoice.id)
                return WebhookOutcome(result="duplicate", invoice_id=invoice.id)

            if target is InvoiceStatus.PAID:
                await self.service.apply_payment(invoice)

        logger.info(
            "Webhook applied tenant=%s invoice=%s status=%s",
            invoice.tenant_id,
            invoice.id,
            target.value,
        )
        return WebhookOutcome(result="applied", invoice_id=invoice.id, status=target)

    def _amount_mismatch_note(self, invoice: Invoice, payload: PaymentWebhookPayload) -> str | None:
        reported = payload.paid_amount if payload.paid_amount is not None else payload.amount
        if reported is None:
            return None
        if reported.quantize(CENT) == invoice.amount:
            return None
        logger.warning(
            "Gateway amount mismatch invoice=%s expected=%s reported=%s",
            invoice.id,
            invoice.amount,
            reported,
        )
        return f"Gateway reported amount {reported} differs from invoice amount {invoice.amount}"
