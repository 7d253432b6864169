from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from decimal import Decimal

import requests

from hris_billing.core.billing.errors import PaymentGatewayError
from hris_billing.core.billing.ports import GatewayInvoice
from hris_billing.core.config import settings

logger = logging.getLogger(__name__)


def _parse_expiry(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class XenditGatewayClient:
    def __init__(self, secret_key: str | None = None, base_url: str | None = None) -> None:
        self.secret_key = settings.gateway_secret_key if secret_key is None else secret_key
        self.base_url = (base_url or settings.gateway_api_base_url).rstrip("/")
        self.timeout = settings.gateway_timeout_seconds

    def _post(self, path: str, payload: dict | None = None) -> dict:
        if not self.secret_key:
            raise PaymentGatewayError("Payment gateway secret key is not configured")

        try:
            response = requests.post(
                f"{self.base_url}{path}",
                json=payload,
                auth=(self.secret_key, ""),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            logger.exception("Payment gateway call failed path=%s", path)
            raise PaymentGatewayError() from exc
        except ValueError as exc:
            logger.exception("Payment gateway returned a non-JSON body path=%s", path)
            raise PaymentGatewayError() from exc

    def create_invoice_sync(
        self,
        *,
        external_id: str,
        amount: Decimal,
        payer_email: str,
        description: str,
        expiry_seconds: int,
    ) -> GatewayInvoice:
        payload: dict[str, object] = {
            "external_id": external_id,
            "amount": float(amount),
            "payer_email": payer_email,
            "description": description,
            "currency": settings.gateway_currency,
            "invoice_duration": expiry_seconds,
        }
        if settings.gateway_success_redirect_url:
            payload["success_redirect_url"] = settings.gateway_success_redirect_url
        if settings.gateway_failure_redirect_url:
            payload["failure_redirect_url"] = settings.gateway_failure_redirect_url

        body = self._post("/v2/invoices", payload)
        gateway_id = body.get("id")
        if not gateway_id:
            raise PaymentGatewayError("Payment gateway response is missing the invoice id")
        return GatewayInvoice(
            gateway_id=gateway_id,
            url=body.get("invoice_url") or "",
            expires_at=_parse_expiry(body.get("expiry_date")),
            status=body.get("status") or "PENDING",
        )

    def expire_invoice_sync(self, gateway_invoice_id: str) -> None:
        self._post(f"/invoices/{gateway_invoice_id}/expire!")

    async def create_invoice(
        self,
        *,
        external_id: str,
        amount: Decimal,
        payer_email: str,
        description: str,
        expiry_seconds: int,
    ) -> GatewayInvoice:
        return await asyncio.to_thread(
            lambda: self.create_invoice_sync(
                external_id=external_id,
                amount=amount,
                payer_email=payer_email,
                description=description,
                expiry_seconds=expiry_seconds,
            )
        )

    async def expire_invoice(self, gateway_invoice_id: str) -> None:
        await asyncio.to_thread(self.expire_invoice_sync, gateway_invoice_id)


def get_gateway_client() -> XenditGatewayClient:
    return XenditGatewayClient()
