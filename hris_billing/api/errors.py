from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from hris_billing.core.billing.errors import (
    BillingConflictError,
    BillingError,
    BillingForbiddenError,
    BillingIntegrationError,
    BillingNotFoundError,
    BillingSecurityError,
    BillingValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_CATEGORY: tuple[tuple[type[BillingError], int], ...] = (
    (BillingValidationError, status.HTTP_400_BAD_REQUEST),
    (BillingConflictError, status.HTTP_409_CONFLICT),
    (BillingNotFoundError, status.HTTP_404_NOT_FOUND),
    (BillingIntegrationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (BillingSecurityError, status.HTTP_401_UNAUTHORIZED),
    (BillingForbiddenError, status.HTTP_403_FORBIDDEN),
)


def status_for(exc: BillingError) -> int:
    for category, status_code in STATUS_BY_CATEGORY:
        if isinstance(exc, category):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.warning("Billing request failed path=%s code=%s", request.url.path, exc.code)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


async def timeout_error_handler(request: Request, exc: asyncio.TimeoutError) -> JSONResponse:
    logger.warning("Billing request timed out path=%s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Request timed out, please try again", "code": "timeout"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BillingError, billing_error_handler)
    app.add_exception_handler(asyncio.TimeoutError, timeout_error_handler)
