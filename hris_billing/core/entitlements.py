from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Depends

from hris_billing.core.auth import AuthContext, require_auth_context
from hris_billing.core.billing.errors import (
    FeatureNotAvailableError,
    SeatLimitReachedError,
    SubscriptionInactiveError,
)
from hris_billing.core.billing.subscriptions import SubscriptionService
from hris_billing.core.dependencies import get_subscription_service


async def require_active_subscription(
    context: AuthContext = Depends(require_auth_context),
    service: SubscriptionService = Depends(get_subscription_service),
) -> AuthContext:
    if not await service.has_access(context.tenant_id):
        raise SubscriptionInactiveError()
    return context


def require_feature(feature_code: str) -> Callable[..., Awaitable[AuthContext]]:
    """Route dependency that admits tenants whose current plan includes ``feature_code``."""

    async def _require_feature(
        context: AuthContext = Depends(require_auth_context),
        service: SubscriptionService = Depends(get_subscription_service),
    ) -> AuthContext:
        if not await service.has_feature(context.tenant_id, feature_code):
            raise FeatureNotAvailableError(f"Feature '{feature_code}' is not available on the current plan")
        return context

    return _require_feature


async def require_can_add_employee(
    context: AuthContext = Depends(require_active_subscription),
    service: SubscriptionService = Depends(get_subscription_service),
) -> AuthContext:
    if not await service.can_add_employee(context.tenant_id):
        raise SeatLimitReachedError()
    return context
