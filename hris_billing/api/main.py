from fastapi import FastAPI

from hris_billing.api.errors import register_error_handlers
from hris_billing.api.routes.plans import router as plans_router
from hris_billing.api.routes.subscriptions import router as subscriptions_router
from hris_billing.api.routes.webhooks import router as webhooks_router

app = FastAPI(title="HRIS Billing")
register_error_handlers(app)
app.include_router(plans_router, prefix="/api/v1")
app.include_router(subscriptions_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/v1")


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
