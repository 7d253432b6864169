from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from hris_billing.core.billing.catalog import PlanCatalog
from hris_billing.core.dependencies import get_plan_catalog
from hris_billing.models.plan import Plan
from hris_billing.schemas.billing import FeatureResponse, PlanResponse

router = APIRouter(prefix="/plans", tags=["plans"])


def plan_to_response(plan: Plan, features: list[str] | None = None) -> PlanResponse:
    return PlanResponse(
        id=plan.id,
        name=plan.name,
        price_per_seat=plan.price_per_seat,
        tier_level=plan.tier_level,
        max_seats=plan.max_seats,
        is_active=plan.is_active,
        features=features or [],
    )


@router.get("", response_model=list[PlanResponse])
async def list_plans(catalog: PlanCatalog = Depends(get_plan_catalog)) -> list[PlanResponse]:
    return [plan_to_response(entry.plan, entry.features) for entry in await catalog.list_plans()]


@router.get("/features", response_model=list[FeatureResponse])
async def list_features(catalog: PlanCatalog = Depends(get_plan_catalog)) -> list[FeatureResponse]:
    return [
        FeatureResponse(
            id=feature.id,
            code=feature.code,
            name=feature.name,
            description=feature.description,
        )
        for feature in await catalog.list_features()
    ]


@router.get("/{plan_id}", response_model=PlanResponse)
async def get_plan(plan_id: UUID, catalog: PlanCatalog = Depends(get_plan_catalog)) -> PlanResponse:
    entry = await catalog.get_plan_with_features(plan_id)
    return plan_to_response(entry.plan, entry.features)
