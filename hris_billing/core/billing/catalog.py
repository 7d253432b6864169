from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from hris_billing.core.billing.errors import PlanNotActiveError, PlanNotFoundError
from hris_billing.core.billing.ports import PlanReader
from hris_billing.core.billing.pricing import TRIAL_PLAN_NAME
from hris_billing.models.plan import Feature, Plan


@dataclass(slots=True)
class PlanWithFeatures:
    plan: Plan
    features: list[str] = field(default_factory=list)


class PlanCatalog:
    def __init__(self, plans: PlanReader) -> None:
        self.plans = plans

    async def list_plans(self) -> list[PlanWithFeatures]:
        plans = sorted(await self.plans.list_active(), key=lambda plan: plan.tier_level)
        features = await self.plans.feature_codes_by_plan([plan.id for plan in plans])
        return [PlanWithFeatures(plan=plan, features=features.get(plan.id, [])) for plan in plans]

    async def list_features(self) -> list[Feature]:
        return await self.plans.list_features()

    async def get_plan(self, plan_id: UUID) -> Plan:
        plan = await self.plans.get(plan_id)
        if plan is None:
            raise PlanNotFoundError()
        return plan

    async def get_plan_with_features(self, plan_id: UUID) -> PlanWithFeatures:
        plan = await self.get_plan(plan_id)
        return PlanWithFeatures(plan=plan, features=await self.plans.feature_codes(plan.id))

    async def get_purchasable_plan(self, plan_id: UUID) -> Plan:
        plan = await self.get_plan(plan_id)
        if not plan.is_active:
            raise PlanNotActiveError()
        return plan

    async def get_trial_plan(self) -> Plan:
        plan = await self.plans.get_by_name(TRIAL_PLAN_NAME)
        if plan is None:
            raise PlanNotFoundError("Trial plan is not configured")
        return plan

    async def feature_codes(self, plan_id: UUID) -> list[str]:
        return await self.plans.feature_codes(plan_id)
