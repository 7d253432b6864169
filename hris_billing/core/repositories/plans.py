from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from hris_billing.core.repositories.base import Repository
from hris_billing.models.plan import Feature, Plan, PlanFeature


class PlanRepository(Repository[Plan]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Plan)

    async def get_by_name(self, name: str) -> Plan | None:
        result = await self.session.execute(select(Plan).where(Plan.name == name))
        return result.scalar_one_or_none()

    async def list_active(self) -> list[Plan]:
        result = await self.session.execute(
            select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.tier_level)
        )
        return list(result.scalars().all())

    async def list_features(self) -> list[Feature]:
        result = await self.session.execute(select(Feature).order_by(Feature.code))
        return list(result.scalars().all())

    def _active_feature_codes(self) -> Select[tuple[UUID, str]]:
        return (
            select(PlanFeature.plan_id, Feature.code)
            .join(Feature, Feature.id == PlanFeature.feature_id)
            .where(PlanFeature.is_active.is_(True))
            .order_by(Feature.code)
        )

    async def feature_codes(self, plan_id: UUID) -> list[str]:
        result = await self.session.execute(
            self._active_feature_codes().where(PlanFeature.plan_id == plan_id)
        )
        return [row.code for row in result.all()]

    async def feature_codes_by_plan(self, plan_ids: Sequence[UUID]) -> dict[UUID, list[str]]:
        if not plan_ids:
            return {}
        result = await self.session.execute(
            self._active_feature_codes().where(PlanFeature.plan_id.in_(list(plan_ids)))
        )
        codes: dict[UUID, list[str]] = {}
        for row in result.all():
            codes.setdefault(row.plan_id, []).append(row.code)
        return codes
