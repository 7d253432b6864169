from __future__ import annotations

from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Executable, Select

from hris_billing.models.base import EntityBase, TenantScopedBase

ModelT = TypeVar("ModelT", bound=EntityBase)
TenantModelT = TypeVar("TenantModelT", bound=TenantScopedBase)


def violated_constraint(exc: IntegrityError) -> str | None:
    """Name of the constraint behind an IntegrityError, when the driver exposes it."""
    orig = getattr(exc, "orig", None)
    name = getattr(orig, "constraint_name", None)
    if name:
        return name
    cause = getattr(orig, "__cause__", None)
    return getattr(cause, "constraint_name", None)


class Repository(Generic[ModelT]):
    def __init__(self, session: AsyncSession, model: type[ModelT]) -> None:
        self.session = session
        self.model = model

    async def create(self, **values: object) -> ModelT:
        instance = self.model(**values)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def get(self, entity_id: UUID) -> ModelT | None:
        result = await self.session.execute(select(self.model).where(self.model.id == entity_id))
        return result.scalar_one_or_none()

    async def _rowcount(self, stmt: Executable) -> int:
        result = await self.session.execute(stmt)
        return result.rowcount or 0


class TenantRepository(Repository[TenantModelT]):
    def _scoped_select(self, tenant_id: UUID) -> Select[tuple[TenantModelT]]:
        return select(self.model).where(self.model.tenant_id == tenant_id)

    async def get_for_tenant(self, tenant_id: UUID, entity_id: UUID) -> TenantModelT | None:
        result = await self.session.execute(
            self._scoped_select(tenant_id).where(self.model.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def list_for_tenant(self, tenant_id: UUID, *, limit: int = 100, offset: int = 0) -> list[TenantModelT]:
        result = await self.session.execute(
            self._scoped_select(tenant_id)
            .order_by(self.model.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())
