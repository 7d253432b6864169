from __future__ import annotations

from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

ACTIVE_EMPLOYEE_COUNT_SQL = text(
    "SELECT count(*) FROM employees "
    "WHERE tenant_id = :tenant_id AND status = 'active' AND deleted_at IS NULL"
)


class SqlEmployeeCounter:
    """Reads the employees table owned by the HR module; never writes to it."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def count_active_by_tenant(self, tenant_id: UUID) -> int:
        count = await self.session.scalar(ACTIVE_EMPLOYEE_COUNT_SQL, {"tenant_id": tenant_id})
        return int(count or 0)
