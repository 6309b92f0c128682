"""
Mshahara Payroll - Tenant Access Service

Ownership gate for tenant-scoped payroll operations.
"""

import uuid

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.tenant import Tenant


class TenantAccessService:
    """Answers whether a caller may act on a tenant's payroll."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_authorized(self, tenant_id: uuid.UUID, caller_id: uuid.UUID) -> bool:
        """True when the caller owns the tenant and the tenant is active."""
        result = await self.db.execute(
            select(Tenant.id).where(
                and_(
                    Tenant.id == tenant_id,
                    Tenant.owner_id == caller_id,
                    Tenant.is_active == True,  # noqa: E712
                )
            )
        )
        return result.scalar_one_or_none() is not None
