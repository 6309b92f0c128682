"""
Mshahara Payroll - Audit Trail Service

Append-only audit logging for payroll lifecycle actions.
"""

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditAction, AuditLog


class AuditService:
    """Service for writing and reading the payroll audit trail."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_action(
        self,
        tenant_id: uuid.UUID,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        user_id: Optional[uuid.UUID] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """
        Log an audit action in the caller's transaction.

        Args:
            tenant_id: Tenant the action belongs to
            entity_type: Type of entity (e.g., 'payroll_run')
            entity_id: ID of the affected entity
            action: Type of action performed
            user_id: ID of the caller who performed the action
            new_values: Snapshot of the values after the action

        Returns:
            Created AuditLog record
        """
        audit_log = AuditLog(
            tenant_id=tenant_id,
            target_entity_type=entity_type,
            target_entity_id=str(entity_id),
            action=action,
            user_id=user_id,
            new_values=new_values,
        )

        self.db.add(audit_log)
        await self.db.flush()

        return audit_log

    async def get_entity_history(
        self,
        tenant_id: uuid.UUID,
        entity_type: str,
        entity_id: str,
    ) -> List[AuditLog]:
        """Audit entries for one entity, oldest first."""
        result = await self.db.execute(
            select(AuditLog)
            .where(
                and_(
                    AuditLog.tenant_id == tenant_id,
                    AuditLog.target_entity_type == entity_type,
                    AuditLog.target_entity_id == str(entity_id),
                )
            )
            .order_by(AuditLog.created_at)
        )
        return list(result.scalars().all())
