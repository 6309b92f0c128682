"""
Mshahara Payroll - Audit Log Model

Append-only record of payroll lifecycle actions.
"""

import uuid
import enum
from typing import Any, Dict, Optional

from sqlalchemy import Enum, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, GUID


class AuditAction(str, enum.Enum):
    """Audit action types."""
    CALCULATE = "calculate"
    RECALCULATE = "recalculate"
    COMPLETE = "complete"
    CANCEL = "cancel"


class AuditLog(BaseModel):
    """
    Immutable audit log for payroll actions.

    This table should have no UPDATE or DELETE permissions.
    """

    __tablename__ = "audit_logs"

    tenant_id: Mapped[uuid.UUID] = mapped_column(GUID, nullable=False, index=True)
    target_entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_entity_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, name="audit_action"),
        nullable=False,
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    new_values: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(action={self.action}, target={self.target_entity_type}:{self.target_entity_id})>"
