"""
Mshahara Payroll - Tenant Model

A tenant is the employing organization whose payroll is computed.
"""

import uuid
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, GUID

if TYPE_CHECKING:
    from app.models.employee import Employee, Department


class Tenant(BaseModel):
    """Employing organization. The owner is the only caller allowed to run its payroll."""

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    kra_pin: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="Employer tax PIN used on statutory filings",
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        nullable=False,
        index=True,
        comment="User who owns this tenant",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    employees: Mapped[List["Employee"]] = relationship(
        "Employee",
        back_populates="tenant",
    )
    departments: Mapped[List["Department"]] = relationship(
        "Department",
        back_populates="tenant",
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name={self.name})>"
