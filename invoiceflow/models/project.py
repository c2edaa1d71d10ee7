"""
InvoiceFlow - Project Model
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoiceflow.models.base import AuditMixin, BaseModel
from invoiceflow.models.invoice import CurrencyType

if TYPE_CHECKING:
    from invoiceflow.models.department import DepartmentHierarchy
    from invoiceflow.models.invoice import Invoice
    from invoiceflow.models.lpo import LPO
    from invoiceflow.models.user import AppUser


class Project(BaseModel, AuditMixin):
    """
    Project that invoices and LPOs are charged against.

    project_number has the form ABBR/MONTH/YEAR/SEQ, e.g. ENG/3/2025/7.
    """

    __tablename__ = "projects"

    project_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    section_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("department_hierarchies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    project_manager_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("app_users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Financial
    budget: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=18, scale=3), nullable=True)
    cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=18, scale=3), nullable=True)
    currency: Mapped[Optional[CurrencyType]] = mapped_column(SQLEnum(CurrencyType), nullable=True)

    # Status
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completion_percentage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Timeline
    expected_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expected_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    section: Mapped["DepartmentHierarchy"] = relationship("DepartmentHierarchy")
    project_manager: Mapped[Optional["AppUser"]] = relationship("AppUser")
    lpos: Mapped[List["LPO"]] = relationship("LPO", back_populates="project")
    invoices: Mapped[List["Invoice"]] = relationship("Invoice", back_populates="project")

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, number={self.project_number})>"
