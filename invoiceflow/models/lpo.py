"""
InvoiceFlow - Local Purchase Order Model
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoiceflow.models.base import AuditMixin, BaseModel
from invoiceflow.models.invoice import CurrencyType

if TYPE_CHECKING:
    from invoiceflow.models.invoice import Invoice
    from invoiceflow.models.project import Project
    from invoiceflow.models.vendor import Vendor


class LPOStatus(str, Enum):
    """LPO lifecycle."""
    DRAFT = "draft"
    ISSUED = "issued"
    PARTIALLY_INVOICED = "partially_invoiced"
    FULLY_INVOICED = "fully_invoiced"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class LPO(BaseModel, AuditMixin):
    """Purchase order issued to a vendor under a project."""

    __tablename__ = "lpos"

    lpo_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[LPOStatus] = mapped_column(
        SQLEnum(LPOStatus),
        default=LPOStatus.ISSUED,
        nullable=False,
    )

    # Financial
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=3),
        nullable=False,
        default=Decimal("0"),
    )
    remaining_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=18, scale=3),
        nullable=True,
    )
    currency: Mapped[Optional[CurrencyType]] = mapped_column(SQLEnum(CurrencyType), nullable=True)

    # Timeline
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    completion_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    project_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("projects.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    vendor_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    project: Mapped["Project"] = relationship("Project", back_populates="lpos")
    vendor: Mapped[Optional["Vendor"]] = relationship("Vendor", back_populates="lpos")
    invoices: Mapped[List["Invoice"]] = relationship("Invoice", back_populates="lpo")

    def __repr__(self) -> str:
        return f"<LPO(id={self.id}, number={self.lpo_number}, status={self.status})>"
