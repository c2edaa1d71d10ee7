"""
InvoiceFlow - Vendor Model

Suppliers that issue invoices and fulfil LPOs.
"""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoiceflow.models.base import AuditMixin, BaseModel

if TYPE_CHECKING:
    from invoiceflow.models.invoice import Invoice
    from invoiceflow.models.lpo import LPO


class Vendor(BaseModel, AuditMixin):
    """
    Vendor master record.

    Vendors are deactivated rather than deleted once invoices reference them.
    """

    __tablename__ = "vendors"

    # Basic Info
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    vendor_code: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        unique=True,
    )
    contact_person: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Contact
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Address
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Financial
    tax_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Tax registration number printed on invoices",
    )
    bank_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    iban: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    swift_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Classification
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    invoices: Mapped[List["Invoice"]] = relationship("Invoice", back_populates="vendor")
    lpos: Mapped[List["LPO"]] = relationship("LPO", back_populates="vendor")

    def __repr__(self) -> str:
        return f"<Vendor(id={self.id}, name={self.name})>"
