"""
InvoiceFlow - Status History Model

Append-only ledger of invoice status changes. Rows are never updated;
they disappear only when their invoice is deleted.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoiceflow.database import Base
from invoiceflow.models.base import utc_now
from invoiceflow.models.invoice import InvoiceStatus

if TYPE_CHECKING:
    from invoiceflow.models.invoice import Invoice


class StatusHistory(Base):
    """
    One status change of one invoice.

    previous_status is NULL only for the entry written when the invoice
    is first submitted.
    """

    __tablename__ = "status_histories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    invoice_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    previous_status: Mapped[Optional[InvoiceStatus]] = mapped_column(
        SQLEnum(InvoiceStatus),
        nullable=True,
    )
    new_status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus),
        nullable=False,
    )

    # Set in Python so ordering is stable within one transaction
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        index=True,
    )
    changed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="status_history")

    def __repr__(self) -> str:
        previous = self.previous_status.label if self.previous_status is not None else None
        return (
            f"<StatusHistory(invoice_id={self.invoice_id}, "
            f"{previous} -> {self.new_status.label}, by={self.changed_by})>"
        )
