"""
InvoiceFlow - Invoice Comment Model
"""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoiceflow.models.base import AuditMixin, BaseModel

if TYPE_CHECKING:
    from invoiceflow.models.invoice import Invoice


class InvoiceComment(BaseModel, AuditMixin):
    """Free-text discussion on an invoice, independent of its status."""

    __tablename__ = "invoice_comments"

    invoice_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="comments")
