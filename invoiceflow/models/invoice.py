"""
InvoiceFlow - Invoice Model

Vendor invoices moving through the approval workflow.

Workflow (happy path):
    Submitted -> UnderReview -> Approved -> InProgress -> PMOReview -> Completed

Side exits: Rejected, Cancelled (terminal) and OnHold (resumes to the
state it was held from).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import (
    JSON, Boolean, Date, DateTime, Float, ForeignKey, Integer, Numeric, String, Text,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoiceflow.models.base import AuditMixin, BaseModel

if TYPE_CHECKING:
    from invoiceflow.models.comment import InvoiceComment
    from invoiceflow.models.lpo import LPO
    from invoiceflow.models.project import Project
    from invoiceflow.models.status_history import StatusHistory
    from invoiceflow.models.vendor import Vendor


class InvoiceStatus(int, Enum):
    """Invoice workflow states."""
    SUBMITTED = 0
    UNDER_REVIEW = 1
    APPROVED = 2
    IN_PROGRESS = 3
    PMO_REVIEW = 4
    COMPLETED = 5
    REJECTED = 6
    CANCELLED = 7
    ON_HOLD = 8

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value: Any) -> "InvoiceStatus":
        """Accept a member, its integer value, its name or its display label."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        cleaned = str(value).strip().replace(" ", "").replace("_", "").lower()
        for status in cls:
            if cleaned in (status.name.replace("_", "").lower(), status.label.lower()):
                return status
        if cleaned.isdigit():
            return cls(int(cleaned))
        raise ValueError(f"Unknown invoice status: {value!r}")


_STATUS_LABELS = {
    InvoiceStatus.SUBMITTED: "Submitted",
    InvoiceStatus.UNDER_REVIEW: "UnderReview",
    InvoiceStatus.APPROVED: "Approved",
    InvoiceStatus.IN_PROGRESS: "InProgress",
    InvoiceStatus.PMO_REVIEW: "PMOReview",
    InvoiceStatus.COMPLETED: "Completed",
    InvoiceStatus.REJECTED: "Rejected",
    InvoiceStatus.CANCELLED: "Cancelled",
    InvoiceStatus.ON_HOLD: "OnHold",
}

# States an invoice can be held from, and resumed to
ACTIVE_STATUSES = frozenset({
    InvoiceStatus.SUBMITTED,
    InvoiceStatus.UNDER_REVIEW,
    InvoiceStatus.APPROVED,
    InvoiceStatus.IN_PROGRESS,
    InvoiceStatus.PMO_REVIEW,
})

TERMINAL_STATUSES = frozenset({
    InvoiceStatus.COMPLETED,
    InvoiceStatus.REJECTED,
    InvoiceStatus.CANCELLED,
})


class CurrencyType(str, Enum):
    """Supported invoice currencies."""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    AED = "AED"
    QAR = "QAR"
    KWD = "KWD"
    BHD = "BHD"
    OMR = "OMR"
    SAR = "SAR"

    @property
    def decimals(self) -> int:
        """Minor units used when rounding amounts."""
        if self in (CurrencyType.KWD, CurrencyType.BHD, CurrencyType.OMR):
            return 3
        if self is CurrencyType.JPY:
            return 0
        return 2

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["CurrencyType"]:
        """
        Resolve a currency from an ISO code or a printed symbol.

        Returns None for blank or unrecognised input; callers decide
        whether a missing currency needs review.
        """
        if value is None:
            return None
        cleaned = str(value).strip()
        if not cleaned:
            return None

        # Whole-value match only: "CA$" or "USDT" are other currencies, not USD
        upper = cleaned.upper()
        if upper in cls.__members__:
            return cls[upper]
        return _CURRENCY_SYMBOLS.get(upper)


_CURRENCY_SYMBOLS = {
    "د.إ": CurrencyType.AED,
    "ر.ق": CurrencyType.QAR,
    "د.ك": CurrencyType.KWD,
    "د.ب": CurrencyType.BHD,
    "ر.ع": CurrencyType.OMR,
    "ر.س": CurrencyType.SAR,
    "US$": CurrencyType.USD,
    "$": CurrencyType.USD,
    "€": CurrencyType.EUR,
    "£": CurrencyType.GBP,
    "¥": CurrencyType.JPY,
}


class Invoice(BaseModel, AuditMixin):
    """
    Vendor invoice.

    `version` is an optimistic concurrency counter: SQLAlchemy adds it to
    the WHERE clause of every UPDATE, so a writer holding a stale copy
    gets StaleDataError instead of overwriting a newer status.
    """

    __tablename__ = "invoices"

    # Invoice identification
    invoice_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="PENDING when OCR could not extract it",
    )
    invoice_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Amounts
    invoice_value: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=18, scale=3),
        nullable=True,
    )
    sub_total: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=18, scale=3),
        nullable=True,
    )
    tax_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=18, scale=3),
        nullable=True,
    )
    currency: Mapped[Optional[CurrencyType]] = mapped_column(
        SQLEnum(CurrencyType),
        nullable=True,
    )

    # Workflow
    status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus),
        default=InvoiceStatus.SUBMITTED,
        nullable=False,
        index=True,
    )

    # Vendor details as printed on the document
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    vendor_tax_id: Mapped[str] = mapped_column(String(100), nullable=False)
    vendor_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Descriptive fields
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    purchase_order_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    reference_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    remark: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Links (invoices keep their parents alive)
    vendor_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    project_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("projects.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    lpo_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("lpos.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    # Source document
    file_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # OCR output
    ocr_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    field_confidence_scores: Mapped[Optional[Dict[str, float]]] = mapped_column(
        JSON,
        nullable=True,
    )
    ocr_raw_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requires_manual_review: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # Duplicate detection
    is_potential_duplicate: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    duplicate_of_invoice_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Processing / payment
    processed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    paid_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=18, scale=3),
        nullable=True,
    )
    payment_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    vendor: Mapped[Optional["Vendor"]] = relationship(
        "Vendor",
        back_populates="invoices",
    )
    project: Mapped[Optional["Project"]] = relationship(
        "Project",
        back_populates="invoices",
    )
    lpo: Mapped[Optional["LPO"]] = relationship(
        "LPO",
        back_populates="invoices",
    )
    line_items: Mapped[List["InvoiceLineItem"]] = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvoiceLineItem.sort_order",
    )
    status_history: Mapped[List["StatusHistory"]] = relationship(
        "StatusHistory",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    comments: Mapped[List["InvoiceComment"]] = relationship(
        "InvoiceComment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_pending_extraction(self) -> bool:
        return "PENDING" in (self.invoice_number, self.vendor_name, self.vendor_tax_id)

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number={self.invoice_number}, status={self.status.label})>"


class InvoiceLineItem(BaseModel):
    """Line item read from the invoice document."""

    __tablename__ = "invoice_line_items"

    invoice_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=15, scale=4), nullable=True)
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=18, scale=3), nullable=True)
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=18, scale=3), nullable=True)
    item_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    confidence_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="line_items")
