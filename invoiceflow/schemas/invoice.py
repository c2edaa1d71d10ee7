"""
InvoiceFlow - Invoice Schemas

Pydantic schemas for invoices, their line items, status changes and
the status history.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from invoiceflow.models.invoice import CurrencyType, InvoiceStatus


def _parse_status(v: Any) -> Any:
    if v is None or isinstance(v, InvoiceStatus):
        return v
    try:
        return InvoiceStatus.parse(v)
    except ValueError as exc:
        raise ValueError(str(exc)) from exc


def _parse_currency(v: Any) -> Any:
    if v is None or isinstance(v, CurrencyType):
        return v
    currency = CurrencyType.parse(str(v))
    if currency is None:
        raise ValueError(f"Unsupported currency: {v!r}")
    return currency


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class LineItemCreate(BaseModel):
    """Schema for an invoice line item."""
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Optional[Decimal] = Field(None, ge=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    amount: Optional[Decimal] = Field(None, ge=0)
    item_code: Optional[str] = Field(None, max_length=100)
    unit: Optional[str] = Field(None, max_length=50)


class InvoiceCreateRequest(BaseModel):
    """Schema for entering an invoice by hand."""
    invoice_number: str = Field(..., min_length=1, max_length=100)
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None

    invoice_value: Optional[Decimal] = Field(None, ge=0)
    sub_total: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[CurrencyType] = None

    vendor_name: str = Field(..., min_length=1, max_length=255)
    vendor_tax_id: str = Field(..., min_length=1, max_length=100)
    vendor_address: Optional[str] = None

    description: Optional[str] = None
    purchase_order_number: Optional[str] = Field(None, max_length=100)
    reference_number: Optional[str] = Field(None, max_length=100)
    payment_terms: Optional[str] = Field(None, max_length=255)
    remark: Optional[str] = None

    vendor_id: Optional[int] = None
    project_id: Optional[int] = None
    lpo_id: Optional[int] = None
    duplicate_of_invoice_id: Optional[int] = None

    line_items: List[LineItemCreate] = []
    comment: Optional[str] = Field(None, max_length=1000)

    @field_validator('currency', mode='before')
    @classmethod
    def parse_currency(cls, v):
        return _parse_currency(v)


class InvoiceUpdateRequest(BaseModel):
    """Schema for editing invoice fields. Status changes go through /transition."""
    invoice_number: Optional[str] = Field(None, min_length=1, max_length=100)
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None

    invoice_value: Optional[Decimal] = Field(None, ge=0)
    sub_total: Optional[Decimal] = Field(None, ge=0)
    tax_amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[CurrencyType] = None

    vendor_name: Optional[str] = Field(None, min_length=1, max_length=255)
    vendor_tax_id: Optional[str] = Field(None, min_length=1, max_length=100)
    vendor_address: Optional[str] = None

    description: Optional[str] = None
    purchase_order_number: Optional[str] = Field(None, max_length=100)
    reference_number: Optional[str] = Field(None, max_length=100)
    payment_terms: Optional[str] = Field(None, max_length=255)
    remark: Optional[str] = None

    vendor_id: Optional[int] = None
    project_id: Optional[int] = None
    lpo_id: Optional[int] = None
    duplicate_of_invoice_id: Optional[int] = None
    requires_manual_review: Optional[bool] = None

    @field_validator('currency', mode='before')
    @classmethod
    def parse_currency(cls, v):
        return _parse_currency(v)

    @field_validator('invoice_number', 'vendor_name', 'vendor_tax_id', 'requires_manual_review', mode='before')
    @classmethod
    def reject_null(cls, v):
        # Omit the field to leave it unchanged; these columns are never empty
        if v is None:
            raise ValueError('This field cannot be cleared')
        return v


class StatusTransitionRequest(BaseModel):
    """
    Request to move an invoice to another status.

    `target_status` accepts the numeric code, the member name or the
    display label (e.g. 1, "UNDER_REVIEW" or "UnderReview").
    """
    target_status: InvoiceStatus
    comment: Optional[str] = Field(None, max_length=1000)

    @field_validator('target_status', mode='before')
    @classmethod
    def parse_status(cls, v):
        return _parse_status(v)


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class LineItemResponse(BaseModel):
    id: int
    description: str
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    item_code: Optional[str] = None
    unit: Optional[str] = None
    confidence_score: Optional[float] = None
    sort_order: int

    class Config:
        from_attributes = True


class InvoiceSummaryResponse(BaseModel):
    """Invoice as shown in lists."""
    id: int
    invoice_number: str
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    invoice_value: Optional[Decimal] = None
    currency: Optional[CurrencyType] = None
    status: InvoiceStatus
    status_label: str
    vendor_name: str
    vendor_id: Optional[int] = None
    project_id: Optional[int] = None
    lpo_id: Optional[int] = None
    requires_manual_review: bool
    is_potential_duplicate: bool
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @classmethod
    def from_invoice(cls, invoice) -> "InvoiceSummaryResponse":
        return cls(**_invoice_fields(cls, invoice))


class InvoiceResponse(InvoiceSummaryResponse):
    """Full invoice detail."""
    sub_total: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    vendor_tax_id: str
    vendor_address: Optional[str] = None
    description: Optional[str] = None
    purchase_order_number: Optional[str] = None
    reference_number: Optional[str] = None
    payment_terms: Optional[str] = None
    remark: Optional[str] = None

    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None

    ocr_confidence: Optional[float] = None
    field_confidence_scores: Optional[Dict[str, float]] = None

    duplicate_of_invoice_id: Optional[int] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    paid_amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None

    modified_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    version: int

    line_items: List[LineItemResponse] = []


def _invoice_fields(schema, invoice) -> Dict[str, Any]:
    data = {}
    for name in schema.model_fields:
        if name == "status_label":
            data[name] = invoice.status.label
        elif name == "line_items":
            data[name] = [LineItemResponse.model_validate(item) for item in invoice.line_items]
        else:
            data[name] = getattr(invoice, name)
    return data


class InvoiceListResponse(BaseModel):
    invoices: List[InvoiceSummaryResponse]
    total: int
    page: int
    page_size: int


class StatusHistoryResponse(BaseModel):
    """One ledger entry."""
    id: int
    invoice_id: int
    previous_status: Optional[InvoiceStatus] = None
    previous_status_label: Optional[str] = None
    new_status: InvoiceStatus
    new_status_label: str
    changed_at: datetime
    changed_by: str
    comments: Optional[str] = None

    @classmethod
    def from_entry(cls, entry) -> "StatusHistoryResponse":
        return cls(
            id=entry.id,
            invoice_id=entry.invoice_id,
            previous_status=entry.previous_status,
            previous_status_label=entry.previous_status.label if entry.previous_status is not None else None,
            new_status=entry.new_status,
            new_status_label=entry.new_status.label,
            changed_at=entry.changed_at,
            changed_by=entry.changed_by,
            comments=entry.comments,
        )


class StatusOption(BaseModel):
    status: InvoiceStatus
    label: str


class ValidTransitionsResponse(BaseModel):
    invoice_id: int
    current_status: StatusOption
    valid_transitions: List[StatusOption]
