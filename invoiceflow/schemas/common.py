"""
InvoiceFlow - Comment, Report and Audit Schemas
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from invoiceflow.models.audit import AuditAction
from invoiceflow.models.invoice import InvoiceStatus
from invoiceflow.schemas.invoice import InvoiceSummaryResponse, StatusHistoryResponse


# ===========================================
# COMMENTS
# ===========================================

class CommentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)


class CommentResponse(BaseModel):
    id: int
    invoice_id: int
    author: str
    content: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ===========================================
# REPORTS
# ===========================================

class StatusSummaryResponse(BaseModel):
    status: InvoiceStatus
    label: str
    count: int
    total_qar: Decimal


class DashboardResponse(BaseModel):
    total_invoices: int
    total_value_qar: Decimal
    currency: str
    requires_manual_review: int
    potential_duplicates: int
    by_status: List[StatusSummaryResponse]


class ReviewQueueResponse(BaseModel):
    role: str
    statuses: List[str]
    invoices: List[InvoiceSummaryResponse]


class ActivityResponse(BaseModel):
    activity: List[StatusHistoryResponse]


# ===========================================
# AUDIT
# ===========================================

class AuditLogResponse(BaseModel):
    id: int
    action: AuditAction
    actor: Optional[str] = None
    user_id: Optional[int] = None
    target_entity_type: str
    target_entity_id: Optional[str] = None
    description: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int
