"""
InvoiceFlow - Database Models

All SQLAlchemy models are imported here so that Alembic and
`init_db()` see every table.
"""

from invoiceflow.models.base import AuditMixin, BaseModel, TimestampMixin
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.models.invoice import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    CurrencyType,
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
)
from invoiceflow.models.status_history import StatusHistory
from invoiceflow.models.comment import InvoiceComment
from invoiceflow.models.vendor import Vendor
from invoiceflow.models.department import DepartmentHierarchy
from invoiceflow.models.project import Project
from invoiceflow.models.lpo import LPO, LPOStatus
from invoiceflow.models.audit import AuditAction, AuditLog

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "AuditMixin",
    "AppUser",
    "UserRole",
    "Invoice",
    "InvoiceLineItem",
    "InvoiceStatus",
    "CurrencyType",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "StatusHistory",
    "InvoiceComment",
    "Vendor",
    "DepartmentHierarchy",
    "Project",
    "LPO",
    "LPOStatus",
    "AuditLog",
    "AuditAction",
]
