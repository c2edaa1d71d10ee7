"""
InvoiceFlow - Routers Package

FastAPI route handlers.

Routers:
- auth: Registration, login, tokens, user administration
- invoices: Invoice CRUD, upload, status transitions, history
- comments: Invoice comments
- vendors: Vendor management
- projects: Projects, LPOs and the department hierarchy
- reports: Dashboard, review queue, activity and the audit trail
"""

from invoiceflow.routers import (
    auth,
    comments,
    invoices,
    projects,
    reports,
    vendors,
)

__all__ = [
    "auth",
    "comments",
    "invoices",
    "projects",
    "reports",
    "vendors",
]
