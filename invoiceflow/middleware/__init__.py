"""
InvoiceFlow - Middleware Package
"""

from invoiceflow.middleware.security import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)

__all__ = [
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
