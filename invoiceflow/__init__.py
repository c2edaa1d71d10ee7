"""
InvoiceFlow - Invoice and Project Management Service

Invoice submission, OCR ingestion, role-based approval workflow and
supporting project, LPO, vendor and department management.
"""

__version__ = "1.0.0"
