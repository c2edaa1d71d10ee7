"""
InvoiceFlow - Utilities
"""
