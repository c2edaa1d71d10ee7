"""
InvoiceFlow - Services Package

Business logic, one service per concern. Services take an AsyncSession
and own their transactions.
"""
