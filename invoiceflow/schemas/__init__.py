"""
InvoiceFlow - Pydantic Schemas

Request and response models for the HTTP API.
"""
