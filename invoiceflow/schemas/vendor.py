"""
InvoiceFlow - Vendor Schemas
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class VendorCreateRequest(BaseModel):
    """Schema for creating a vendor."""
    name: str = Field(..., min_length=1, max_length=255)
    vendor_code: Optional[str] = Field(None, max_length=50)
    tax_id: Optional[str] = Field(None, max_length=100, description="Tax registration number")

    # Contact Information
    contact_person: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    mobile: Optional[str] = Field(None, max_length=50)
    website: Optional[str] = Field(None, max_length=255)

    # Address
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)

    # Bank Details
    bank_name: Optional[str] = Field(None, max_length=255)
    bank_account_number: Optional[str] = Field(None, max_length=100)
    iban: Optional[str] = Field(None, max_length=50)
    swift_code: Optional[str] = Field(None, max_length=20)

    category: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class VendorUpdateRequest(BaseModel):
    """Schema for updating a vendor. Omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    vendor_code: Optional[str] = Field(None, max_length=50)
    tax_id: Optional[str] = Field(None, max_length=100)
    contact_person: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    mobile: Optional[str] = Field(None, max_length=50)
    website: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    bank_name: Optional[str] = Field(None, max_length=255)
    bank_account_number: Optional[str] = Field(None, max_length=100)
    iban: Optional[str] = Field(None, max_length=50)
    swift_code: Optional[str] = Field(None, max_length=20)
    category: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    notes: Optional[str] = None


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class VendorResponse(BaseModel):
    """Schema for vendor response."""
    id: int
    name: str
    vendor_code: Optional[str] = None
    tax_id: Optional[str] = None

    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    website: Optional[str] = None

    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    bank_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    iban: Optional[str] = None
    swift_code: Optional[str] = None

    category: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VendorListResponse(BaseModel):
    """List of vendors response."""
    vendors: List[VendorResponse]
    total: int
