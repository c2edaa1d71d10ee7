"""
InvoiceFlow - Project, LPO and Department Schemas
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from invoiceflow.models.invoice import CurrencyType
from invoiceflow.models.lpo import LPOStatus


# ===========================================
# DEPARTMENTS
# ===========================================

class DepartmentCreateRequest(BaseModel):
    department_id: int
    department_name: str = Field(..., min_length=1, max_length=255)
    section_id: int
    section_name: str = Field(..., min_length=1, max_length=255)
    section_abbreviation: str = Field(..., min_length=1, max_length=20, pattern=r"^[A-Za-z0-9]+$")
    unit_id: int
    unit_name: str = Field(..., min_length=1, max_length=255)


class DepartmentResponse(BaseModel):
    id: int
    department_id: int
    department_name: str
    section_id: int
    section_name: str
    section_abbreviation: str
    unit_id: int
    unit_name: str

    class Config:
        from_attributes = True


# ===========================================
# PROJECTS
# ===========================================

class ProjectCreateRequest(BaseModel):
    """Schema for creating a project. The number is assigned by the server."""
    name: str = Field(..., min_length=1, max_length=255)
    section_id: int = Field(..., description="Department hierarchy row the project belongs to")
    description: Optional[str] = None
    project_manager_id: Optional[int] = None
    budget: Optional[Decimal] = Field(None, ge=0)
    cost: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[CurrencyType] = None
    expected_start: Optional[date] = None
    expected_end: Optional[date] = None


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    project_manager_id: Optional[int] = None
    budget: Optional[Decimal] = Field(None, ge=0)
    cost: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[CurrencyType] = None
    is_approved: Optional[bool] = None
    completion_percentage: Optional[int] = Field(None, ge=0, le=100)
    expected_start: Optional[date] = None
    expected_end: Optional[date] = None


class ProjectResponse(BaseModel):
    id: int
    project_number: str
    name: str
    description: Optional[str] = None
    section_id: int
    project_manager_id: Optional[int] = None
    budget: Optional[Decimal] = None
    cost: Optional[Decimal] = None
    currency: Optional[CurrencyType] = None
    is_approved: bool
    completion_percentage: Optional[int] = None
    expected_start: Optional[date] = None
    expected_end: Optional[date] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ===========================================
# LPOS
# ===========================================

class LPOCreateRequest(BaseModel):
    lpo_number: str = Field(..., min_length=1, max_length=50)
    project_id: int
    vendor_id: Optional[int] = None
    issue_date: date
    description: Optional[str] = None
    status: LPOStatus = LPOStatus.ISSUED
    total_amount: Decimal = Field(..., ge=0)
    remaining_amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[CurrencyType] = None
    start_date: Optional[date] = None
    completion_date: Optional[date] = None


class LPOUpdateRequest(BaseModel):
    vendor_id: Optional[int] = None
    issue_date: Optional[date] = None
    description: Optional[str] = None
    status: Optional[LPOStatus] = None
    total_amount: Optional[Decimal] = Field(None, ge=0)
    remaining_amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[CurrencyType] = None
    start_date: Optional[date] = None
    completion_date: Optional[date] = None


class LPOResponse(BaseModel):
    id: int
    lpo_number: str
    project_id: int
    vendor_id: Optional[int] = None
    issue_date: date
    description: Optional[str] = None
    status: LPOStatus
    total_amount: Decimal
    remaining_amount: Optional[Decimal] = None
    currency: Optional[CurrencyType] = None
    start_date: Optional[date] = None
    completion_date: Optional[date] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LPOListResponse(BaseModel):
    lpos: List[LPOResponse]
    total: int
