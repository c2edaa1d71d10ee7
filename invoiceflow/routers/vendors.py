"""
InvoiceFlow - Vendors Router

API endpoints for the vendor master list.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.database import get_async_session
from invoiceflow.dependencies import get_current_user, require_role
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.schemas.auth import MessageResponse
from invoiceflow.schemas.vendor import (
    VendorCreateRequest,
    VendorListResponse,
    VendorResponse,
    VendorUpdateRequest,
)
from invoiceflow.services.vendor_service import VendorService


router = APIRouter()


@router.get(
    "",
    response_model=VendorListResponse,
    summary="List vendors",
)
async def list_vendors(
    search: Optional[str] = Query(None, description="Search by name, tax id, email or code"),
    include_inactive: bool = Query(False),
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    vendors = await VendorService(db).get_vendors(search=search, include_inactive=include_inactive)
    return VendorListResponse(
        vendors=[VendorResponse.model_validate(vendor) for vendor in vendors],
        total=len(vendors),
    )


@router.post(
    "",
    response_model=VendorResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create vendor",
)
async def create_vendor(
    request: VendorCreateRequest,
    current_user: AppUser = Depends(require_role(UserRole.SECRETARY)),
    db: AsyncSession = Depends(get_async_session),
):
    vendor = await VendorService(db).create_vendor(current_user.actor_id, **request.model_dump())
    return VendorResponse.model_validate(vendor)


@router.get(
    "/{vendor_id}",
    response_model=VendorResponse,
    summary="Get vendor",
)
async def get_vendor(
    vendor_id: int,
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    vendor = await VendorService(db).get_vendor(vendor_id)
    return VendorResponse.model_validate(vendor)


@router.patch(
    "/{vendor_id}",
    response_model=VendorResponse,
    summary="Update vendor",
)
async def update_vendor(
    vendor_id: int,
    request: VendorUpdateRequest,
    current_user: AppUser = Depends(require_role(UserRole.SECRETARY)),
    db: AsyncSession = Depends(get_async_session),
):
    vendor = await VendorService(db).update_vendor(
        vendor_id,
        current_user.actor_id,
        **request.model_dump(exclude_unset=True),
    )
    return VendorResponse.model_validate(vendor)


@router.delete(
    "/{vendor_id}",
    response_model=MessageResponse,
    summary="Delete vendor",
    description="Vendors with invoices or LPOs are deactivated instead of deleted.",
)
async def delete_vendor(
    vendor_id: int,
    current_user: AppUser = Depends(require_role(UserRole.HEAD)),
    db: AsyncSession = Depends(get_async_session),
):
    removed = await VendorService(db).delete_vendor(vendor_id, current_user.actor_id)
    return MessageResponse(message="Vendor deleted" if removed else "Vendor deactivated")
