"""
InvoiceFlow - Vendor Service

Business logic for the vendor master list.
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.models.audit import AuditAction
from invoiceflow.models.invoice import Invoice
from invoiceflow.models.lpo import LPO
from invoiceflow.models.vendor import Vendor
from invoiceflow.services.audit_service import AuditService
from invoiceflow.utils.error_handling import DuplicateEntryException, NotFoundException


class VendorService:
    """Service for vendor operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_vendors(
        self,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ) -> List[Vendor]:
        """Get all vendors, by name."""
        query = select(Vendor)

        if search:
            search_term = f"%{search}%"
            query = query.where(
                (Vendor.name.ilike(search_term)) |
                (Vendor.tax_id.ilike(search_term)) |
                (Vendor.email.ilike(search_term)) |
                (Vendor.vendor_code.ilike(search_term))
            )

        if not include_inactive:
            query = query.where(Vendor.is_active == True)  # noqa: E712

        query = query.order_by(Vendor.name)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_vendor(self, vendor_id: int) -> Vendor:
        vendor = await self.db.get(Vendor, vendor_id)
        if vendor is None:
            raise NotFoundException(resource_type="Vendor", resource_id=vendor_id)
        return vendor

    async def get_vendor_by_code(self, vendor_code: str) -> Optional[Vendor]:
        result = await self.db.execute(select(Vendor).where(Vendor.vendor_code == vendor_code))
        return result.scalar_one_or_none()

    async def create_vendor(self, actor_id: str, **data) -> Vendor:
        """Create a new vendor. Vendor codes are unique."""
        vendor_code = data.get("vendor_code")
        if vendor_code and await self.get_vendor_by_code(vendor_code):
            raise DuplicateEntryException("Vendor", "vendor_code", vendor_code)

        vendor = Vendor(**data, created_by=actor_id, is_active=True)
        self.db.add(vendor)
        await self.db.flush()

        await self.audit.log_action(
            action=AuditAction.CREATE,
            entity_type="vendor",
            entity_id=vendor.id,
            actor=actor_id,
            description=f"Vendor {vendor.name} created",
        )
        await self.db.commit()
        await self.db.refresh(vendor)

        return vendor

    async def update_vendor(self, vendor_id: int, actor_id: str, **kwargs) -> Vendor:
        """Update a vendor. None values leave the field unchanged."""
        vendor = await self.get_vendor(vendor_id)

        new_code = kwargs.get("vendor_code")
        if new_code and new_code != vendor.vendor_code:
            existing = await self.get_vendor_by_code(new_code)
            if existing is not None and existing.id != vendor.id:
                raise DuplicateEntryException("Vendor", "vendor_code", new_code)

        changes = {
            key: value for key, value in kwargs.items()
            if value is not None and hasattr(vendor, key) and getattr(vendor, key) != value
        }
        if not changes:
            return vendor

        old_values = {key: getattr(vendor, key) for key in changes}
        for key, value in changes.items():
            setattr(vendor, key, value)
        vendor.modified_by = actor_id

        await self.audit.log_action(
            action=AuditAction.UPDATE,
            entity_type="vendor",
            entity_id=vendor.id,
            actor=actor_id,
            old_values={key: str(value) if value is not None else None for key, value in old_values.items()},
            new_values={key: str(value) for key, value in changes.items()},
        )
        await self.db.commit()
        await self.db.refresh(vendor)

        return vendor

    async def delete_vendor(self, vendor_id: int, actor_id: str) -> bool:
        """
        Delete a vendor. Vendors referenced by invoices are deactivated instead.

        Returns True when the row was removed, False when it was deactivated.
        """
        vendor = await self.get_vendor(vendor_id)

        invoice_count = (await self.db.execute(
            select(func.count(Invoice.id)).where(Invoice.vendor_id == vendor.id)
        )).scalar() or 0
        lpo_count = (await self.db.execute(
            select(func.count(LPO.id)).where(LPO.vendor_id == vendor.id)
        )).scalar() or 0

        if invoice_count or lpo_count:
            vendor.is_active = False
            vendor.modified_by = actor_id
            removed = False
        else:
            await self.db.delete(vendor)
            removed = True

        await self.audit.log_action(
            action=AuditAction.DELETE,
            entity_type="vendor",
            entity_id=vendor_id,
            actor=actor_id,
            description=f"Vendor {vendor.name} {'deleted' if removed else 'deactivated'}",
        )
        await self.db.commit()
        return removed
