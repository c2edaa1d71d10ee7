"""
InvoiceFlow - LPO Service

Local purchase orders raised under projects.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.models.audit import AuditAction
from invoiceflow.models.invoice import Invoice
from invoiceflow.models.lpo import LPO, LPOStatus
from invoiceflow.models.project import Project
from invoiceflow.models.vendor import Vendor
from invoiceflow.services.audit_service import AuditService
from invoiceflow.utils.error_handling import (
    BusinessRuleException,
    DuplicateEntryException,
    ErrorCode,
    InvalidAmountException,
    NotFoundException,
    ValidationException,
)

UPDATABLE_FIELDS = (
    "description",
    "issue_date",
    "status",
    "total_amount",
    "remaining_amount",
    "currency",
    "start_date",
    "completion_date",
    "vendor_id",
)


class LPOService:
    """Service for LPO operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def list_lpos(
        self,
        project_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        status: Optional[LPOStatus] = None,
    ) -> List[LPO]:
        query = select(LPO)
        if project_id is not None:
            query = query.where(LPO.project_id == project_id)
        if vendor_id is not None:
            query = query.where(LPO.vendor_id == vendor_id)
        if status is not None:
            query = query.where(LPO.status == status)
        result = await self.db.execute(query.order_by(LPO.issue_date.desc(), LPO.id.desc()))
        return list(result.scalars().all())

    async def get_lpo(self, lpo_id: int) -> LPO:
        lpo = await self.db.get(LPO, lpo_id)
        if lpo is None:
            raise NotFoundException(resource_type="LPO", resource_id=lpo_id)
        return lpo

    async def _validate(self, data: Dict[str, Any]) -> None:
        for field in ("total_amount", "remaining_amount"):
            value = data.get(field)
            if value is not None and value < 0:
                raise InvalidAmountException(value, field=field)

        total = data.get("total_amount")
        remaining = data.get("remaining_amount")
        if total is not None and remaining is not None and remaining > total:
            raise ValidationException(
                "Remaining amount cannot exceed the LPO total",
                field="remaining_amount",
            )

        start: Optional[date] = data.get("start_date")
        end: Optional[date] = data.get("completion_date")
        if start and end and end < start:
            raise ValidationException("Completion date is before start date", field="completion_date")

        if data.get("project_id") is not None and await self.db.get(Project, data["project_id"]) is None:
            raise NotFoundException(resource_type="Project", resource_id=data["project_id"])
        if data.get("vendor_id") is not None and await self.db.get(Vendor, data["vendor_id"]) is None:
            raise NotFoundException(resource_type="Vendor", resource_id=data["vendor_id"])

    async def create_lpo(self, actor_id: str, **data) -> LPO:
        existing = await self.db.execute(select(LPO.id).where(LPO.lpo_number == data["lpo_number"]))
        if existing.scalar_one_or_none() is not None:
            raise DuplicateEntryException("LPO", "lpo_number", data["lpo_number"])

        await self._validate(data)
        if data.get("remaining_amount") is None:
            data["remaining_amount"] = data.get("total_amount", Decimal("0"))

        lpo = LPO(**data, created_by=actor_id)
        self.db.add(lpo)
        await self.db.flush()

        await self.audit.log_action(
            action=AuditAction.CREATE,
            entity_type="lpo",
            entity_id=lpo.id,
            actor=actor_id,
            description=f"LPO {lpo.lpo_number} created",
        )
        await self.db.commit()
        await self.db.refresh(lpo)
        return lpo

    async def update_lpo(self, lpo_id: int, actor_id: str, **kwargs) -> LPO:
        lpo = await self.get_lpo(lpo_id)

        merged = {
            "total_amount": lpo.total_amount,
            "remaining_amount": lpo.remaining_amount,
            "start_date": lpo.start_date,
            "completion_date": lpo.completion_date,
        }
        merged.update(kwargs)
        await self._validate(merged)

        changes = {
            key: value for key, value in kwargs.items()
            if key in UPDATABLE_FIELDS and getattr(lpo, key) != value
        }
        if not changes:
            return lpo

        old_values = {key: getattr(lpo, key) for key in changes}
        for key, value in changes.items():
            setattr(lpo, key, value)
        lpo.modified_by = actor_id

        await self.audit.log_action(
            action=AuditAction.UPDATE,
            entity_type="lpo",
            entity_id=lpo.id,
            actor=actor_id,
            old_values={key: str(value) if value is not None else None for key, value in old_values.items()},
            new_values={key: str(value) if value is not None else None for key, value in changes.items()},
        )
        await self.db.commit()
        await self.db.refresh(lpo)
        return lpo

    async def delete_lpo(self, lpo_id: int, actor_id: str) -> None:
        """Delete an LPO that no invoice references."""
        lpo = await self.get_lpo(lpo_id)

        count = (await self.db.execute(
            select(func.count(Invoice.id)).where(Invoice.lpo_id == lpo.id)
        )).scalar() or 0
        if count:
            raise BusinessRuleException(
                f"LPO {lpo.lpo_number} is referenced by {count} invoices",
                rule="lpo_in_use",
                code=ErrorCode.CANNOT_DELETE,
            )

        await self.db.delete(lpo)
        await self.audit.log_action(
            action=AuditAction.DELETE,
            entity_type="lpo",
            entity_id=lpo_id,
            actor=actor_id,
            description=f"LPO {lpo.lpo_number} deleted",
        )
        await self.db.commit()
