"""
InvoiceFlow - Department Service

Department / section / unit lookups.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.models.department import DepartmentHierarchy
from invoiceflow.utils.error_handling import NotFoundException


class DepartmentService:
    """Service for the department hierarchy."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_hierarchy(self, department_id: Optional[int] = None) -> List[DepartmentHierarchy]:
        query = select(DepartmentHierarchy)
        if department_id is not None:
            query = query.where(DepartmentHierarchy.department_id == department_id)
        query = query.order_by(
            DepartmentHierarchy.department_name,
            DepartmentHierarchy.section_name,
            DepartmentHierarchy.unit_name,
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get(self, hierarchy_id: int) -> DepartmentHierarchy:
        row = await self.db.get(DepartmentHierarchy, hierarchy_id)
        if row is None:
            raise NotFoundException(resource_type="Section", resource_id=hierarchy_id)
        return row

    async def get_section_abbreviation(self, hierarchy_id: int) -> str:
        """Abbreviation used as the project number prefix for this section."""
        row = await self.get(hierarchy_id)
        return row.section_abbreviation

    async def create(self, **data) -> DepartmentHierarchy:
        row = DepartmentHierarchy(**data)
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return row
