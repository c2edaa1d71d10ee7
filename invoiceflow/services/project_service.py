"""
InvoiceFlow - Project Service

Projects and their numbering.

Project numbers are SECTION-ABBR/MONTH/YEAR/SEQUENCE, where SEQUENCE
counts the section's projects created in the same calendar month.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.models.audit import AuditAction
from invoiceflow.models.invoice import Invoice
from invoiceflow.models.lpo import LPO
from invoiceflow.models.project import Project
from invoiceflow.models.user import AppUser
from invoiceflow.services.audit_service import AuditService
from invoiceflow.services.department_service import DepartmentService
from invoiceflow.utils.error_handling import BusinessRuleException, ErrorCode, NotFoundException

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name",
    "description",
    "project_manager_id",
    "budget",
    "cost",
    "currency",
    "is_approved",
    "completion_percentage",
    "expected_start",
    "expected_end",
)


class ProjectService:
    """Service for project operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.departments = DepartmentService(db)
        self.audit = AuditService(db)

    async def generate_project_number(self, section_id: int, now: Optional[datetime] = None) -> str:
        abbreviation = await self.departments.get_section_abbreviation(section_id)
        now = now or datetime.now(timezone.utc)

        month_start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
        if now.month == 12:
            next_month = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            next_month = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)

        count = (await self.db.execute(
            select(func.count(Project.id))
            .where(Project.section_id == section_id)
            .where(Project.created_at >= month_start)
            .where(Project.created_at < next_month)
        )).scalar() or 0

        return f"{abbreviation}/{now.month}/{now.year}/{count + 1}"

    async def list_projects(
        self,
        section_id: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[Project]:
        query = select(Project)
        if section_id is not None:
            query = query.where(Project.section_id == section_id)
        if search:
            search_term = f"%{search}%"
            query = query.where(
                (Project.name.ilike(search_term)) |
                (Project.project_number.ilike(search_term))
            )
        result = await self.db.execute(query.order_by(Project.created_at.desc(), Project.id.desc()))
        return list(result.scalars().all())

    async def get_project(self, project_id: int) -> Project:
        project = await self.db.get(Project, project_id)
        if project is None:
            raise NotFoundException(resource_type="Project", resource_id=project_id)
        return project

    async def _check_manager(self, project_manager_id: Optional[int]) -> None:
        if project_manager_id is not None and await self.db.get(AppUser, project_manager_id) is None:
            raise NotFoundException(resource_type="User", resource_id=project_manager_id)

    async def create_project(self, actor_id: str, section_id: int, name: str, **data) -> Project:
        """Create a project with the next number for its section."""
        await self._check_manager(data.get("project_manager_id"))
        now = datetime.now(timezone.utc)
        project_number = await self.generate_project_number(section_id, now)

        project = Project(
            project_number=project_number,
            section_id=section_id,
            name=name,
            created_by=actor_id,
            created_at=now,
            **{key: value for key, value in data.items() if key in UPDATABLE_FIELDS},
        )
        self.db.add(project)
        await self.db.flush()

        await self.audit.log_action(
            action=AuditAction.CREATE,
            entity_type="project",
            entity_id=project.id,
            actor=actor_id,
            description=f"Project {project_number} created",
        )
        await self.db.commit()
        await self.db.refresh(project)

        logger.info(f"Project {project_number} created by {actor_id}")
        return project

    async def update_project(self, project_id: int, actor_id: str, **kwargs) -> Project:
        project = await self.get_project(project_id)
        if "project_manager_id" in kwargs:
            await self._check_manager(kwargs["project_manager_id"])

        changes = {
            key: value for key, value in kwargs.items()
            if key in UPDATABLE_FIELDS and getattr(project, key) != value
        }
        if not changes:
            return project

        old_values = {key: getattr(project, key) for key in changes}
        for key, value in changes.items():
            setattr(project, key, value)
        project.modified_by = actor_id

        await self.audit.log_action(
            action=AuditAction.UPDATE,
            entity_type="project",
            entity_id=project.id,
            actor=actor_id,
            old_values={key: str(value) if value is not None else None for key, value in old_values.items()},
            new_values={key: str(value) if value is not None else None for key, value in changes.items()},
        )
        await self.db.commit()
        await self.db.refresh(project)
        return project

    async def delete_project(self, project_id: int, actor_id: str) -> None:
        """Delete a project that has no LPOs or invoices."""
        project = await self.get_project(project_id)

        for model, label in ((LPO, "LPOs"), (Invoice, "invoices")):
            count = (await self.db.execute(
                select(func.count(model.id)).where(model.project_id == project.id)
            )).scalar() or 0
            if count:
                raise BusinessRuleException(
                    f"Project {project.project_number} still has {count} {label}",
                    rule="project_in_use",
                    code=ErrorCode.CANNOT_DELETE,
                )

        await self.db.delete(project)
        await self.audit.log_action(
            action=AuditAction.DELETE,
            entity_type="project",
            entity_id=project_id,
            actor=actor_id,
            description=f"Project {project.project_number} deleted",
        )
        await self.db.commit()
