"""
InvoiceFlow - Projects, LPOs and Departments Routers
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.database import get_async_session
from invoiceflow.dependencies import get_current_user, require_role
from invoiceflow.models.lpo import LPOStatus
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.schemas.auth import MessageResponse
from invoiceflow.schemas.project import (
    DepartmentCreateRequest,
    DepartmentResponse,
    LPOCreateRequest,
    LPOListResponse,
    LPOResponse,
    LPOUpdateRequest,
    ProjectCreateRequest,
    ProjectResponse,
    ProjectUpdateRequest,
)
from invoiceflow.services.department_service import DepartmentService
from invoiceflow.services.lpo_service import LPOService
from invoiceflow.services.project_service import ProjectService


router = APIRouter()
lpo_router = APIRouter()
department_router = APIRouter()


# ===========================================
# PROJECTS
# ===========================================

@router.get("", response_model=List[ProjectResponse], summary="List projects")
async def list_projects(
    section_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    projects = await ProjectService(db).list_projects(section_id=section_id, search=search)
    return [ProjectResponse.model_validate(project) for project in projects]


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create project",
    description="The project number is generated from the section abbreviation.",
)
async def create_project(
    request: ProjectCreateRequest,
    current_user: AppUser = Depends(require_role(UserRole.PM)),
    db: AsyncSession = Depends(get_async_session),
):
    data = request.model_dump()
    project = await ProjectService(db).create_project(
        current_user.actor_id,
        section_id=data.pop("section_id"),
        name=data.pop("name"),
        **data,
    )
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}", response_model=ProjectResponse, summary="Get project")
async def get_project(
    project_id: int,
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    project = await ProjectService(db).get_project(project_id)
    return ProjectResponse.model_validate(project)


@router.patch("/{project_id}", response_model=ProjectResponse, summary="Update project")
async def update_project(
    project_id: int,
    request: ProjectUpdateRequest,
    current_user: AppUser = Depends(require_role(UserRole.PM)),
    db: AsyncSession = Depends(get_async_session),
):
    project = await ProjectService(db).update_project(
        project_id,
        current_user.actor_id,
        **request.model_dump(exclude_unset=True),
    )
    return ProjectResponse.model_validate(project)


@router.delete("/{project_id}", response_model=MessageResponse, summary="Delete project")
async def delete_project(
    project_id: int,
    current_user: AppUser = Depends(require_role(UserRole.HEAD)),
    db: AsyncSession = Depends(get_async_session),
):
    await ProjectService(db).delete_project(project_id, current_user.actor_id)
    return MessageResponse(message="Project deleted")


# ===========================================
# LPOS
# ===========================================

@lpo_router.get("", response_model=LPOListResponse, summary="List LPOs")
async def list_lpos(
    project_id: Optional[int] = Query(None),
    vendor_id: Optional[int] = Query(None),
    lpo_status: Optional[LPOStatus] = Query(None, alias="status"),
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    lpos = await LPOService(db).list_lpos(project_id=project_id, vendor_id=vendor_id, status=lpo_status)
    return LPOListResponse(lpos=[LPOResponse.model_validate(lpo) for lpo in lpos], total=len(lpos))


@lpo_router.post(
    "",
    response_model=LPOResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create LPO",
)
async def create_lpo(
    request: LPOCreateRequest,
    current_user: AppUser = Depends(require_role(UserRole.PM)),
    db: AsyncSession = Depends(get_async_session),
):
    lpo = await LPOService(db).create_lpo(current_user.actor_id, **request.model_dump())
    return LPOResponse.model_validate(lpo)


@lpo_router.get("/{lpo_id}", response_model=LPOResponse, summary="Get LPO")
async def get_lpo(
    lpo_id: int,
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    return LPOResponse.model_validate(await LPOService(db).get_lpo(lpo_id))


@lpo_router.patch("/{lpo_id}", response_model=LPOResponse, summary="Update LPO")
async def update_lpo(
    lpo_id: int,
    request: LPOUpdateRequest,
    current_user: AppUser = Depends(require_role(UserRole.PM)),
    db: AsyncSession = Depends(get_async_session),
):
    lpo = await LPOService(db).update_lpo(
        lpo_id,
        current_user.actor_id,
        **request.model_dump(exclude_unset=True),
    )
    return LPOResponse.model_validate(lpo)


@lpo_router.delete("/{lpo_id}", response_model=MessageResponse, summary="Delete LPO")
async def delete_lpo(
    lpo_id: int,
    current_user: AppUser = Depends(require_role(UserRole.HEAD)),
    db: AsyncSession = Depends(get_async_session),
):
    await LPOService(db).delete_lpo(lpo_id, current_user.actor_id)
    return MessageResponse(message="LPO deleted")


# ===========================================
# DEPARTMENTS
# ===========================================

@department_router.get("", response_model=List[DepartmentResponse], summary="Department hierarchy")
async def list_departments(
    department_id: Optional[int] = Query(None),
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    rows = await DepartmentService(db).list_hierarchy(department_id=department_id)
    return [DepartmentResponse.model_validate(row) for row in rows]


@department_router.post(
    "",
    response_model=DepartmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a department/section/unit row",
)
async def create_department(
    request: DepartmentCreateRequest,
    current_user: AppUser = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_async_session),
):
    row = await DepartmentService(db).create(**request.model_dump())
    return DepartmentResponse.model_validate(row)
