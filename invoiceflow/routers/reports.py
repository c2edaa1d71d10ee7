"""
InvoiceFlow - Reports and Audit Routers
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.database import get_async_session
from invoiceflow.dependencies import get_current_user, require_role
from invoiceflow.models.audit import AuditAction
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.schemas.common import (
    ActivityResponse,
    AuditLogListResponse,
    AuditLogResponse,
    DashboardResponse,
    ReviewQueueResponse,
    StatusSummaryResponse,
)
from invoiceflow.schemas.invoice import InvoiceSummaryResponse, StatusHistoryResponse
from invoiceflow.services.audit_service import AuditService
from invoiceflow.services.report_service import ReportService


router = APIRouter()
audit_router = APIRouter()


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Invoice counts and totals per status",
    description="Totals are converted to QAR at fixed rates.",
)
async def dashboard(
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    summary = await ReportService(db).dashboard_summary()
    return DashboardResponse(
        total_invoices=summary.total_invoices,
        total_value_qar=summary.total_value_qar,
        currency=summary.currency,
        requires_manual_review=summary.requires_manual_review,
        potential_duplicates=summary.potential_duplicates,
        by_status=[
            StatusSummaryResponse(
                status=item.status,
                label=item.status.label,
                count=item.count,
                total_qar=item.total_qar,
            )
            for item in summary.by_status
        ],
    )


@router.get(
    "/review-queue",
    response_model=ReviewQueueResponse,
    summary="Invoices waiting on the caller's role",
)
async def review_queue(
    limit: int = Query(50, ge=1, le=200),
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    report_service = ReportService(db)
    invoices = await report_service.review_queue(current_user.role, limit=limit)
    return ReviewQueueResponse(
        role=current_user.role.value,
        statuses=[s.label for s in report_service.actionable_statuses(current_user.role)],
        invoices=[InvoiceSummaryResponse.from_invoice(invoice) for invoice in invoices],
    )


@router.get(
    "/activity",
    response_model=ActivityResponse,
    summary="Recent status changes",
)
async def recent_activity(
    limit: int = Query(20, ge=1, le=100),
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    entries = await ReportService(db).recent_activity(limit)
    return ActivityResponse(activity=[StatusHistoryResponse.from_entry(entry) for entry in entries])


@audit_router.get(
    "",
    response_model=AuditLogListResponse,
    summary="Audit trail",
)
async def list_audit_logs(
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    action: Optional[AuditAction] = Query(None),
    actor: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: AppUser = Depends(require_role(UserRole.HEAD)),
    db: AsyncSession = Depends(get_async_session),
):
    logs, total = await AuditService(db).get_audit_logs(
        target_entity_type=entity_type,
        target_entity_id=entity_id,
        action=action,
        actor=actor,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )
    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
    )
