"""
InvoiceFlow - Invoices Router

Invoice CRUD, document upload, status transitions and status history.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.database import get_async_session
from invoiceflow.dependencies import (
    get_current_user,
    get_file_storage,
    get_invoice_service,
    get_workflow_engine,
    require_role,
)
from invoiceflow.models.invoice import InvoiceStatus
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.schemas.auth import MessageResponse
from invoiceflow.schemas.invoice import (
    InvoiceCreateRequest,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceSummaryResponse,
    InvoiceUpdateRequest,
    StatusHistoryResponse,
    StatusOption,
    StatusTransitionRequest,
    ValidTransitionsResponse,
)
from invoiceflow.services.file_storage_service import FileStorageService
from invoiceflow.services.invoice_service import InvoiceService
from invoiceflow.services.status_history_service import StatusHistoryService
from invoiceflow.services.workflow_engine import InvoiceWorkflowEngine
from invoiceflow.utils.error_handling import NotFoundException, ValidationException


router = APIRouter()


def _status_option(value: InvoiceStatus) -> StatusOption:
    return StatusOption(status=value, label=value.label)


@router.get(
    "",
    response_model=InvoiceListResponse,
    summary="List invoices",
)
async def list_invoices(
    status_filter: Optional[str] = Query(None, alias="status", description="Status code, name or label"),
    vendor_id: Optional[int] = Query(None),
    project_id: Optional[int] = Query(None),
    lpo_id: Optional[int] = Query(None),
    requires_manual_review: Optional[bool] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    search: Optional[str] = Query(None, description="Search number, vendor, description or reference"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: AppUser = Depends(get_current_user),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    status_value = None
    if status_filter is not None:
        try:
            status_value = InvoiceStatus.parse(status_filter)
        except ValueError as exc:
            raise ValidationException(str(exc), field="status")

    invoices, total = await invoice_service.list_invoices(
        status=status_value,
        vendor_id=vendor_id,
        project_id=project_id,
        lpo_id=lpo_id,
        requires_manual_review=requires_manual_review,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        page_size=page_size,
    )

    return InvoiceListResponse(
        invoices=[InvoiceSummaryResponse.from_invoice(invoice) for invoice in invoices],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit an invoice",
    description="Enter an invoice by hand. It starts in the Submitted status.",
)
async def create_invoice(
    request: InvoiceCreateRequest,
    current_user: AppUser = Depends(require_role(UserRole.SECRETARY)),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    data = request.model_dump(exclude={"comment"})
    data["line_items"] = [item.model_dump() for item in request.line_items]

    invoice = await invoice_service.create_invoice(
        data,
        actor_id=current_user.actor_id,
        comment=request.comment,
    )
    return InvoiceResponse.from_invoice(invoice)


@router.post(
    "/upload",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload an invoice document",
    description=(
        "Extract invoice fields from a PDF or image. Fields that could not be "
        "read are set to PENDING and the invoice is flagged for manual review."
    ),
)
async def upload_invoice(
    file: UploadFile = File(...),
    current_user: AppUser = Depends(require_role(UserRole.SECRETARY)),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    content = await file.read()
    invoice = await invoice_service.ingest_from_ocr(
        file_content=content,
        filename=file.filename or "document",
        content_type=file.content_type or "application/octet-stream",
        actor_id=current_user.actor_id,
    )
    return InvoiceResponse.from_invoice(invoice)


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get invoice",
)
async def get_invoice(
    invoice_id: int,
    current_user: AppUser = Depends(get_current_user),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await invoice_service.get_invoice(invoice_id)
    return InvoiceResponse.from_invoice(invoice)


@router.patch(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Edit invoice fields",
    description="Status is not editable here; use the transition endpoint.",
)
async def update_invoice(
    invoice_id: int,
    request: InvoiceUpdateRequest,
    current_user: AppUser = Depends(require_role(UserRole.SECRETARY)),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await invoice_service.update_invoice(
        invoice_id,
        actor_id=current_user.actor_id,
        **request.model_dump(exclude_unset=True),
    )
    return InvoiceResponse.from_invoice(invoice)


@router.delete(
    "/{invoice_id}",
    response_model=MessageResponse,
    summary="Delete invoice",
)
async def delete_invoice(
    invoice_id: int,
    current_user: AppUser = Depends(require_role(UserRole.ADMIN)),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    await invoice_service.delete_invoice(invoice_id, actor_id=current_user.actor_id)
    return MessageResponse(message=f"Invoice {invoice_id} deleted")


@router.get(
    "/{invoice_id}/document",
    summary="Download the uploaded document",
    response_class=FileResponse,
)
async def download_document(
    invoice_id: int,
    current_user: AppUser = Depends(get_current_user),
    invoice_service: InvoiceService = Depends(get_invoice_service),
    storage: FileStorageService = Depends(get_file_storage),
):
    invoice = await invoice_service.get_invoice(invoice_id)
    if not invoice.file_path:
        raise NotFoundException(resource_type="Document", message="Invoice has no uploaded document")

    path = storage.resolve(invoice.file_path)
    if not path.exists():
        raise NotFoundException(resource_type="Document", message="Stored document is missing")

    return FileResponse(path, media_type=invoice.file_type, filename=invoice.file_name)


# ===========================================
# WORKFLOW
# ===========================================

@router.post(
    "/{invoice_id}/transition",
    response_model=InvoiceResponse,
    summary="Change invoice status",
    description=(
        "Move the invoice to another status. Returns 403 when the caller's "
        "role may not make the move and 409 when the invoice changed "
        "concurrently."
    ),
)
async def transition_invoice(
    invoice_id: int,
    request: StatusTransitionRequest,
    current_user: AppUser = Depends(get_current_user),
    engine: InvoiceWorkflowEngine = Depends(get_workflow_engine),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    await engine.request_transition(
        invoice_id,
        target_status=request.target_status,
        actor_role=current_user.role,
        actor_id=current_user.actor_id,
        comment=request.comment,
    )
    invoice = await invoice_service.get_invoice(invoice_id)
    return InvoiceResponse.from_invoice(invoice)


@router.get(
    "/{invoice_id}/valid-transitions",
    response_model=ValidTransitionsResponse,
    summary="Statuses the caller may move the invoice to",
)
async def valid_transitions(
    invoice_id: int,
    current_user: AppUser = Depends(get_current_user),
    engine: InvoiceWorkflowEngine = Depends(get_workflow_engine),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await invoice_service.get_invoice(invoice_id)
    targets = await engine.valid_transitions(invoice_id, current_user.role)
    return ValidTransitionsResponse(
        invoice_id=invoice_id,
        current_status=_status_option(invoice.status),
        valid_transitions=[_status_option(target) for target in targets],
    )


@router.get(
    "/{invoice_id}/history",
    response_model=List[StatusHistoryResponse],
    summary="Status history",
    description="Every status the invoice has been in, oldest first.",
)
async def status_history(
    invoice_id: int,
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    entries = await StatusHistoryService(db).get_history(invoice_id)
    return [StatusHistoryResponse.from_entry(entry) for entry in entries]
