"""
InvoiceFlow - Invoice Service

Business logic for invoices outside the status workflow: listing,
direct submission, OCR ingestion, field edits, deletion and duplicate
detection. New invoices always enter through the workflow engine so the
ledger starts with them.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from invoiceflow.models.audit import AuditAction
from invoiceflow.models.invoice import CurrencyType, Invoice, InvoiceLineItem, InvoiceStatus
from invoiceflow.models.lpo import LPO
from invoiceflow.models.project import Project
from invoiceflow.models.vendor import Vendor
from invoiceflow.services.audit_service import AuditService
from invoiceflow.services.file_storage_service import FileStorageService
from invoiceflow.services.ocr_mapper import PENDING, OcrInvoiceMapper
from invoiceflow.services.ocr_pipeline import OcrPreprocessor, normalize_invoice_number
from invoiceflow.services.ocr_service import OcrService
from invoiceflow.services.workflow_engine import InvoiceWorkflowEngine
from invoiceflow.utils.error_handling import (
    ConflictException,
    ErrorCode,
    InvalidAmountException,
    InvoiceNotFoundException,
    NotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)

# Fields that may be edited directly, outside the status workflow
EDITABLE_FIELDS = (
    "invoice_number",
    "invoice_date",
    "due_date",
    "invoice_value",
    "sub_total",
    "tax_amount",
    "currency",
    "vendor_name",
    "vendor_tax_id",
    "vendor_address",
    "description",
    "purchase_order_number",
    "reference_number",
    "payment_terms",
    "remark",
    "vendor_id",
    "project_id",
    "lpo_id",
    "duplicate_of_invoice_id",
    "requires_manual_review",
)

_AMOUNT_FIELDS = ("invoice_value", "sub_total", "tax_amount")

# Editable fields backed by NOT NULL columns
_REQUIRED_FIELDS = ("invoice_number", "vendor_name", "vendor_tax_id", "requires_manual_review")


def _serialize(value: Any) -> Any:
    if isinstance(value, (Decimal, date)):
        return str(value)
    if isinstance(value, CurrencyType):
        return value.value
    return value


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        db: AsyncSession,
        engine: Optional[InvoiceWorkflowEngine] = None,
        ocr_service: Optional[OcrService] = None,
        storage: Optional[FileStorageService] = None,
    ):
        self.db = db
        self.engine = engine or InvoiceWorkflowEngine(db)
        self.ocr_service = ocr_service or OcrService()
        self.storage = storage or FileStorageService()
        self.audit = AuditService(db)

    # ===========================================
    # QUERIES
    # ===========================================

    async def list_invoices(
        self,
        status: Optional[InvoiceStatus] = None,
        vendor_id: Optional[int] = None,
        project_id: Optional[int] = None,
        lpo_id: Optional[int] = None,
        requires_manual_review: Optional[bool] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Invoice], int]:
        """Get invoices with filters, newest first. Returns (invoices, total)."""
        filters = []
        if status is not None:
            filters.append(Invoice.status == status)
        if vendor_id is not None:
            filters.append(Invoice.vendor_id == vendor_id)
        if project_id is not None:
            filters.append(Invoice.project_id == project_id)
        if lpo_id is not None:
            filters.append(Invoice.lpo_id == lpo_id)
        if requires_manual_review is not None:
            filters.append(Invoice.requires_manual_review == requires_manual_review)
        if start_date:
            filters.append(Invoice.invoice_date >= start_date)
        if end_date:
            filters.append(Invoice.invoice_date <= end_date)
        if search:
            search_term = f"%{search}%"
            filters.append(
                or_(
                    Invoice.invoice_number.ilike(search_term),
                    Invoice.vendor_name.ilike(search_term),
                    Invoice.description.ilike(search_term),
                    Invoice.reference_number.ilike(search_term),
                )
            )

        count_query = select(func.count(Invoice.id))
        query = select(Invoice)
        for condition in filters:
            count_query = count_query.where(condition)
            query = query.where(condition)

        total = (await self.db.execute(count_query)).scalar() or 0

        offset = (page - 1) * page_size
        query = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(page_size).offset(offset)
        result = await self.db.execute(query)

        return list(result.scalars().all()), total

    async def get_invoice(self, invoice_id: int) -> Invoice:
        """
        Get invoice by ID with its line items.

        Raises:
            InvoiceNotFoundException: If the invoice does not exist
        """
        result = await self.db.execute(
            select(Invoice)
            .options(selectinload(Invoice.line_items))
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundException(invoice_id)
        return invoice

    async def find_duplicates(
        self,
        invoice_number: str,
        vendor_name: str,
        exclude_id: Optional[int] = None,
    ) -> List[Invoice]:
        """
        Invoices with the same normalised number from the same vendor.

        Placeholder values never match.
        """
        normalized = normalize_invoice_number(invoice_number)
        if not normalized or PENDING in (invoice_number, vendor_name):
            return []

        query = select(Invoice).where(func.lower(Invoice.vendor_name) == vendor_name.strip().lower())
        if exclude_id is not None:
            query = query.where(Invoice.id != exclude_id)
        result = await self.db.execute(query.order_by(Invoice.id))

        return [
            candidate for candidate in result.scalars().all()
            if (normalize_invoice_number(candidate.invoice_number) or "").lower() == normalized.lower()
        ]

    # ===========================================
    # VALIDATION
    # ===========================================

    async def _validate_references(self, data: Dict[str, Any], invoice_id: Optional[int] = None) -> None:
        for field, model, name in (
            ("vendor_id", Vendor, "Vendor"),
            ("project_id", Project, "Project"),
            ("lpo_id", LPO, "LPO"),
        ):
            value = data.get(field)
            if value is not None and await self.db.get(model, value) is None:
                raise NotFoundException(resource_type=name, resource_id=value)

        duplicate_of = data.get("duplicate_of_invoice_id")
        if duplicate_of is not None:
            if invoice_id is not None and duplicate_of == invoice_id:
                raise ValidationException(
                    "An invoice cannot be a duplicate of itself",
                    field="duplicate_of_invoice_id",
                )
            if await self.db.get(Invoice, duplicate_of) is None:
                raise ValidationException(
                    f"Invoice {duplicate_of} does not exist",
                    field="duplicate_of_invoice_id",
                )

    @staticmethod
    def _validate_amounts(data: Dict[str, Any]) -> None:
        for field in _AMOUNT_FIELDS:
            value = data.get(field)
            if value is not None and value < 0:
                raise InvalidAmountException(value, field=field)

    async def _flag_duplicates(self, invoice: Invoice) -> None:
        duplicates = await self.find_duplicates(invoice.invoice_number, invoice.vendor_name, exclude_id=invoice.id)
        if duplicates:
            invoice.is_potential_duplicate = True
            invoice.duplicate_of_invoice_id = duplicates[0].id
            logger.warning(
                f"Invoice {invoice.invoice_number} from {invoice.vendor_name} "
                f"looks like a duplicate of invoice {duplicates[0].id}"
            )

    # ===========================================
    # CREATION
    # ===========================================

    async def create_invoice(
        self,
        data: Dict[str, Any],
        actor_id: str,
        comment: Optional[str] = None,
    ) -> Invoice:
        """
        Submit an invoice entered by hand.

        Raises:
            InvalidAmountException: Negative amount
            NotFoundException: Unknown vendor, project or LPO
        """
        line_items = data.pop("line_items", None) or []
        self._validate_amounts(data)
        for index, item in enumerate(line_items):
            for field in ("quantity", "unit_price", "amount"):
                value = item.get(field)
                if value is not None and value < 0:
                    raise InvalidAmountException(value, field=f"line_items[{index}].{field}")
        await self._validate_references(data)

        invoice = Invoice(
            **{key: value for key, value in data.items() if key in EDITABLE_FIELDS},
            created_by=actor_id,
            line_items=[
                InvoiceLineItem(sort_order=index, **item)
                for index, item in enumerate(line_items)
            ],
        )
        if data.get("duplicate_of_invoice_id") is not None:
            invoice.is_potential_duplicate = True
        else:
            await self._flag_duplicates(invoice)

        await self.engine.submit_invoice(invoice, actor_id, comment)
        return await self.get_invoice(invoice.id)

    async def ingest_from_ocr(
        self,
        file_content: bytes,
        filename: str,
        content_type: str,
        actor_id: str,
    ) -> Invoice:
        """
        Create an invoice from an uploaded document.

        The document is analysed before anything is written, so a provider
        failure leaves no file and no invoice behind.

        Raises:
            ValidationException: Bad upload or negative extracted amount
            ExternalServiceException: OCR provider failure
        """
        self.storage.validate_upload(file_content, content_type)

        ocr_result = await self.ocr_service.analyze(file_content, filename, content_type)
        ocr_result = OcrPreprocessor().process(ocr_result)
        invoice = OcrInvoiceMapper().map_to_invoice(ocr_result, created_by=actor_id)

        file_meta = await self.storage.save(file_content, filename, content_type)
        invoice.file_path = file_meta.path
        invoice.file_name = file_meta.name
        invoice.file_type = file_meta.content_type
        invoice.file_size = file_meta.size

        try:
            await self._flag_duplicates(invoice)
            await self.engine.submit_invoice(
                invoice,
                actor_id,
                comment=f"Created from uploaded document {filename}",
            )
        except Exception:
            await self.storage.delete(file_meta.path)
            raise

        await self.audit.log_action(
            action=AuditAction.UPLOAD,
            entity_type="invoice",
            entity_id=invoice.id,
            actor=actor_id,
            description=f"OCR ({ocr_result.provider}) confidence {ocr_result.confidence_score:.2f}",
            new_values={"file_name": filename, "warnings": ocr_result.warnings},
        )
        await self.db.commit()

        logger.info(
            f"Ingested {filename} as invoice {invoice.id} "
            f"(review required: {invoice.requires_manual_review})"
        )
        return await self.get_invoice(invoice.id)

    # ===========================================
    # UPDATE / DELETE
    # ===========================================

    async def update_invoice(
        self,
        invoice_id: int,
        actor_id: str,
        **update_data,
    ) -> Invoice:
        """
        Edit invoice fields. Status is never changed here.

        Raises:
            InvoiceNotFoundException: Unknown invoice
            ValidationException: Disallowed field or bad value
            ConflictException: Invoice changed since it was read
        """
        invoice = await self.get_invoice(invoice_id)

        unknown = sorted(set(update_data) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationException(
                f"Fields cannot be edited directly: {', '.join(unknown)}",
                details={"fields": unknown},
            )

        for field in _REQUIRED_FIELDS:
            if field in update_data and update_data[field] is None:
                raise ValidationException(f"{field} cannot be cleared", field=field)

        self._validate_amounts(update_data)
        await self._validate_references(update_data, invoice_id=invoice.id)

        old_values: Dict[str, Any] = {}
        new_values: Dict[str, Any] = {}
        for field, value in update_data.items():
            if getattr(invoice, field) != value:
                old_values[field] = _serialize(getattr(invoice, field))
                new_values[field] = _serialize(value)
                setattr(invoice, field, value)

        if not new_values:
            return invoice

        if "duplicate_of_invoice_id" in new_values:
            invoice.is_potential_duplicate = invoice.duplicate_of_invoice_id is not None
        if PENDING not in (invoice.invoice_number, invoice.vendor_name, invoice.vendor_tax_id) \
                and "requires_manual_review" not in update_data:
            invoice.requires_manual_review = False

        invoice.modified_by = actor_id

        try:
            await self.audit.log_action(
                action=AuditAction.UPDATE,
                entity_type="invoice",
                entity_id=invoice.id,
                actor=actor_id,
                description=f"Updated {', '.join(sorted(new_values))}",
                old_values=old_values,
                new_values=new_values,
            )
            await self.db.commit()
        except StaleDataError as exc:
            await self.db.rollback()
            raise ConflictException(
                message="Invoice was modified by another request. Reload it and try again.",
                resource_type="Invoice",
                code=ErrorCode.VERSION_CONFLICT,
                original_error=exc,
            )
        except Exception:
            await self.db.rollback()
            raise

        return await self.get_invoice(invoice.id)

    async def delete_invoice(self, invoice_id: int, actor_id: str) -> None:
        """
        Delete an invoice with its history, comments and line items.

        Raises:
            InvoiceNotFoundException: Unknown invoice
        """
        invoice = await self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundException(invoice_id)

        file_path = invoice.file_path
        snapshot = {
            "invoice_number": invoice.invoice_number,
            "vendor_name": invoice.vendor_name,
            "status": invoice.status.label,
        }

        await self.db.delete(invoice)
        await self.audit.log_action(
            action=AuditAction.DELETE,
            entity_type="invoice",
            entity_id=invoice_id,
            actor=actor_id,
            description=f"Deleted invoice {snapshot['invoice_number']}",
            old_values=snapshot,
        )
        await self.db.commit()

        if file_path:
            await self.storage.delete(file_path)
        logger.info(f"Invoice {invoice_id} deleted by {actor_id}")
