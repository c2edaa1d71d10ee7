"""
InvoiceFlow - Invoice Service Tests

Manual entry, OCR ingestion, editing, duplicates and deletion.
"""

from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from invoiceflow.models.audit import AuditAction, AuditLog
from invoiceflow.models.invoice import CurrencyType, InvoiceStatus
from invoiceflow.models.status_history import StatusHistory
from invoiceflow.services.invoice_service import InvoiceService
from invoiceflow.services.ocr_mapper import PENDING
from invoiceflow.services.ocr_service import OcrResult, OcrService
from invoiceflow.services.workflow_engine import InvoiceWorkflowEngine
from invoiceflow.utils.error_handling import (
    ExternalServiceException,
    InvalidAmountException,
    InvoiceNotFoundException,
    NotFoundException,
    ValidationException,
)


def _invoice_data(**overrides):
    data = {
        "invoice_number": "INV-2001",
        "invoice_value": Decimal("525.00"),
        "sub_total": Decimal("500.00"),
        "tax_amount": Decimal("25.00"),
        "currency": CurrencyType.USD,
        "vendor_name": "Acme Trading",
        "vendor_tax_id": "TX-99",
        "line_items": [
            {"description": "Paper", "quantity": Decimal("5"), "unit_price": Decimal("100"), "amount": Decimal("500")},
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def service_factory(file_storage):
    def factory(db_session, ocr_service=None):
        return InvoiceService(
            db_session,
            engine=InvoiceWorkflowEngine(db_session),
            ocr_service=ocr_service or OcrService(endpoint="", api_key=""),
            storage=file_storage,
        )
    return factory


class StubOcrService:
    """Returns a fixed result instead of reading the document."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    async def analyze(self, file_content, filename, content_type):
        if self.error is not None:
            raise self.error
        return self.result


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_submits_with_line_items(self, db_session, service_factory, secretary):
        service = service_factory(db_session)

        invoice = await service.create_invoice(_invoice_data(), actor_id=secretary.actor_id, comment="Entered")

        assert invoice.status == InvoiceStatus.SUBMITTED
        assert invoice.created_by == secretary.email
        assert [item.description for item in invoice.line_items] == ["Paper"]

        history = (await db_session.execute(
            select(StatusHistory).where(StatusHistory.invoice_id == invoice.id)
        )).scalars().all()
        assert len(history) == 1
        assert history[0].comments == "Entered"

    @pytest.mark.asyncio
    async def test_negative_line_item_rejected(self, db_session, service_factory, secretary):
        service = service_factory(db_session)
        data = _invoice_data(line_items=[{"description": "Credit", "amount": Decimal("-10")}])

        with pytest.raises(InvalidAmountException):
            await service.create_invoice(data, actor_id=secretary.actor_id)

    @pytest.mark.asyncio
    async def test_unknown_vendor_rejected(self, db_session, service_factory, secretary):
        service = service_factory(db_session)

        with pytest.raises(NotFoundException):
            await service.create_invoice(_invoice_data(vendor_id=404), actor_id=secretary.actor_id)

    @pytest.mark.asyncio
    async def test_duplicate_is_flagged(self, db_session, service_factory, secretary):
        service = service_factory(db_session)
        first = await service.create_invoice(_invoice_data(), actor_id=secretary.actor_id)

        second = await service.create_invoice(
            _invoice_data(invoice_number="inv 2001", vendor_name="ACME TRADING"),
            actor_id=secretary.actor_id,
        )

        assert second.is_potential_duplicate is True
        assert second.duplicate_of_invoice_id == first.id

    @pytest.mark.asyncio
    async def test_other_vendor_is_not_a_duplicate(self, db_session, service_factory, secretary):
        service = service_factory(db_session)
        await service.create_invoice(_invoice_data(), actor_id=secretary.actor_id)

        other = await service.create_invoice(_invoice_data(vendor_name="Beta LLC"), actor_id=secretary.actor_id)

        assert other.is_potential_duplicate is False


class TestIngest:

    @pytest.mark.asyncio
    async def test_upload_with_mock_ocr(self, db_session, service_factory, secretary, file_storage):
        service = service_factory(db_session)

        invoice = await service.ingest_from_ocr(b"%PDF-1.4 scan", "scan.pdf", "application/pdf", secretary.actor_id)

        assert invoice.status == InvoiceStatus.SUBMITTED
        assert invoice.currency == CurrencyType.QAR
        assert invoice.ocr_confidence == 0.85
        assert invoice.file_name == "scan.pdf"
        assert file_storage.resolve(invoice.file_path).exists()
        assert len(invoice.line_items) == 2

        actions = (await db_session.execute(
            select(AuditLog.action).where(AuditLog.target_entity_id == str(invoice.id))
        )).scalars().all()
        assert AuditAction.UPLOAD in actions

    @pytest.mark.asyncio
    async def test_missing_fields_need_review(self, db_session, service_factory, secretary):
        ocr = StubOcrService(OcrResult(total_amount=Decimal("10.00"), currency="USD"))
        service = service_factory(db_session, ocr_service=ocr)

        invoice = await service.ingest_from_ocr(b"img", "photo.png", "image/png", secretary.actor_id)

        assert invoice.invoice_number == PENDING
        assert invoice.vendor_name == PENDING
        assert invoice.requires_manual_review is True
        assert "Invoice number was not extracted" in invoice.remark

    @pytest.mark.asyncio
    async def test_unsupported_file_type(self, db_session, service_factory, secretary):
        service = service_factory(db_session)

        with pytest.raises(ValidationException):
            await service.ingest_from_ocr(b"hello", "notes.txt", "text/plain", secretary.actor_id)

    @pytest.mark.asyncio
    async def test_ocr_failure_stores_nothing(self, db_session, service_factory, secretary, file_storage):
        ocr = StubOcrService(error=ExternalServiceException(service_name="Azure Form Recognizer", message="down"))
        service = service_factory(db_session, ocr_service=ocr)

        with pytest.raises(ExternalServiceException):
            await service.ingest_from_ocr(b"%PDF", "scan.pdf", "application/pdf", secretary.actor_id)

        invoices, total = await service.list_invoices()
        assert total == 0
        assert not any(Path(file_storage.local_storage_path).rglob("*.pdf"))

    @pytest.mark.asyncio
    async def test_negative_extracted_amount_stores_nothing(self, db_session, service_factory, secretary):
        ocr = StubOcrService(OcrResult(invoice_number="X1", vendor_name="V", vendor_tax_id="T", total_amount=Decimal("-5")))
        service = service_factory(db_session, ocr_service=ocr)

        with pytest.raises(InvalidAmountException):
            await service.ingest_from_ocr(b"%PDF", "scan.pdf", "application/pdf", secretary.actor_id)

        _, total = await service.list_invoices()
        assert total == 0


class TestUpdate:

    @pytest.mark.asyncio
    async def test_filling_pending_fields_clears_review_flag(self, db_session, service_factory, secretary):
        ocr = StubOcrService(OcrResult(vendor_name="Known Vendor", vendor_tax_id="T-1", total_amount=Decimal("5")))
        service = service_factory(db_session, ocr_service=ocr)
        invoice = await service.ingest_from_ocr(b"img", "a.png", "image/png", secretary.actor_id)
        assert invoice.requires_manual_review is True
        version_before = invoice.version

        updated = await service.update_invoice(invoice.id, secretary.actor_id, invoice_number="A-77")

        assert updated.invoice_number == "A-77"
        assert updated.requires_manual_review is False
        assert updated.version == version_before + 1

    @pytest.mark.asyncio
    async def test_status_cannot_be_edited(self, db_session, service_factory, submitted_invoice, secretary):
        service = service_factory(db_session)

        with pytest.raises(ValidationException):
            await service.update_invoice(submitted_invoice.id, secretary.actor_id, status=InvoiceStatus.COMPLETED)

    @pytest.mark.asyncio
    async def test_cannot_mark_itself_as_duplicate(self, db_session, service_factory, submitted_invoice, secretary):
        service = service_factory(db_session)

        with pytest.raises(ValidationException):
            await service.update_invoice(
                submitted_invoice.id, secretary.actor_id, duplicate_of_invoice_id=submitted_invoice.id,
            )

    @pytest.mark.asyncio
    async def test_update_is_audited_with_diff(self, db_session, service_factory, submitted_invoice, secretary):
        service = service_factory(db_session)
        await service.update_invoice(submitted_invoice.id, secretary.actor_id, remark="Checked", vendor_name="Gulf Office Supplies")

        log = (await db_session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.UPDATE)
        )).scalar_one()
        assert log.old_values == {"remark": None}
        assert log.new_values == {"remark": "Checked"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["invoice_number", "vendor_name", "vendor_tax_id", "requires_manual_review"])
    async def test_required_field_cannot_be_cleared(self, db_session, service_factory, submitted_invoice, secretary, field):
        service = service_factory(db_session)

        with pytest.raises(ValidationException) as exc_info:
            await service.update_invoice(submitted_invoice.id, secretary.actor_id, **{field: None})

        assert exc_info.value.field == field
        invoice = await service.get_invoice(submitted_invoice.id)
        assert invoice.vendor_name == "Gulf Office Supplies"
        assert invoice.version == 1

    @pytest.mark.asyncio
    async def test_failed_commit_rolls_back(self, db_session, service_factory, submitted_invoice, secretary, monkeypatch):
        service = service_factory(db_session)
        rollbacks = []
        real_rollback = db_session.rollback

        async def failing_commit():
            raise SQLAlchemyError("disk I/O error")

        async def tracking_rollback():
            rollbacks.append(True)
            await real_rollback()

        monkeypatch.setattr(db_session, "commit", failing_commit)
        monkeypatch.setattr(db_session, "rollback", tracking_rollback)

        with pytest.raises(SQLAlchemyError):
            await service.update_invoice(submitted_invoice.id, secretary.actor_id, remark="Lost")

        assert rollbacks == [True]
        invoice = await service.get_invoice(submitted_invoice.id)
        assert invoice.remark is None
        audit_rows = (await db_session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.UPDATE)
        )).scalars().all()
        assert audit_rows == []


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_removes_invoice_and_file(self, db_session, service_factory, secretary, file_storage):
        service = service_factory(db_session)
        invoice = await service.ingest_from_ocr(b"%PDF-1.4 x", "x.pdf", "application/pdf", secretary.actor_id)
        stored = file_storage.resolve(invoice.file_path)

        await service.delete_invoice(invoice.id, secretary.actor_id)

        with pytest.raises(InvoiceNotFoundException):
            await service.get_invoice(invoice.id)
        assert not stored.exists()
        remaining = (await db_session.execute(
            select(StatusHistory).where(StatusHistory.invoice_id == invoice.id)
        )).scalars().all()
        assert remaining == []


class TestList:

    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, db_session, service_factory, secretary):
        service = service_factory(db_session)
        for number in ("A-1", "A-2", "A-3"):
            await service.create_invoice(
                _invoice_data(invoice_number=number, vendor_name=f"Vendor {number}"),
                actor_id=secretary.actor_id,
            )

        page, total = await service.list_invoices(page=1, page_size=2)
        assert total == 3
        assert len(page) == 2

        found, total = await service.list_invoices(search="A-2")
        assert total == 1
        assert found[0].invoice_number == "A-2"

        submitted, _ = await service.list_invoices(status=InvoiceStatus.SUBMITTED)
        assert len(submitted) == 3
        approved, _ = await service.list_invoices(status=InvoiceStatus.APPROVED)
        assert approved == []
