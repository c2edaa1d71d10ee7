"""
InvoiceFlow - OCR Tests

Mock extraction, pre-processing and mapping onto the Invoice model.
"""

from datetime import date
from decimal import Decimal

import pytest

from invoiceflow.models.invoice import CurrencyType, InvoiceStatus
from invoiceflow.services.ocr_mapper import PENDING, OcrInvoiceMapper
from invoiceflow.services.ocr_pipeline import (
    OcrPreprocessor,
    normalize_company_name,
    normalize_invoice_number,
    round_amount,
)
from invoiceflow.services.ocr_service import FileMeta, OCRProvider, OcrLineItem, OcrResult, OcrService
from invoiceflow.utils.error_handling import ErrorCode, InvalidAmountException


def _complete_result(**overrides) -> OcrResult:
    values = dict(
        invoice_number="INV-2026-0042",
        invoice_date=date(2026, 3, 1),
        due_date=date(2026, 3, 31),
        currency="QAR",
        sub_total=Decimal("2000.00"),
        tax_amount=Decimal("100.00"),
        total_amount=Decimal("2100.00"),
        vendor_name="Doha Build Co",
        vendor_tax_id="TAX-1234",
        line_items=[
            OcrLineItem(description="Cement", quantity=Decimal("10"), unit_price=Decimal("200"), amount=Decimal("2000")),
        ],
        confidence_score=0.91,
        field_confidence_scores={"invoice_number": 0.97, "vendor_name": 0.8},
    )
    values.update(overrides)
    return OcrResult(**values)


class TestMapper:

    def test_maps_complete_result(self):
        invoice = OcrInvoiceMapper().map_to_invoice(_complete_result(), created_by="sec@example.com")

        assert invoice.status == InvoiceStatus.SUBMITTED
        assert invoice.invoice_number == "INV-2026-0042"
        assert invoice.invoice_value == Decimal("2100.00")
        assert invoice.currency == CurrencyType.QAR
        assert invoice.requires_manual_review is False
        assert invoice.created_by == "sec@example.com"
        assert len(invoice.line_items) == 1
        assert invoice.line_items[0].sort_order == 0

    def test_confidence_scores_are_copied(self):
        invoice = OcrInvoiceMapper().map_to_invoice(_complete_result(), created_by="x")

        assert invoice.ocr_confidence == 0.91
        assert invoice.field_confidence_scores == {"invoice_number": 0.97, "vendor_name": 0.8}

    @pytest.mark.parametrize("field", ["invoice_number", "vendor_name", "vendor_tax_id"])
    def test_missing_required_text_becomes_pending(self, field):
        invoice = OcrInvoiceMapper().map_to_invoice(_complete_result(**{field: "  "}), created_by="x")

        assert getattr(invoice, field) == PENDING
        assert invoice.requires_manual_review is True

    def test_invoice_value_falls_back_when_total_missing(self):
        result = _complete_result(total_amount=None, invoice_value=Decimal("1999.00"))
        invoice = OcrInvoiceMapper().map_to_invoice(result, created_by="x")
        assert invoice.invoice_value == Decimal("1999.00")

    @pytest.mark.parametrize("overrides", [
        {"total_amount": Decimal("-1")},
        {"tax_amount": Decimal("-0.01")},
        {"line_items": [OcrLineItem(description="Refund", amount=Decimal("-5"))]},
    ])
    def test_negative_amounts_are_rejected(self, overrides):
        with pytest.raises(InvalidAmountException) as exc_info:
            OcrInvoiceMapper().map_to_invoice(_complete_result(**overrides), created_by="x")
        assert exc_info.value.code == ErrorCode.INVALID_AMOUNT

    def test_unrecognised_currency_is_left_empty(self):
        invoice = OcrInvoiceMapper().map_to_invoice(_complete_result(currency="XYZ"), created_by="x")
        assert invoice.currency is None

    def test_file_meta_is_attached(self):
        meta = FileMeta(path="invoices/2026/03/abc_scan.pdf", name="scan.pdf", content_type="application/pdf", size=1234)
        invoice = OcrInvoiceMapper().map_to_invoice(_complete_result(), created_by="x", file_meta=meta)

        assert invoice.file_path == meta.path
        assert invoice.file_name == "scan.pdf"
        assert invoice.file_size == 1234


class TestCurrencyParsing:

    @pytest.mark.parametrize("raw,expected", [
        ("QAR", CurrencyType.QAR),
        ("usd", CurrencyType.USD),
        ("$", CurrencyType.USD),
        ("€", CurrencyType.EUR),
        ("ر.ق", CurrencyType.QAR),
        ("", None),
        (None, None),
        ("Dogecoin", None),
        (" us$ ", CurrencyType.USD),
    ])
    def test_parse(self, raw, expected):
        assert CurrencyType.parse(raw) == expected

    @pytest.mark.parametrize("raw", ["CA$", "A$", "HK$", "CNY ¥", "USDT", "EURO-ish XEUR"])
    def test_other_currencies_are_not_mistaken_for_supported_ones(self, raw):
        assert CurrencyType.parse(raw) is None

        invoice = OcrInvoiceMapper().map_to_invoice(_complete_result(currency=raw), created_by="x")
        assert invoice.currency is None


class TestPreprocessor:

    @pytest.mark.parametrize("raw,expected", [
        ("INV-00123", "00123"),
        ("Invoice: 7781", "7781"),
        ("#A-55", "A-55"),
        ("  ", None),
        (None, None),
    ])
    def test_normalize_invoice_number(self, raw, expected):
        assert normalize_invoice_number(raw) == expected

    def test_normalize_company_name(self):
        assert normalize_company_name("  Gulf   Office\nSupplies ") == "Gulf Office Supplies"

    def test_rounding_follows_currency(self):
        assert round_amount(Decimal("1.23456"), CurrencyType.KWD) == Decimal("1.235")
        assert round_amount(Decimal("1.005"), CurrencyType.USD) == Decimal("1.01")
        assert round_amount(Decimal("99.5"), CurrencyType.JPY) == Decimal("100")
        assert round_amount(Decimal("1.234"), None) == Decimal("1.23")

    def test_derives_total_from_subtotal_and_tax(self):
        result = OcrPreprocessor().process(_complete_result(total_amount=None))
        assert result.total_amount == Decimal("2100.00")

    def test_completes_line_item_amount(self):
        result = OcrPreprocessor().process(_complete_result(
            line_items=[OcrLineItem(description="Steel each", quantity=Decimal("4"), unit_price=Decimal("500"))],
        ))
        item = result.line_items[0]
        assert item.amount == Decimal("2000.00")
        assert item.description == "Steel"

    def test_consistent_result_has_no_warnings(self):
        result = OcrPreprocessor().process(_complete_result())
        assert result.warnings == []

    def test_mismatched_totals_warn(self):
        result = OcrPreprocessor().process(_complete_result(total_amount=Decimal("2500.00")))
        assert "Total amount does not match subtotal + tax" in result.warnings

    def test_due_before_invoice_date_warns(self):
        result = OcrPreprocessor().process(_complete_result(due_date=date(2026, 2, 1)))
        assert "Due date is before invoice date" in result.warnings

    def test_confidence_passes_through(self):
        result = OcrPreprocessor().process(_complete_result())
        assert result.confidence_score == 0.91
        assert result.field_confidence_scores["invoice_number"] == 0.97

    def test_warnings_end_up_in_remark(self):
        processed = OcrPreprocessor().process(_complete_result(invoice_number=None))
        invoice = OcrInvoiceMapper().map_to_invoice(processed, created_by="x")

        assert invoice.invoice_number == PENDING
        assert "Invoice number was not extracted" in invoice.remark


class TestMockProvider:

    def test_without_credentials_uses_mock(self):
        assert OcrService(endpoint="", api_key="").provider == OCRProvider.MOCK

    def test_with_credentials_uses_azure(self):
        service = OcrService(endpoint="https://example.cognitiveservices.azure.com/", api_key="key")
        assert service.provider == OCRProvider.AZURE_FORM_RECOGNIZER

    @pytest.mark.asyncio
    async def test_mock_is_deterministic(self):
        service = OcrService(endpoint="", api_key="")
        first = await service.analyze(b"%PDF-1.4 sample", "a.pdf", "application/pdf")
        second = await service.analyze(b"%PDF-1.4 sample", "b.pdf", "application/pdf")
        other = await service.analyze(b"%PDF-1.4 different", "a.pdf", "application/pdf")

        assert first.invoice_number == second.invoice_number
        assert first.invoice_number != other.invoice_number
        assert first.total_amount == first.sub_total + first.tax_amount
