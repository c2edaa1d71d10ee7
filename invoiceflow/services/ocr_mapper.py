"""
InvoiceFlow - OCR Invoice Mapper

Turns an OcrResult into an unsaved Invoice in SUBMITTED status.
"""

import logging
from decimal import Decimal
from typing import Optional

from invoiceflow.models.invoice import CurrencyType, Invoice, InvoiceLineItem, InvoiceStatus
from invoiceflow.services.ocr_service import FileMeta, OcrResult
from invoiceflow.utils.error_handling import InvalidAmountException


logger = logging.getLogger(__name__)

# Stored in required text fields OCR could not read
PENDING = "PENDING"


def _text_or_pending(value: Optional[str]) -> str:
    if value is None or not value.strip():
        return PENDING
    return value.strip()


def _check_not_negative(value: Optional[Decimal], field: str) -> None:
    if value is not None and value < 0:
        raise InvalidAmountException(value, field=field)


class OcrInvoiceMapper:
    """
    Maps OCR output onto the Invoice model.

    Missing identification fields become "PENDING" and flag the invoice
    for manual review. Negative amounts are rejected outright.
    """

    def map_to_invoice(
        self,
        ocr_result: OcrResult,
        created_by: str,
        file_meta: Optional[FileMeta] = None,
    ) -> Invoice:
        """
        Build an Invoice from an OCR result.

        Raises:
            InvalidAmountException: If any extracted amount is negative
        """
        invoice_value = (
            ocr_result.total_amount
            if ocr_result.total_amount is not None
            else ocr_result.invoice_value
        )

        _check_not_negative(invoice_value, "invoice_value")
        _check_not_negative(ocr_result.sub_total, "sub_total")
        _check_not_negative(ocr_result.tax_amount, "tax_amount")
        for index, item in enumerate(ocr_result.line_items):
            _check_not_negative(item.amount, f"line_items[{index}].amount")
            _check_not_negative(item.unit_price, f"line_items[{index}].unit_price")
            _check_not_negative(item.quantity, f"line_items[{index}].quantity")

        invoice_number = _text_or_pending(ocr_result.invoice_number)
        vendor_name = _text_or_pending(ocr_result.vendor_name)
        vendor_tax_id = _text_or_pending(ocr_result.vendor_tax_id)
        requires_review = PENDING in (invoice_number, vendor_name, vendor_tax_id)

        currency = CurrencyType.parse(ocr_result.currency)
        if ocr_result.currency and currency is None:
            logger.info(f"Unrecognised currency '{ocr_result.currency}' left empty on invoice {invoice_number}")

        invoice = Invoice(
            invoice_number=invoice_number,
            invoice_date=ocr_result.invoice_date,
            due_date=ocr_result.due_date,
            invoice_value=invoice_value,
            sub_total=ocr_result.sub_total,
            tax_amount=ocr_result.tax_amount,
            currency=currency,
            status=InvoiceStatus.SUBMITTED,
            vendor_name=vendor_name,
            vendor_tax_id=vendor_tax_id,
            vendor_address=ocr_result.vendor_address,
            description=ocr_result.description,
            purchase_order_number=ocr_result.purchase_order_number,
            reference_number=ocr_result.reference_number,
            payment_terms=ocr_result.payment_terms,
            remark="; ".join(ocr_result.warnings) if ocr_result.warnings else ocr_result.remark,
            ocr_confidence=ocr_result.confidence_score,
            field_confidence_scores=dict(ocr_result.field_confidence_scores),
            ocr_raw_text=ocr_result.raw_text,
            requires_manual_review=requires_review,
            is_potential_duplicate=False,
            created_by=created_by,
            line_items=[
                InvoiceLineItem(
                    description=item.description or "",
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    amount=item.amount,
                    item_code=item.item_code,
                    unit=item.unit,
                    confidence_score=item.confidence_score,
                    sort_order=index,
                )
                for index, item in enumerate(ocr_result.line_items)
            ],
        )

        if file_meta is not None:
            invoice.file_path = file_meta.path
            invoice.file_name = file_meta.name
            invoice.file_type = file_meta.content_type
            invoice.file_size = file_meta.size

        return invoice
