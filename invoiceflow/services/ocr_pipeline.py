"""
InvoiceFlow - OCR Pre-processing

Cleans a raw OcrResult before it is mapped to an invoice:
- invoice numbers lose printed prefixes ("INV", "No.", "#") and punctuation
- company names get collapsed whitespace
- amounts are rounded to the currency's minor units
- missing totals and line-item figures are derived where possible
- inconsistencies are collected as warnings, never raised

Confidence scores pass through untouched.
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from invoiceflow.models.invoice import CurrencyType
from invoiceflow.services.ocr_service import OcrLineItem, OcrResult


logger = logging.getLogger(__name__)

_INVOICE_PREFIX = re.compile(r"^(?:INVOICE|INV|NO|NUM|#)\s*[:.\-]?\s*", re.IGNORECASE)
_INVOICE_JUNK = re.compile(r"[^\w\-]")
_WHITESPACE = re.compile(r"\s+")
_LINE_SUFFIX = re.compile(r"\s*(?:per unit|each)\.?$", re.IGNORECASE)

_TOTAL_TOLERANCE = Decimal("0.01")


def normalize_invoice_number(value: Optional[str]) -> Optional[str]:
    """Strip printed prefixes and stray characters; None if nothing is left."""
    if not value:
        return None
    cleaned = _INVOICE_PREFIX.sub("", value.strip())
    cleaned = _INVOICE_JUNK.sub("", cleaned).strip()
    return cleaned or None


def normalize_company_name(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    cleaned = _WHITESPACE.sub(" ", value).strip()
    return cleaned or None


def round_amount(amount: Optional[Decimal], currency: Optional[CurrencyType]) -> Optional[Decimal]:
    """Round to the currency's minor units (two places when unknown)."""
    if amount is None:
        return None
    decimals = currency.decimals if currency is not None else 2
    return amount.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


class OcrPreprocessor:
    """Normalisation pass run on every OCR result before mapping."""

    def process(self, result: OcrResult) -> OcrResult:
        currency = CurrencyType.parse(result.currency)

        result.invoice_number = normalize_invoice_number(result.invoice_number)
        result.vendor_name = normalize_company_name(result.vendor_name)
        result.customer_name = normalize_company_name(result.customer_name)
        if result.vendor_tax_id:
            result.vendor_tax_id = result.vendor_tax_id.strip() or None

        if result.total_amount is None and result.sub_total is not None and result.tax_amount is not None:
            result.total_amount = result.sub_total + result.tax_amount

        result.invoice_value = round_amount(result.invoice_value, currency)
        result.sub_total = round_amount(result.sub_total, currency)
        result.tax_amount = round_amount(result.tax_amount, currency)
        result.total_amount = round_amount(result.total_amount, currency)

        for item in result.line_items:
            self._complete_line_item(item)
            item.amount = round_amount(item.amount, currency)
            item.unit_price = round_amount(item.unit_price, currency)

        self._validate(result)

        if result.warnings:
            logger.info(
                f"OCR result for invoice {result.invoice_number or '<unknown>'} has "
                f"{len(result.warnings)} warning(s): {'; '.join(result.warnings)}"
            )
        return result

    @staticmethod
    def _complete_line_item(item: OcrLineItem) -> None:
        """Fill one missing figure from the other two."""
        quantity, unit_price, amount = item.quantity, item.unit_price, item.amount

        if not amount and quantity and unit_price and quantity > 0 and unit_price > 0:
            item.amount = quantity * unit_price
        elif not unit_price and quantity and amount and quantity > 0 and amount > 0:
            item.unit_price = amount / quantity
        elif not quantity and unit_price and amount and unit_price > 0 and amount > 0:
            item.quantity = amount / unit_price

        if item.description:
            item.description = _WHITESPACE.sub(" ", _LINE_SUFFIX.sub("", item.description)).strip()

    @staticmethod
    def _validate(result: OcrResult) -> None:
        warnings = result.warnings

        if not result.invoice_number:
            warnings.append("Invoice number was not extracted")
        if not result.vendor_name:
            warnings.append("Vendor name was not extracted")
        if result.invoice_value is None and result.total_amount is None:
            warnings.append("Invoice amount was not extracted")
        if result.currency and CurrencyType.parse(result.currency) is None:
            warnings.append(f"Unsupported currency '{result.currency}'")

        if result.invoice_date and result.due_date and result.due_date < result.invoice_date:
            warnings.append("Due date is before invoice date")

        if None not in (result.sub_total, result.tax_amount, result.total_amount):
            if abs(result.sub_total + result.tax_amount - result.total_amount) > _TOTAL_TOLERANCE:
                warnings.append("Total amount does not match subtotal + tax")

        # Line items may be priced before or after tax
        references = [value for value in (result.sub_total, result.total_amount) if value]
        if result.line_items and references:
            line_total = sum((item.amount or Decimal("0")) for item in result.line_items)
            if all(abs(line_total - ref) > abs(ref) * Decimal("0.01") for ref in references):
                warnings.append(
                    f"Line items total {line_total} differs from invoice total {references[-1]}"
                )
