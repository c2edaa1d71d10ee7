"""
InvoiceFlow - OCR Service

Invoice data extraction from uploaded documents.

Supports:
- Azure Form Recognizer (prebuilt-invoice model)
- Deterministic mock extraction when Azure is not configured

The result is a plain `OcrResult`; nothing here touches the database.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from azure.ai.formrecognizer.aio import DocumentAnalysisClient
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import AzureError

from invoiceflow.config import settings
from invoiceflow.utils.error_handling import ErrorCode, ExternalServiceException


logger = logging.getLogger(__name__)


class OCRProvider(str, Enum):
    """OCR service providers."""
    AZURE_FORM_RECOGNIZER = "azure"
    MOCK = "mock"  # For development/testing


@dataclass
class OcrLineItem:
    """Line item read from an invoice."""
    description: str = ""
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    item_code: Optional[str] = None
    unit: Optional[str] = None
    confidence_score: Optional[float] = None


@dataclass
class OcrResult:
    """Structured fields extracted from one invoice document."""

    # Invoice details
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    invoice_value: Optional[Decimal] = None
    currency: Optional[str] = None

    # Financial
    sub_total: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    tax_rate: Optional[str] = None

    # Vendor
    vendor_name: Optional[str] = None
    vendor_tax_id: Optional[str] = None
    vendor_address: Optional[str] = None
    vendor_phone: Optional[str] = None
    vendor_email: Optional[str] = None

    # Customer
    customer_name: Optional[str] = None
    customer_number: Optional[str] = None
    billing_address: Optional[str] = None
    shipping_address: Optional[str] = None

    # Additional
    purchase_order_number: Optional[str] = None
    payment_terms: Optional[str] = None
    reference_number: Optional[str] = None
    description: Optional[str] = None
    remark: Optional[str] = None

    line_items: List[OcrLineItem] = field(default_factory=list)

    # Processing
    confidence_score: float = 0.0
    field_confidence_scores: Dict[str, float] = field(default_factory=dict)
    raw_text: str = ""
    provider: str = OCRProvider.MOCK.value
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        def _num(value: Optional[Decimal]) -> Optional[str]:
            return str(value) if value is not None else None

        return {
            "invoice_number": self.invoice_number,
            "invoice_date": self.invoice_date.isoformat() if self.invoice_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "invoice_value": _num(self.invoice_value),
            "currency": self.currency,
            "sub_total": _num(self.sub_total),
            "tax_amount": _num(self.tax_amount),
            "total_amount": _num(self.total_amount),
            "vendor_name": self.vendor_name,
            "vendor_tax_id": self.vendor_tax_id,
            "vendor_address": self.vendor_address,
            "customer_name": self.customer_name,
            "purchase_order_number": self.purchase_order_number,
            "reference_number": self.reference_number,
            "line_items": [
                {
                    "description": item.description,
                    "quantity": _num(item.quantity),
                    "unit_price": _num(item.unit_price),
                    "amount": _num(item.amount),
                }
                for item in self.line_items
            ],
            "confidence_score": self.confidence_score,
            "field_confidence_scores": dict(self.field_confidence_scores),
            "provider": self.provider,
            "warnings": list(self.warnings),
        }


@dataclass
class FileMeta:
    """Where an uploaded document was stored."""
    path: str
    name: str
    content_type: str
    size: int


# Azure prebuilt-invoice field name -> OcrResult attribute
_AZURE_TEXT_FIELDS = {
    "InvoiceId": "invoice_number",
    "VendorName": "vendor_name",
    "VendorTaxId": "vendor_tax_id",
    "VendorAddress": "vendor_address",
    "VendorAddressRecipient": "vendor_address",
    "CustomerName": "customer_name",
    "CustomerId": "customer_number",
    "BillingAddress": "billing_address",
    "ShippingAddress": "shipping_address",
    "PurchaseOrder": "purchase_order_number",
    "PaymentTerm": "payment_terms",
}

_AZURE_DATE_FIELDS = {
    "InvoiceDate": "invoice_date",
    "DueDate": "due_date",
}

_AZURE_AMOUNT_FIELDS = {
    "InvoiceTotal": "total_amount",
    "SubTotal": "sub_total",
    "TotalTax": "tax_amount",
    "AmountDue": "invoice_value",
}


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class OcrService:
    """
    OCR service for invoice processing.

    Uses Azure Form Recognizer when endpoint and key are configured,
    and the mock extractor otherwise.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
    ):
        self.azure_endpoint = endpoint if endpoint is not None else settings.azure_form_recognizer_endpoint
        self.azure_key = api_key if api_key is not None else settings.azure_form_recognizer_key
        self.model_id = model_id or settings.azure_form_recognizer_model
        self.provider = self._determine_provider()

    def _determine_provider(self) -> OCRProvider:
        """Determine which OCR provider to use."""
        if self.azure_endpoint and self.azure_key:
            return OCRProvider.AZURE_FORM_RECOGNIZER
        return OCRProvider.MOCK

    async def analyze(
        self,
        file_content: bytes,
        filename: str,
        content_type: str,
    ) -> OcrResult:
        """
        Extract invoice fields from a document.

        Args:
            file_content: The raw file bytes
            filename: Original filename
            content_type: MIME type (application/pdf, image/jpeg, image/png)

        Returns:
            OcrResult with the extracted fields

        Raises:
            ExternalServiceException: If the provider fails
        """
        if self.provider == OCRProvider.AZURE_FORM_RECOGNIZER:
            return await self._analyze_with_azure(file_content, filename)
        return self._analyze_mock(file_content, filename)

    async def _analyze_with_azure(self, file_content: bytes, filename: str) -> OcrResult:
        """Analyze an invoice with the Form Recognizer prebuilt-invoice model."""
        try:
            client = DocumentAnalysisClient(
                endpoint=self.azure_endpoint,
                credential=AzureKeyCredential(self.azure_key),
            )
            async with client:
                poller = await client.begin_analyze_document(self.model_id, document=file_content)
                result = await poller.result()
        except AzureError as e:
            logger.error(f"Azure OCR failed for {filename}: {e}")
            raise ExternalServiceException(
                service_name="Azure Form Recognizer",
                message=f"OCR processing failed: {e}",
                code=ErrorCode.OCR_SERVICE_ERROR,
                original_error=e,
            )

        ocr_result = OcrResult(
            raw_text=result.content or "",
            provider=OCRProvider.AZURE_FORM_RECOGNIZER.value,
        )
        if not result.documents:
            logger.warning(f"Azure OCR found no invoice in {filename}")
            return ocr_result

        document = result.documents[0]
        fields = document.fields
        ocr_result.confidence_score = float(document.confidence or 0.0)

        for azure_name, attribute in _AZURE_TEXT_FIELDS.items():
            doc_field = fields.get(azure_name)
            if doc_field is None or getattr(ocr_result, attribute):
                continue
            value = doc_field.value
            text = value if isinstance(value, str) else doc_field.content
            setattr(ocr_result, attribute, text)
            self._record_confidence(ocr_result, attribute, doc_field)

        for azure_name, attribute in _AZURE_DATE_FIELDS.items():
            doc_field = fields.get(azure_name)
            if doc_field is None:
                continue
            value = doc_field.value
            setattr(ocr_result, attribute, value.date() if isinstance(value, datetime) else value)
            self._record_confidence(ocr_result, attribute, doc_field)

        for azure_name, attribute in _AZURE_AMOUNT_FIELDS.items():
            doc_field = fields.get(azure_name)
            if doc_field is None or doc_field.value is None:
                continue
            amount = getattr(doc_field.value, "amount", doc_field.value)
            setattr(ocr_result, attribute, _to_decimal(amount))
            self._record_confidence(ocr_result, attribute, doc_field)
            currency = getattr(doc_field.value, "currency_code", None) or getattr(doc_field.value, "symbol", None)
            if currency and not ocr_result.currency:
                ocr_result.currency = currency

        items_field = fields.get("Items")
        if items_field is not None and items_field.value:
            for item in items_field.value:
                item_fields = item.value or {}
                ocr_result.line_items.append(OcrLineItem(
                    description=self._field_text(item_fields.get("Description")) or "",
                    quantity=_to_decimal(self._field_value(item_fields.get("Quantity"))),
                    unit_price=_to_decimal(self._field_amount(item_fields.get("UnitPrice"))),
                    amount=_to_decimal(self._field_amount(item_fields.get("Amount"))),
                    item_code=self._field_text(item_fields.get("ProductCode")),
                    unit=self._field_text(item_fields.get("Unit")),
                    confidence_score=item.confidence,
                ))

        return ocr_result

    @staticmethod
    def _record_confidence(ocr_result: OcrResult, attribute: str, doc_field: Any) -> None:
        if doc_field.confidence is not None:
            ocr_result.field_confidence_scores[attribute] = float(doc_field.confidence)

    @staticmethod
    def _field_value(doc_field: Any) -> Any:
        return doc_field.value if doc_field is not None else None

    @staticmethod
    def _field_amount(doc_field: Any) -> Any:
        if doc_field is None or doc_field.value is None:
            return None
        return getattr(doc_field.value, "amount", doc_field.value)

    @staticmethod
    def _field_text(doc_field: Any) -> Optional[str]:
        if doc_field is None:
            return None
        if isinstance(doc_field.value, str):
            return doc_field.value
        return doc_field.content

    def _analyze_mock(self, file_content: bytes, filename: str) -> OcrResult:
        """
        Mock extraction for development.

        Output depends only on the file bytes, so uploading the same file
        twice yields the same invoice number.
        """
        digest = hashlib.sha256(file_content).hexdigest()
        seed = int(digest[:8], 16)

        sub_total = Decimal(1000 + seed % 49000).quantize(Decimal("0.01"))
        tax_amount = (sub_total * Decimal("0.05")).quantize(Decimal("0.01"))
        total = sub_total + tax_amount
        today = date.today()

        first = (sub_total * Decimal("0.6")).quantize(Decimal("0.01"))
        second = sub_total - first

        return OcrResult(
            invoice_number=f"INV-{digest[:8].upper()}",
            invoice_date=today,
            due_date=today + timedelta(days=30),
            currency="QAR",
            sub_total=sub_total,
            tax_amount=tax_amount,
            total_amount=total,
            vendor_name="Mock Supplies Trading W.L.L.",
            vendor_tax_id=f"TAX{seed % 1000000:06d}",
            vendor_address="PO Box 1234, Doha, Qatar",
            description=f"Extracted from {filename}",
            line_items=[
                OcrLineItem(description="Consulting services", quantity=Decimal("1"), unit_price=first, amount=first),
                OcrLineItem(description="Materials", quantity=Decimal("2"), unit_price=second / 2, amount=second),
            ],
            confidence_score=0.85,
            field_confidence_scores={
                "invoice_number": 0.9,
                "vendor_name": 0.88,
                "total_amount": 0.92,
            },
            raw_text=f"Mock OCR text for {filename}",
            provider=OCRProvider.MOCK.value,
        )
