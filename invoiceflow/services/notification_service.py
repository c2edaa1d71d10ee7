"""
InvoiceFlow - Workflow Notifications

Emails sent after an invoice changes status:

    UnderReview -> Head (ready for approval)
    Approved    -> Procurement (ready for processing)
    PMOReview   -> PMO (ready for final review)
    Completed / Rejected -> the submitter
"""

import html
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from invoiceflow.config import settings
from invoiceflow.models.invoice import Invoice, InvoiceStatus
from invoiceflow.services.email_service import EmailMessage, EmailService
from invoiceflow.utils.error_handling import ErrorCode, ExternalServiceException

logger = logging.getLogger(__name__)


@dataclass
class NotificationRecipients:
    head: str
    pmo: str
    procurement: str

    @classmethod
    def from_settings(cls) -> "NotificationRecipients":
        return cls(
            head=settings.head_email,
            pmo=settings.pmo_email,
            procurement=settings.procurement_email,
        )


def _format_amount(invoice: Invoice) -> str:
    if invoice.invoice_value is None:
        return "not extracted"
    currency = invoice.currency.value if invoice.currency is not None else ""
    return f"{currency} {invoice.invoice_value:,}".strip()


class WorkflowNotifier:
    """
    Renders and sends status-change emails.

    Instances are awaitable callbacks with the signature the workflow
    engine expects. A failed send raises ExternalServiceException; the
    engine logs it and carries on.
    """

    def __init__(
        self,
        email_service: Optional[EmailService] = None,
        recipients: Optional[NotificationRecipients] = None,
        base_url: Optional[str] = None,
    ):
        self.email_service = email_service or EmailService()
        self.recipients = recipients or NotificationRecipients.from_settings()
        self.base_url = (base_url or settings.base_url).rstrip("/")

    def _invoice_link(self, invoice: Invoice) -> str:
        return f"{self.base_url}/invoices/{invoice.id}"

    def _recipients_for(self, invoice: Invoice, new_status: InvoiceStatus) -> List[str]:
        routing: Dict[InvoiceStatus, List[str]] = {
            InvoiceStatus.UNDER_REVIEW: [self.recipients.head],
            InvoiceStatus.APPROVED: [self.recipients.procurement],
            InvoiceStatus.PMO_REVIEW: [self.recipients.pmo],
        }
        if new_status in (InvoiceStatus.COMPLETED, InvoiceStatus.REJECTED):
            submitter = invoice.created_by
            return [submitter] if submitter and "@" in submitter else []
        return [address for address in routing.get(new_status, []) if address]

    def build_message(
        self,
        invoice: Invoice,
        new_status: InvoiceStatus,
        actor_id: str,
        comment: Optional[str] = None,
    ) -> Optional[EmailMessage]:
        """The email for this status change, or None when nobody is notified."""
        to = self._recipients_for(invoice, new_status)
        if not to:
            return None

        subjects = {
            InvoiceStatus.UNDER_REVIEW: f"Invoice Ready for Approval - #{invoice.invoice_number}",
            InvoiceStatus.APPROVED: f"Approved Invoice Ready for Processing - #{invoice.invoice_number}",
            InvoiceStatus.PMO_REVIEW: f"Invoice Awaiting PMO Review - #{invoice.invoice_number}",
            InvoiceStatus.COMPLETED: f"Invoice Completed - #{invoice.invoice_number}",
            InvoiceStatus.REJECTED: f"Invoice Rejected - #{invoice.invoice_number}",
        }

        lines = [
            f"Invoice #{invoice.invoice_number} from {invoice.vendor_name} is now {new_status.label}.",
            "",
            f"Amount: {_format_amount(invoice)}",
            f"Updated by: {actor_id}",
        ]
        if comment:
            lines.append(f"Comment: {comment}")
        lines.extend(["", f"View invoice: {self._invoice_link(invoice)}"])
        body_text = "\n".join(lines)

        # Invoice fields come from OCR or user input
        esc = html.escape
        body_html = (
            f"<h2>Invoice #{esc(invoice.invoice_number)}</h2>"
            f"<p>Invoice from <strong>{esc(invoice.vendor_name)}</strong> is now "
            f"<strong>{new_status.label}</strong>.</p>"
            f"<p>Amount: {esc(_format_amount(invoice))}<br>Updated by: {esc(actor_id)}</p>"
            + (f"<p>Comment: {esc(comment)}</p>" if comment else "")
            + f'<p><a href="{esc(self._invoice_link(invoice))}">View invoice</a></p>'
        )

        return EmailMessage(
            to=to,
            subject=subjects[new_status],
            body_text=body_text,
            body_html=body_html,
        )

    async def __call__(
        self,
        invoice: Invoice,
        previous_status: Optional[InvoiceStatus],
        new_status: InvoiceStatus,
        actor_id: str,
        comment: Optional[str] = None,
    ) -> None:
        message = self.build_message(invoice, new_status, actor_id, comment)
        if message is None:
            return

        sent = await self.email_service.send_email(message)
        if not sent:
            raise ExternalServiceException(
                service_name="Email",
                message=f"Could not send '{message.subject}' to {', '.join(message.to)}",
                code=ErrorCode.EMAIL_SERVICE_ERROR,
            )
        logger.info(f"Notified {message.to} about invoice {invoice.id} ({new_status.label})")
