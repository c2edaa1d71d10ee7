"""
InvoiceFlow - Invoice Workflow Engine

Moves invoices between statuses.

Each transition checks the status policy, updates the invoice, and
appends a ledger entry and an audit row in one transaction. The invoice
row is version-counted, so two requests that read the same version
cannot both commit: the loser gets ConflictException and should reload
and retry. Notifications go out after commit and can never fail the
transition.
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from invoiceflow.models.audit import AuditAction
from invoiceflow.models.invoice import ACTIVE_STATUSES, Invoice, InvoiceStatus
from invoiceflow.models.user import UserRole
from invoiceflow.services.audit_service import AuditService
from invoiceflow.services.status_history_service import StatusHistoryService
from invoiceflow.services.status_policy import StatusPolicy, default_policy
from invoiceflow.utils.error_handling import (
    ConflictException,
    ErrorCode,
    ForbiddenTransitionException,
    InvoiceNotFoundException,
)


logger = logging.getLogger(__name__)

# (invoice, previous_status, new_status, actor_id, comment)
StatusChangeNotifier = Callable[
    [Invoice, Optional[InvoiceStatus], InvoiceStatus, str, Optional[str]],
    Awaitable[None],
]

_PROCESSING_STATUSES = {
    InvoiceStatus.UNDER_REVIEW,
    InvoiceStatus.APPROVED,
    InvoiceStatus.IN_PROGRESS,
}


class InvoiceWorkflowEngine:
    """Applies status transitions to invoices."""

    def __init__(
        self,
        db: AsyncSession,
        policy: Optional[StatusPolicy] = None,
        notifier: Optional[StatusChangeNotifier] = None,
    ):
        self.db = db
        self.policy = policy or default_policy
        self.notifier = notifier
        self.history = StatusHistoryService(db)
        self.audit = AuditService(db)

    async def _load_invoice(self, invoice_id: int) -> Invoice:
        invoice = await self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundException(invoice_id)
        return invoice

    async def valid_transitions(self, invoice_id: int, actor_role: UserRole) -> List[InvoiceStatus]:
        """Statuses `actor_role` may move the invoice to right now."""
        invoice = await self._load_invoice(invoice_id)
        targets = self.policy.valid_targets(invoice.status, actor_role)

        if invoice.status == InvoiceStatus.ON_HOLD and actor_role != UserRole.ADMIN:
            held_from = await self.history.status_before_hold(invoice_id)
            targets = [
                target for target in targets
                if target not in ACTIVE_STATUSES or target == held_from
            ]
        return targets

    async def request_transition(
        self,
        invoice_id: int,
        target_status: InvoiceStatus,
        actor_role: UserRole,
        actor_id: str,
        comment: Optional[str] = None,
    ) -> Invoice:
        """
        Move an invoice to `target_status`.

        Raises:
            InvoiceNotFoundException: Invoice does not exist
            ForbiddenTransitionException: Policy denies the move
            ConflictException: Invoice changed since it was read
        """
        invoice = await self._load_invoice(invoice_id)
        current_status = invoice.status

        if not self.policy.can_transition(current_status, target_status, actor_role):
            raise ForbiddenTransitionException(
                current_status=current_status.label,
                target_status=target_status.label,
                actor_role=actor_role.value,
            )

        if (
            current_status == InvoiceStatus.ON_HOLD
            and target_status in ACTIVE_STATUSES
            and actor_role != UserRole.ADMIN
        ):
            held_from = await self.history.status_before_hold(invoice_id)
            if held_from != target_status:
                raise ForbiddenTransitionException(
                    current_status=current_status.label,
                    target_status=target_status.label,
                    actor_role=actor_role.value,
                    message=(
                        "An invoice on hold can only resume to the status it was held from"
                        + (f" ({held_from.label})" if held_from is not None else "")
                    ),
                )

        now = datetime.now(timezone.utc)
        try:
            invoice.status = target_status
            invoice.modified_by = actor_id
            invoice.updated_at = now
            self._apply_status_fields(invoice, target_status, actor_id, now)

            await self.history.append(
                invoice_id=invoice.id,
                from_status=current_status,
                to_status=target_status,
                actor=actor_id,
                comment=comment,
            )
            await self.audit.log_action(
                action=AuditAction.STATUS_CHANGE,
                entity_type="invoice",
                entity_id=invoice.id,
                actor=actor_id,
                description=(
                    f"Status changed from {current_status.label} to {target_status.label}"
                    + (f". Reason: {comment}" if comment else "")
                ),
                old_values={"status": current_status.label},
                new_values={"status": target_status.label},
            )
            await self.db.commit()
        except StaleDataError as exc:
            await self.db.rollback()
            logger.info(
                f"Concurrent modification of invoice {invoice_id} "
                f"({current_status.label} -> {target_status.label}) by {actor_id}"
            )
            raise ConflictException(
                message="Invoice was modified by another request. Reload it and try again.",
                resource_type="Invoice",
                code=ErrorCode.VERSION_CONFLICT,
                details={"invoice_id": invoice_id},
                original_error=exc,
            )
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Invoice {invoice_id} moved {current_status.label} -> {target_status.label} by {actor_id}"
        )
        await self._notify(invoice, current_status, target_status, actor_id, comment)
        return invoice

    async def submit_invoice(
        self,
        invoice: Invoice,
        actor_id: str,
        comment: Optional[str] = None,
    ) -> Invoice:
        """
        Persist a new invoice in SUBMITTED status with its first ledger entry.
        """
        invoice.status = InvoiceStatus.SUBMITTED
        invoice.created_by = invoice.created_by or actor_id
        invoice.processed_by = actor_id
        invoice.processed_at = datetime.now(timezone.utc)

        try:
            self.db.add(invoice)
            await self.db.flush()

            await self.history.append(
                invoice_id=invoice.id,
                from_status=None,
                to_status=InvoiceStatus.SUBMITTED,
                actor=actor_id,
                comment=comment or "Invoice submitted",
            )
            await self.audit.log_action(
                action=AuditAction.CREATE,
                entity_type="invoice",
                entity_id=invoice.id,
                actor=actor_id,
                description=f"Invoice {invoice.invoice_number} submitted",
                new_values={
                    "invoice_number": invoice.invoice_number,
                    "vendor_name": invoice.vendor_name,
                    "invoice_value": str(invoice.invoice_value) if invoice.invoice_value is not None else None,
                    "status": InvoiceStatus.SUBMITTED.label,
                },
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Invoice {invoice.id} ({invoice.invoice_number}) submitted by {actor_id}")
        await self._notify(invoice, None, InvoiceStatus.SUBMITTED, actor_id, comment)
        return invoice

    @staticmethod
    def _apply_status_fields(
        invoice: Invoice,
        target_status: InvoiceStatus,
        actor_id: str,
        now: datetime,
    ) -> None:
        if target_status in _PROCESSING_STATUSES:
            invoice.processed_by = actor_id
            invoice.processed_at = now
        elif target_status == InvoiceStatus.COMPLETED:
            invoice.payment_date = now
            invoice.paid_amount = invoice.invoice_value

    async def _notify(
        self,
        invoice: Invoice,
        previous_status: Optional[InvoiceStatus],
        new_status: InvoiceStatus,
        actor_id: str,
        comment: Optional[str],
    ) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier(invoice, previous_status, new_status, actor_id, comment)
        except Exception as exc:
            logger.error(
                f"Notification for invoice {invoice.id} ({new_status.label}) failed: {exc}",
                exc_info=True,
            )
