"""
InvoiceFlow - Status History Service

Append-only ledger of invoice status changes.

Entries are written inside the caller's transaction (add + flush, no
commit) so the status change and its ledger entry commit or roll back
together. There is deliberately no update or delete operation.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.models.invoice import Invoice, InvoiceStatus
from invoiceflow.models.status_history import StatusHistory
from invoiceflow.utils.error_handling import InvoiceNotFoundException


class StatusHistoryService:
    """Service for reading and appending invoice status history."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _ensure_invoice_exists(self, invoice_id: int) -> None:
        result = await self.db.execute(select(Invoice.id).where(Invoice.id == invoice_id))
        if result.scalar_one_or_none() is None:
            raise InvoiceNotFoundException(invoice_id)

    async def append(
        self,
        invoice_id: int,
        from_status: Optional[InvoiceStatus],
        to_status: InvoiceStatus,
        actor: str,
        comment: Optional[str] = None,
    ) -> StatusHistory:
        """
        Record one status change.

        Raises:
            InvoiceNotFoundException: If the invoice does not exist
        """
        await self._ensure_invoice_exists(invoice_id)

        entry = StatusHistory(
            invoice_id=invoice_id,
            previous_status=from_status,
            new_status=to_status,
            changed_by=actor,
            comments=comment,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def get_history(self, invoice_id: int) -> List[StatusHistory]:
        """All entries for an invoice, oldest first."""
        await self._ensure_invoice_exists(invoice_id)

        result = await self.db.execute(
            select(StatusHistory)
            .where(StatusHistory.invoice_id == invoice_id)
            .order_by(StatusHistory.changed_at.asc(), StatusHistory.id.asc())
        )
        return list(result.scalars().all())

    async def latest(self, invoice_id: int) -> Optional[StatusHistory]:
        result = await self.db.execute(
            select(StatusHistory)
            .where(StatusHistory.invoice_id == invoice_id)
            .order_by(StatusHistory.changed_at.desc(), StatusHistory.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def status_before_hold(self, invoice_id: int) -> Optional[InvoiceStatus]:
        """The status an invoice was in when it was last put on hold."""
        result = await self.db.execute(
            select(StatusHistory.previous_status)
            .where(StatusHistory.invoice_id == invoice_id)
            .where(StatusHistory.new_status == InvoiceStatus.ON_HOLD)
            .order_by(StatusHistory.changed_at.desc(), StatusHistory.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def recent_activity(self, limit: int = 20) -> List[StatusHistory]:
        """Most recent status changes across all invoices."""
        result = await self.db.execute(
            select(StatusHistory)
            .order_by(StatusHistory.changed_at.desc(), StatusHistory.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
