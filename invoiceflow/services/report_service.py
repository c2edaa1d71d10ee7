"""
InvoiceFlow - Dashboard Reports

Aggregates over invoices and the status ledger. Amounts in mixed
currencies are summed after conversion to QAR.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.models.invoice import ACTIVE_STATUSES, Invoice, InvoiceStatus
from invoiceflow.models.status_history import StatusHistory
from invoiceflow.models.user import UserRole
from invoiceflow.services.currency_service import BASE_CURRENCY, CurrencyService
from invoiceflow.services.status_history_service import StatusHistoryService
from invoiceflow.services.status_policy import StatusPolicy, default_policy

_SIDE_STATUSES = {InvoiceStatus.ON_HOLD, InvoiceStatus.CANCELLED}


@dataclass
class StatusSummary:
    status: InvoiceStatus
    count: int = 0
    total_qar: Decimal = Decimal("0")


@dataclass
class DashboardSummary:
    total_invoices: int
    total_value_qar: Decimal
    by_status: List[StatusSummary] = field(default_factory=list)
    requires_manual_review: int = 0
    potential_duplicates: int = 0
    currency: str = BASE_CURRENCY.value


class ReportService:
    """Dashboard figures for the invoice workflow."""

    def __init__(
        self,
        db: AsyncSession,
        currency_service: Optional[CurrencyService] = None,
        policy: Optional[StatusPolicy] = None,
    ):
        self.db = db
        self.currency = currency_service or CurrencyService()
        self.policy = policy or default_policy
        self.history = StatusHistoryService(db)

    async def dashboard_summary(self) -> DashboardSummary:
        """Invoice counts per status and totals converted to QAR."""
        result = await self.db.execute(
            select(
                Invoice.status,
                Invoice.currency,
                func.count(Invoice.id),
                func.sum(Invoice.invoice_value),
            ).group_by(Invoice.status, Invoice.currency)
        )

        summaries: Dict[InvoiceStatus, StatusSummary] = {
            status: StatusSummary(status=status) for status in InvoiceStatus
        }
        for status, currency, count, amount in result.all():
            summary = summaries[status]
            summary.count += count
            if amount is not None:
                summary.total_qar += self.currency.convert_to_qar(Decimal(str(amount)), currency)

        review_count = (await self.db.execute(
            select(func.count(Invoice.id)).where(Invoice.requires_manual_review == True)  # noqa: E712
        )).scalar() or 0
        duplicate_count = (await self.db.execute(
            select(func.count(Invoice.id)).where(Invoice.is_potential_duplicate == True)  # noqa: E712
        )).scalar() or 0

        by_status = list(summaries.values())
        return DashboardSummary(
            total_invoices=sum(s.count for s in by_status),
            total_value_qar=sum((s.total_qar for s in by_status), Decimal("0")),
            by_status=by_status,
            requires_manual_review=review_count,
            potential_duplicates=duplicate_count,
        )

    def actionable_statuses(self, role: UserRole) -> List[InvoiceStatus]:
        """
        Statuses in which `role` can move an invoice forward.

        Putting on hold and cancelling do not count as moving forward.
        """
        statuses = []
        for status in [*sorted(ACTIVE_STATUSES), InvoiceStatus.ON_HOLD]:
            targets = self.policy.valid_targets(status, role)
            if any(target not in _SIDE_STATUSES for target in targets):
                statuses.append(status)
        return statuses

    async def review_queue(self, role: UserRole, limit: int = 50) -> List[Invoice]:
        """Invoices waiting on someone with `role`, oldest first."""
        statuses = self.actionable_statuses(role)
        if not statuses:
            return []
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.status.in_(statuses))
            .order_by(Invoice.created_at.asc(), Invoice.id.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def recent_activity(self, limit: int = 20) -> List[StatusHistory]:
        return await self.history.recent_activity(limit)
