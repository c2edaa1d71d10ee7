"""
InvoiceFlow - Report Tests
"""

from decimal import Decimal

import pytest

from invoiceflow.models.invoice import CurrencyType, Invoice, InvoiceStatus
from invoiceflow.models.user import UserRole
from invoiceflow.services.currency_service import CurrencyService
from invoiceflow.services.report_service import ReportService
from invoiceflow.services.workflow_engine import InvoiceWorkflowEngine


S = InvoiceStatus


async def _submit(db_session, number, value, currency, actor):
    invoice = Invoice(
        invoice_number=number,
        invoice_value=value,
        currency=currency,
        vendor_name="Vendor",
        vendor_tax_id="T",
        requires_manual_review=False,
        is_potential_duplicate=False,
    )
    return await InvoiceWorkflowEngine(db_session).submit_invoice(invoice, actor)


class TestCurrency:

    def test_convert_to_qar(self):
        service = CurrencyService()
        assert service.convert_to_qar(Decimal("100"), CurrencyType.USD) == Decimal("365.00")
        assert service.convert_to_qar(Decimal("100"), None) == Decimal("100")

    def test_convert_from_qar_uses_minor_units(self):
        service = CurrencyService()
        assert service.convert_from_qar(Decimal("118.50"), CurrencyType.KWD) == Decimal("10.000")


class TestDashboard:

    @pytest.mark.asyncio
    async def test_totals_in_qar(self, db_session, secretary, pm_user):
        await _submit(db_session, "Q-1", Decimal("1000"), CurrencyType.QAR, secretary.actor_id)
        usd = await _submit(db_session, "U-1", Decimal("100"), CurrencyType.USD, secretary.actor_id)
        await InvoiceWorkflowEngine(db_session).request_transition(usd.id, S.UNDER_REVIEW, UserRole.PM, pm_user.actor_id)

        summary = await ReportService(db_session).dashboard_summary()

        assert summary.total_invoices == 2
        assert summary.total_value_qar == Decimal("1365.00")
        by_status = {s.status: s for s in summary.by_status}
        assert by_status[S.SUBMITTED].count == 1
        assert by_status[S.UNDER_REVIEW].total_qar == Decimal("365.00")
        assert by_status[S.COMPLETED].count == 0


class TestReviewQueue:

    def test_actionable_statuses_by_role(self, db_session):
        service = ReportService(db_session)

        assert service.actionable_statuses(UserRole.SECRETARY) == []
        assert service.actionable_statuses(UserRole.PM) == [S.SUBMITTED, S.UNDER_REVIEW, S.APPROVED, S.IN_PROGRESS]
        assert S.PMO_REVIEW in service.actionable_statuses(UserRole.PMO)
        assert S.ON_HOLD in service.actionable_statuses(UserRole.HEAD)

    @pytest.mark.asyncio
    async def test_queue_for_pmo(self, db_session, secretary, pm_user):
        engine = InvoiceWorkflowEngine(db_session)
        waiting = await _submit(db_session, "P-1", Decimal("10"), CurrencyType.QAR, secretary.actor_id)
        for target in (S.UNDER_REVIEW, S.APPROVED, S.IN_PROGRESS, S.PMO_REVIEW):
            await engine.request_transition(waiting.id, target, UserRole.PM, pm_user.actor_id)

        queue = await ReportService(db_session).review_queue(UserRole.PMO)
        assert waiting.id in [invoice.id for invoice in queue]

        pm_queue = await ReportService(db_session).review_queue(UserRole.PM)
        assert waiting.id not in [invoice.id for invoice in pm_queue]

    @pytest.mark.asyncio
    async def test_recent_activity_newest_first(self, db_session, submitted_invoice, pm_user):
        await InvoiceWorkflowEngine(db_session).request_transition(
            submitted_invoice.id, S.UNDER_REVIEW, UserRole.PM, pm_user.actor_id,
        )

        activity = await ReportService(db_session).recent_activity(limit=5)

        assert [entry.new_status for entry in activity] == [S.UNDER_REVIEW, S.SUBMITTED]
