"""
InvoiceFlow - Reference Data Tests

Departments, projects, LPOs, vendors and invoice comments.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from invoiceflow.models.lpo import LPOStatus
from invoiceflow.models.user import UserRole
from invoiceflow.services.comment_service import CommentService
from invoiceflow.services.department_service import DepartmentService
from invoiceflow.services.lpo_service import LPOService
from invoiceflow.services.project_service import ProjectService
from invoiceflow.services.vendor_service import VendorService
from invoiceflow.utils.error_handling import (
    AuthorizationException,
    BusinessRuleException,
    DuplicateEntryException,
    ErrorCode,
    InvalidAmountException,
    NotFoundException,
    ValidationException,
)


@pytest_asyncio.fixture
async def section(db_session):
    return await DepartmentService(db_session).create(
        department_id=1,
        department_name="Engineering",
        section_id=10,
        section_name="Infrastructure",
        section_abbreviation="INF",
        unit_id=100,
        unit_name="Roads",
    )


@pytest_asyncio.fixture
async def project(db_session, section, pm_user):
    return await ProjectService(db_session).create_project(
        actor_id=pm_user.actor_id,
        section_id=section.id,
        name="Ring Road Upgrade",
        project_manager_id=pm_user.id,
        budget=Decimal("250000"),
    )


@pytest_asyncio.fixture
async def vendor(db_session, secretary):
    return await VendorService(db_session).create_vendor(
        secretary.actor_id,
        name="Qatar Asphalt Co",
        vendor_code="V-001",
        tax_id="TX-5001",
    )


class TestProjects:

    @pytest.mark.asyncio
    async def test_project_number_format(self, db_session, project):
        now = datetime.now(timezone.utc)
        assert project.project_number == f"INF/{now.month}/{now.year}/1"

    @pytest.mark.asyncio
    async def test_numbers_increment_within_month(self, db_session, section, project, pm_user):
        second = await ProjectService(db_session).create_project(
            actor_id=pm_user.actor_id, section_id=section.id, name="Bridge Repair",
        )
        assert second.project_number.endswith("/2")

    @pytest.mark.asyncio
    async def test_numbering_restarts_next_month(self, db_session, section, project):
        now = datetime.now(timezone.utc)
        next_month = datetime(now.year + (now.month == 12), now.month % 12 + 1, 1, tzinfo=timezone.utc)

        number = await ProjectService(db_session).generate_project_number(section.id, next_month)

        assert number == f"INF/{next_month.month}/{next_month.year}/1"

    @pytest.mark.asyncio
    async def test_unknown_section(self, db_session, pm_user):
        with pytest.raises(NotFoundException):
            await ProjectService(db_session).create_project(
                actor_id=pm_user.actor_id, section_id=999, name="Nowhere",
            )

    @pytest.mark.asyncio
    async def test_project_with_lpo_cannot_be_deleted(self, db_session, project, vendor, head_user):
        await LPOService(db_session).create_lpo(
            head_user.actor_id,
            lpo_number="LPO-1",
            issue_date=date(2026, 1, 1),
            total_amount=Decimal("1000"),
            project_id=project.id,
            vendor_id=vendor.id,
        )

        with pytest.raises(BusinessRuleException) as exc_info:
            await ProjectService(db_session).delete_project(project.id, head_user.actor_id)
        assert exc_info.value.code == ErrorCode.CANNOT_DELETE


class TestLPOs:

    @pytest.mark.asyncio
    async def test_remaining_defaults_to_total(self, db_session, project, pm_user):
        lpo = await LPOService(db_session).create_lpo(
            pm_user.actor_id,
            lpo_number="LPO-7",
            issue_date=date(2026, 2, 1),
            total_amount=Decimal("5000"),
            project_id=project.id,
        )
        assert lpo.remaining_amount == Decimal("5000")
        assert lpo.status == LPOStatus.ISSUED

    @pytest.mark.asyncio
    async def test_duplicate_number(self, db_session, project, pm_user):
        service = LPOService(db_session)
        await service.create_lpo(
            pm_user.actor_id, lpo_number="LPO-8", issue_date=date(2026, 2, 1),
            total_amount=Decimal("10"), project_id=project.id,
        )
        with pytest.raises(DuplicateEntryException):
            await service.create_lpo(
                pm_user.actor_id, lpo_number="LPO-8", issue_date=date(2026, 2, 1),
                total_amount=Decimal("10"), project_id=project.id,
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides,error", [
        ({"total_amount": Decimal("-1")}, InvalidAmountException),
        ({"remaining_amount": Decimal("20")}, ValidationException),
        ({"start_date": date(2026, 3, 1), "completion_date": date(2026, 2, 1)}, ValidationException),
        ({"vendor_id": 999}, NotFoundException),
    ])
    async def test_invalid_lpo(self, db_session, project, pm_user, overrides, error):
        data = dict(
            lpo_number="LPO-9", issue_date=date(2026, 2, 1),
            total_amount=Decimal("10"), project_id=project.id,
        )
        data.update(overrides)
        with pytest.raises(error):
            await LPOService(db_session).create_lpo(pm_user.actor_id, **data)


class TestVendors:

    @pytest.mark.asyncio
    async def test_duplicate_code(self, db_session, vendor, secretary):
        with pytest.raises(DuplicateEntryException):
            await VendorService(db_session).create_vendor(secretary.actor_id, name="Other", vendor_code="V-001")

    @pytest.mark.asyncio
    async def test_search(self, db_session, vendor):
        found = await VendorService(db_session).get_vendors(search="asphalt")
        assert [v.id for v in found] == [vendor.id]

    @pytest.mark.asyncio
    async def test_unused_vendor_is_deleted(self, db_session, vendor, head_user):
        service = VendorService(db_session)
        assert await service.delete_vendor(vendor.id, head_user.actor_id) is True
        with pytest.raises(NotFoundException):
            await service.get_vendor(vendor.id)

    @pytest.mark.asyncio
    async def test_vendor_with_lpo_is_deactivated(self, db_session, vendor, project, head_user):
        await LPOService(db_session).create_lpo(
            head_user.actor_id, lpo_number="LPO-2", issue_date=date(2026, 1, 1),
            total_amount=Decimal("10"), project_id=project.id, vendor_id=vendor.id,
        )
        service = VendorService(db_session)

        assert await service.delete_vendor(vendor.id, head_user.actor_id) is False
        refreshed = await service.get_vendor(vendor.id)
        assert refreshed.is_active is False
        assert vendor.id not in [v.id for v in await service.get_vendors()]
        assert vendor.id in [v.id for v in await service.get_vendors(include_inactive=True)]


class TestComments:

    @pytest.mark.asyncio
    async def test_add_and_list(self, db_session, submitted_invoice, secretary):
        service = CommentService(db_session)
        await service.add_comment(submitted_invoice.id, secretary, "  Please check the VAT  ")

        comments = await service.list_comments(submitted_invoice.id)
        assert [c.content for c in comments] == ["Please check the VAT"]
        assert comments[0].author == secretary.email

    @pytest.mark.asyncio
    async def test_empty_comment(self, db_session, submitted_invoice, secretary):
        with pytest.raises(ValidationException):
            await CommentService(db_session).add_comment(submitted_invoice.id, secretary, "   ")

    @pytest.mark.asyncio
    async def test_only_author_or_admin_may_edit(self, db_session, submitted_invoice, secretary, pm_user, admin_user):
        service = CommentService(db_session)
        comment = await service.add_comment(submitted_invoice.id, secretary, "First draft")

        with pytest.raises(AuthorizationException):
            await service.update_comment(submitted_invoice.id, comment.id, pm_user, "Hijacked")

        edited = await service.update_comment(submitted_invoice.id, comment.id, admin_user, "Moderated")
        assert edited.content == "Moderated"
        assert edited.modified_by == admin_user.email

    @pytest.mark.asyncio
    async def test_comment_must_belong_to_invoice(self, db_session, submitted_invoice, secretary):
        service = CommentService(db_session)
        comment = await service.add_comment(submitted_invoice.id, secretary, "Note")

        with pytest.raises(NotFoundException):
            await service.get_comment(submitted_invoice.id + 1, comment.id)

    @pytest.mark.asyncio
    async def test_author_deletes_comment(self, db_session, submitted_invoice, make_user):
        author = await make_user("author@example.com", UserRole.SECRETARY)
        service = CommentService(db_session)
        comment = await service.add_comment(submitted_invoice.id, author, "Temporary")

        await service.delete_comment(submitted_invoice.id, comment.id, author)

        assert await service.list_comments(submitted_invoice.id) == []
