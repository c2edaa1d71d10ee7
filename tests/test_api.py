"""
InvoiceFlow - API Integration Tests

Integration tests for REST API endpoints.
"""

import pytest
from httpx import AsyncClient

from invoiceflow.models.invoice import InvoiceStatus

from conftest import TEST_PASSWORD, auth_headers


INVOICE_PAYLOAD = {
    "invoice_number": "INV-3001",
    "invoice_date": "2026-02-01",
    "invoice_value": "2100.00",
    "sub_total": "2000.00",
    "tax_amount": "100.00",
    "currency": "qar",
    "vendor_name": "Doha Build Co",
    "vendor_tax_id": "TX-1",
    "line_items": [{"description": "Cement", "quantity": "10", "unit_price": "200", "amount": "2000"}],
}


class TestHealthEndpoint:

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_security_headers(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "X-Process-Time" in response.headers


class TestAuthAPI:

    @pytest.mark.asyncio
    async def test_register_creates_read_only_user(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/register",
            json={
                "email": "newuser@example.com",
                "password": "SecurePassword123",
                "first_name": "New",
                "last_name": "User",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "newuser@example.com"
        assert data["role"] == "ReadOnly"

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, client: AsyncClient, secretary):
        response = await client.post(
            "/api/v1/auth/register",
            json={
                "email": "secretary@example.com",
                "password": "Password123",
                "first_name": "Test",
                "last_name": "User",
            },
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DUPLICATE_ENTRY"

    @pytest.mark.asyncio
    async def test_login_success(self, client: AsyncClient, secretary):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "secretary@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["role"] == "Secretary"
        assert data["tokens"]["token_type"] == "bearer"
        assert "access_token=" in response.headers["set-cookie"]

        me = await client.get(
            "/api/v1/auth/me",
            headers={"Authorization": f"Bearer {data['tokens']['access_token']}"},
        )
        assert me.json()["email"] == "secretary@example.com"

    @pytest.mark.asyncio
    async def test_login_lockout_returns_429(self, client: AsyncClient, secretary, clock):
        for remaining in (2, 1):
            response = await client.post(
                "/api/v1/auth/login",
                json={"email": "secretary@example.com", "password": "wrong-password"},
            )
            assert response.status_code == 401
            assert response.json()["detail"]["details"]["remaining_attempts"] == remaining

        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "secretary@example.com", "password": "wrong-password"},
        )
        assert response.status_code == 429
        assert response.headers["Retry-After"] == str(15 * 60)
        assert response.json()["detail"]["code"] == "ACCOUNT_LOCKED"

        # Correct password is refused while locked
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "secretary@example.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 429

        clock.advance(minutes=15)
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "secretary@example.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_unauthenticated_request(self, client: AsyncClient):
        response = await client.get("/api/v1/invoices")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_admin_promotes_user(self, client: AsyncClient, readonly_user, admin_user):
        response = await client.patch(
            f"/api/v1/auth/users/{readonly_user.id}",
            json={"role": "pm"},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 200
        assert response.json()["role"] == "PM"

    @pytest.mark.asyncio
    async def test_non_admin_cannot_list_users(self, client: AsyncClient, head_user):
        response = await client.get("/api/v1/auth/users", headers=auth_headers(head_user))

        assert response.status_code == 403


class TestInvoiceAPI:

    @pytest.mark.asyncio
    async def test_create_and_get_invoice(self, client: AsyncClient, secretary):
        response = await client.post("/api/v1/invoices", json=INVOICE_PAYLOAD, headers=auth_headers(secretary))

        assert response.status_code == 201
        created = response.json()
        assert created["status"] == InvoiceStatus.SUBMITTED.value
        assert created["status_label"] == "Submitted"
        assert created["currency"] == "QAR"
        assert created["version"] == 1
        assert len(created["line_items"]) == 1

        response = await client.get(f"/api/v1/invoices/{created['id']}", headers=auth_headers(secretary))
        assert response.status_code == 200
        assert response.json()["invoice_number"] == "INV-3001"

    @pytest.mark.asyncio
    async def test_read_only_cannot_create(self, client: AsyncClient, readonly_user):
        response = await client.post("/api/v1/invoices", json=INVOICE_PAYLOAD, headers=auth_headers(readonly_user))

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "INSUFFICIENT_PERMISSIONS"

    @pytest.mark.asyncio
    async def test_negative_amount_is_rejected(self, client: AsyncClient, secretary):
        payload = dict(INVOICE_PAYLOAD, invoice_value="-1")
        response = await client.post("/api/v1/invoices", json=payload, headers=auth_headers(secretary))

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_invoice(self, client: AsyncClient, secretary):
        response = await client.get("/api/v1/invoices/9999", headers=auth_headers(secretary))

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "INVOICE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_upload_document(self, client: AsyncClient, secretary):
        response = await client.post(
            "/api/v1/invoices/upload",
            files={"file": ("scan.pdf", b"%PDF-1.4 test document", "application/pdf")},
            headers=auth_headers(secretary),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["file_name"] == "scan.pdf"
        assert data["status_label"] == "Submitted"
        assert data["ocr_confidence"] == 0.85

        document = await client.get(f"/api/v1/invoices/{data['id']}/document", headers=auth_headers(secretary))
        assert document.status_code == 200
        assert document.content == b"%PDF-1.4 test document"

    @pytest.mark.asyncio
    async def test_upload_rejects_unsupported_type(self, client: AsyncClient, secretary):
        response = await client.post(
            "/api/v1/invoices/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=auth_headers(secretary),
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_FILE"

    @pytest.mark.asyncio
    async def test_edit_keeps_status(self, client: AsyncClient, secretary, submitted_invoice):
        response = await client.patch(
            f"/api/v1/invoices/{submitted_invoice.id}",
            json={"remark": "checked"},
            headers=auth_headers(secretary),
        )
        assert response.status_code == 200
        assert response.json()["remark"] == "checked"
        assert response.json()["status_label"] == "Submitted"

    @pytest.mark.asyncio
    async def test_clearing_required_field_returns_422(self, client: AsyncClient, secretary, submitted_invoice):
        response = await client.patch(
            f"/api/v1/invoices/{submitted_invoice.id}",
            json={"invoice_number": None},
            headers=auth_headers(secretary),
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

        response = await client.get(f"/api/v1/invoices/{submitted_invoice.id}", headers=auth_headers(secretary))
        assert response.json()["invoice_number"] == "INV-1001"

    @pytest.mark.asyncio
    async def test_filter_by_status_label(self, client: AsyncClient, secretary, submitted_invoice):
        response = await client.get("/api/v1/invoices?status=Submitted", headers=auth_headers(secretary))
        assert response.json()["total"] == 1

        response = await client.get("/api/v1/invoices?status=bogus", headers=auth_headers(secretary))
        assert response.status_code == 422


class TestWorkflowAPI:

    @pytest.mark.asyncio
    async def test_transition_and_history(self, client: AsyncClient, submitted_invoice, pm_user, email_service):
        response = await client.post(
            f"/api/v1/invoices/{submitted_invoice.id}/transition",
            json={"target_status": "UnderReview", "comment": "Starting review"},
            headers=auth_headers(pm_user),
        )

        assert response.status_code == 200
        assert response.json()["status"] == InvoiceStatus.UNDER_REVIEW.value
        assert response.json()["version"] == 2
        assert email_service.outbox[-1].to == ["head@example.com"]

        history = await client.get(
            f"/api/v1/invoices/{submitted_invoice.id}/history",
            headers=auth_headers(pm_user),
        )
        entries = history.json()
        assert [entry["new_status_label"] for entry in entries] == ["Submitted", "UnderReview"]
        assert entries[1]["previous_status_label"] == "Submitted"
        assert entries[1]["changed_by"] == pm_user.email
        assert entries[1]["comments"] == "Starting review"

    @pytest.mark.asyncio
    async def test_forbidden_transition_returns_403(self, client: AsyncClient, submitted_invoice, secretary):
        response = await client.post(
            f"/api/v1/invoices/{submitted_invoice.id}/transition",
            json={"target_status": 1},
            headers=auth_headers(secretary),
        )

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["code"] == "FORBIDDEN_TRANSITION"
        assert detail["details"]["current_status"] == "Submitted"

    @pytest.mark.asyncio
    async def test_unknown_target_status(self, client: AsyncClient, submitted_invoice, pm_user):
        response = await client.post(
            f"/api/v1/invoices/{submitted_invoice.id}/transition",
            json={"target_status": "Paid"},
            headers=auth_headers(pm_user),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_valid_transitions_for_pm(self, client: AsyncClient, submitted_invoice, pm_user):
        response = await client.get(
            f"/api/v1/invoices/{submitted_invoice.id}/valid-transitions",
            headers=auth_headers(pm_user),
        )

        data = response.json()
        assert data["current_status"]["label"] == "Submitted"
        assert [option["label"] for option in data["valid_transitions"]] == ["UnderReview"]


class TestCommentAPI:

    @pytest.mark.asyncio
    async def test_comment_lifecycle(self, client: AsyncClient, submitted_invoice, secretary, pm_user):
        url = f"/api/v1/invoices/{submitted_invoice.id}/comments"
        response = await client.post(url, json={"content": "Is the VAT right?"}, headers=auth_headers(secretary))
        assert response.status_code == 201
        comment_id = response.json()["id"]

        response = await client.put(
            f"{url}/{comment_id}", json={"content": "Changed"}, headers=auth_headers(pm_user),
        )
        assert response.status_code == 403

        response = await client.delete(f"{url}/{comment_id}", headers=auth_headers(secretary))
        assert response.status_code in (200, 204)

        response = await client.get(url, headers=auth_headers(pm_user))
        assert response.json() == []


class TestReportAPI:

    @pytest.mark.asyncio
    async def test_dashboard(self, client: AsyncClient, submitted_invoice, readonly_user):
        response = await client.get("/api/v1/reports/dashboard", headers=auth_headers(readonly_user))

        assert response.status_code == 200
        data = response.json()
        assert data["total_invoices"] == 1
        assert data["currency"] == "QAR"

    @pytest.mark.asyncio
    async def test_audit_trail_requires_head(self, client: AsyncClient, submitted_invoice, pm_user, head_user):
        assert (await client.get("/api/v1/audit", headers=auth_headers(pm_user))).status_code == 403

        response = await client.get("/api/v1/audit?entity_type=invoice", headers=auth_headers(head_user))
        assert response.status_code == 200
        assert response.json()["total"] == 1
