"""
InvoiceFlow - Auth Service Tests

Unit tests for authentication service.
"""

import pytest
from sqlalchemy import select

from invoiceflow.models.audit import AuditAction, AuditLog
from invoiceflow.models.user import UserRole
from invoiceflow.services.auth_service import AuthService
from invoiceflow.utils.error_handling import (
    AccountLockedException,
    AuthenticationException,
    DuplicateEntryException,
    ErrorCode,
    TokenInvalidException,
    ValidationException,
)
from invoiceflow.utils.security import verify_access_token


TEST_PASSWORD = "TestPassword123!"


class TestAuthService:
    """Test cases for AuthService."""

    @pytest.mark.asyncio
    async def test_register_user(self, db_session):
        """Emails are stored lower-cased and passwords hashed."""
        service = AuthService(db_session)

        user = await service.register_user(
            email="New.User@Example.com",
            password="SecurePassword123!",
            first_name="New",
            last_name="User",
        )

        assert user.email == "new.user@example.com"
        assert user.role == UserRole.SECRETARY
        assert user.hashed_password != "SecurePassword123!"

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, db_session, secretary):
        service = AuthService(db_session)
        with pytest.raises(DuplicateEntryException):
            await service.register_user("SECRETARY@example.com", "Password123!", "A", "B")

    @pytest.mark.asyncio
    async def test_register_short_password(self, db_session):
        with pytest.raises(ValidationException):
            await AuthService(db_session).register_user("short@example.com", "abc1", "A", "B")

    @pytest.mark.asyncio
    async def test_authenticate_user_wrong_password(self, db_session, secretary):
        user = await AuthService(db_session).authenticate_user("secretary@example.com", "WrongPassword!")
        assert user is None

    @pytest.mark.asyncio
    async def test_tokens_carry_role(self, db_session, pm_user):
        tokens = AuthService(db_session).create_tokens(pm_user)

        payload = verify_access_token(tokens["access_token"])
        assert payload["sub"] == str(pm_user.id)
        assert payload["role"] == "PM"
        assert tokens["token_type"] == "bearer"

    @pytest.mark.asyncio
    async def test_refresh_tokens(self, db_session, pm_user):
        service = AuthService(db_session)
        tokens = service.create_tokens(pm_user)

        refreshed = await service.refresh_tokens(tokens["refresh_token"])

        assert verify_access_token(refreshed["access_token"])["sub"] == str(pm_user.id)

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_refresh_token(self, db_session, pm_user):
        service = AuthService(db_session)
        tokens = service.create_tokens(pm_user)

        with pytest.raises(TokenInvalidException):
            await service.refresh_tokens(tokens["access_token"])


class TestLogin:

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, db_session, secretary, rate_limiter):
        service = AuthService(db_session)
        rate_limiter.record_failed_attempt("1.2.3.4")

        user = await service.login("secretary@example.com", TEST_PASSWORD, rate_limiter, "1.2.3.4")

        assert user.id == secretary.id
        assert user.last_login_at is not None
        assert rate_limiter.get_remaining_attempts("1.2.3.4") == 3

    @pytest.mark.asyncio
    async def test_failure_reports_remaining_attempts(self, db_session, secretary, rate_limiter):
        service = AuthService(db_session)

        with pytest.raises(AuthenticationException) as exc_info:
            await service.login("secretary@example.com", "nope", rate_limiter, "1.2.3.4")

        assert exc_info.value.details == {"remaining_attempts": 2}
        log = (await db_session.execute(select(AuditLog))).scalar_one()
        assert log.action == AuditAction.LOGIN_FAILED
        assert log.actor == "secretary@example.com"

    @pytest.mark.asyncio
    async def test_lockout_blocks_correct_password(self, db_session, secretary, rate_limiter, clock):
        service = AuthService(db_session)
        for _ in range(2):
            with pytest.raises(AuthenticationException):
                await service.login("secretary@example.com", "nope", rate_limiter, "1.2.3.4")

        with pytest.raises(AccountLockedException) as exc_info:
            await service.login("secretary@example.com", "nope", rate_limiter, "1.2.3.4")
        assert exc_info.value.details["retry_after_seconds"] == 15 * 60

        with pytest.raises(AccountLockedException):
            await service.login("secretary@example.com", TEST_PASSWORD, rate_limiter, "1.2.3.4")

        clock.advance(minutes=15)
        user = await service.login("secretary@example.com", TEST_PASSWORD, rate_limiter, "1.2.3.4")
        assert user.id == secretary.id

        actions = (await db_session.execute(select(AuditLog.action))).scalars().all()
        assert AuditAction.ACCOUNT_LOCKED in actions

    @pytest.mark.asyncio
    async def test_disabled_account(self, db_session, make_user, rate_limiter):
        await make_user("gone@example.com", UserRole.PM, is_active=False)

        with pytest.raises(AuthenticationException) as exc_info:
            await AuthService(db_session).login("gone@example.com", TEST_PASSWORD, rate_limiter, "1.2.3.4")
        assert exc_info.value.code == ErrorCode.ACCOUNT_DISABLED


class TestUserAdministration:

    @pytest.mark.asyncio
    async def test_promote_user_is_audited(self, db_session, readonly_user, admin_user):
        service = AuthService(db_session)

        user = await service.update_user(readonly_user.id, admin_user.actor_id, role=UserRole.PMO)

        assert user.role == UserRole.PMO
        log = (await db_session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.UPDATE)
        )).scalar_one()
        assert log.old_values == {"role": "ReadOnly"}
        assert log.new_values == {"role": "PMO"}
