"""
InvoiceFlow - Authentication Service

Business logic for user authentication and registration.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.config import settings
from invoiceflow.models.audit import AuditAction
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.services.audit_service import AuditService
from invoiceflow.services.rate_limiter import LoginRateLimiter
from invoiceflow.utils.error_handling import (
    AccountLockedException,
    AuthenticationException,
    DuplicateEntryException,
    ErrorCode,
    NotFoundException,
    TokenInvalidException,
    ValidationException,
)
from invoiceflow.utils.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    verify_password,
    verify_refresh_token,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_user_by_email(self, email: str) -> Optional[AppUser]:
        """Get user by email address."""
        result = await self.db.execute(
            select(AppUser).where(AppUser.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> Optional[AppUser]:
        """Get user by ID."""
        return await self.db.get(AppUser, user_id)

    async def authenticate_user(self, email: str, password: str) -> Optional[AppUser]:
        """
        Authenticate user with email and password.

        Returns:
            AppUser if authentication successful, None otherwise
        """
        user = await self.get_user_by_email(email)

        if not user:
            return None

        if not verify_password(password, user.hashed_password):
            return None

        return user

    async def register_user(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: UserRole = UserRole.SECRETARY,
    ) -> AppUser:
        """Create a user account. Emails are stored lower-cased."""
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationException(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                field="password",
            )

        email = email.strip().lower()
        if await self.get_user_by_email(email):
            raise DuplicateEntryException("User", "email", email)

        user = AppUser(
            email=email,
            hashed_password=get_password_hash(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=True,
        )
        self.db.add(user)
        await self.db.flush()

        await self.audit.log_action(
            action=AuditAction.CREATE,
            entity_type="user",
            entity_id=user.id,
            actor=email,
            user_id=user.id,
            description=f"User registered with role {role.value}",
        )
        await self.db.commit()
        await self.db.refresh(user)

        return user

    async def login(
        self,
        email: str,
        password: str,
        rate_limiter: LoginRateLimiter,
        client_key: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AppUser:
        """
        Check credentials under the login rate limiter.

        Raises:
            AccountLockedException: Too many failed attempts from this client
            AuthenticationException: Bad credentials or disabled account
        """
        if rate_limiter.is_locked_out(client_key):
            raise self._locked(rate_limiter, client_key)

        user = await self.authenticate_user(email, password)
        if user is None:
            remaining = rate_limiter.record_failed_attempt(client_key)
            locked = remaining == 0
            await self.audit.log_action(
                action=AuditAction.ACCOUNT_LOCKED if locked else AuditAction.LOGIN_FAILED,
                entity_type="user",
                actor=email.strip().lower(),
                description="Too many failed sign-in attempts" if locked else "Invalid credentials",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            await self.db.commit()
            if locked:
                raise self._locked(rate_limiter, client_key)
            raise AuthenticationException(
                "Invalid email or password",
                details={"remaining_attempts": remaining},
            )

        if not user.is_active:
            raise AuthenticationException(
                "Account is disabled",
                code=ErrorCode.ACCOUNT_DISABLED,
            )

        rate_limiter.record_successful_attempt(client_key)
        user.last_login_at = datetime.now(timezone.utc)
        await self.audit.log_action(
            action=AuditAction.LOGIN,
            entity_type="user",
            entity_id=user.id,
            actor=user.actor_id,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.db.commit()

        logger.info(f"User {user.email} signed in")
        return user

    @staticmethod
    def _locked(rate_limiter: LoginRateLimiter, client_key: str) -> AccountLockedException:
        locked_until = rate_limiter.get_lockout_expiry(client_key)
        retry_after = None
        if locked_until is not None:
            retry_after = max(1, int((locked_until - rate_limiter.now()).total_seconds()))
        return AccountLockedException(locked_until=locked_until, retry_after=retry_after)

    def create_tokens(self, user: AppUser) -> dict:
        """Create access and refresh tokens for a user."""
        token_data = {"sub": str(user.id), "email": user.email, "role": user.role.value}

        return {
            "access_token": create_access_token(token_data),
            "refresh_token": create_refresh_token({"sub": str(user.id)}),
            "token_type": "bearer",
            "expires_in": settings.access_token_expire_minutes * 60,
        }

    async def refresh_tokens(self, refresh_token: str) -> dict:
        payload = verify_refresh_token(refresh_token)
        if payload is None:
            raise TokenInvalidException("Invalid or expired refresh token")

        user = await self.get_user_by_id(int(payload["sub"]))
        if user is None or not user.is_active:
            raise TokenInvalidException("User no longer exists or is disabled")

        return self.create_tokens(user)

    async def list_users(self) -> List[AppUser]:
        result = await self.db.execute(select(AppUser).order_by(AppUser.email))
        return list(result.scalars().all())

    async def update_user(
        self,
        user_id: int,
        actor_id: str,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
    ) -> AppUser:
        """Change a user's role or active flag."""
        user = await self.get_user_by_id(user_id)
        if user is None:
            raise NotFoundException(resource_type="User", resource_id=user_id, code=ErrorCode.USER_NOT_FOUND)

        old_values = {"role": user.role.value, "is_active": user.is_active}
        if role is not None:
            user.role = role
        if is_active is not None:
            user.is_active = is_active

        old_diff, new_diff = self.audit.calculate_changes(
            old_values, {"role": user.role.value, "is_active": user.is_active}
        )
        if new_diff:
            await self.audit.log_action(
                action=AuditAction.UPDATE,
                entity_type="user",
                entity_id=user.id,
                actor=actor_id,
                old_values=old_diff,
                new_values=new_diff,
            )
        await self.db.commit()
        await self.db.refresh(user)
        return user
