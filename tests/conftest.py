"""
InvoiceFlow - Test Configuration

Pytest fixtures and configuration.

Every test gets its own SQLite database file, so tests can open several
sessions against the same data (needed for the concurrency tests).
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import invoiceflow.models  # noqa: F401
from invoiceflow.database import Base, build_engine, get_async_session
from invoiceflow.models.invoice import CurrencyType, Invoice, InvoiceStatus
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.services.email_service import EmailService
from invoiceflow.services.file_storage_service import FileStorageService
from invoiceflow.services.notification_service import NotificationRecipients, WorkflowNotifier
from invoiceflow.services.ocr_service import OcrService
from invoiceflow.services.rate_limiter import LoginRateLimiter
from invoiceflow.services.workflow_engine import InvoiceWorkflowEngine
from invoiceflow.utils.security import create_access_token, get_password_hash
from main import app


TEST_PASSWORD = "TestPassword123!"


class FakeClock:
    """Settable clock for the login rate limiter."""

    def __init__(self, start: datetime = None):
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Engine bound to a fresh SQLite file with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_limiter(clock) -> LoginRateLimiter:
    return LoginRateLimiter(max_attempts=3, lockout_duration=timedelta(minutes=15), clock=clock)


@pytest.fixture
def email_service() -> EmailService:
    return EmailService(provider="mock")


@pytest.fixture
def notifier(email_service) -> WorkflowNotifier:
    return WorkflowNotifier(
        email_service=email_service,
        recipients=NotificationRecipients(
            head="head@example.com",
            pmo="pmo@example.com",
            procurement="procurement@example.com",
        ),
        base_url="http://test",
    )


@pytest.fixture
def file_storage(tmp_path) -> FileStorageService:
    return FileStorageService(root=str(tmp_path / "uploads"), max_size_mb=1)


@pytest_asyncio.fixture(scope="function")
async def client(
    session_factory,
    rate_limiter,
    notifier,
    file_storage,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test client with database session override.

    ASGITransport does not run the lifespan, so the shared collaborators
    are put on app.state here.
    """

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_session
    app.state.rate_limiter = rate_limiter
    app.state.notifier = notifier
    app.state.ocr_service = OcrService(endpoint="", api_key="")
    app.state.file_storage = file_storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

async def _make_user(db_session: AsyncSession, email: str, role: UserRole, **kwargs) -> AppUser:
    user = AppUser(
        email=email,
        hashed_password=get_password_hash(TEST_PASSWORD),
        first_name=kwargs.pop("first_name", role.value),
        last_name=kwargs.pop("last_name", "User"),
        role=role,
        is_active=kwargs.pop("is_active", True),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def make_user(db_session):
    async def factory(email: str, role: UserRole, **kwargs) -> AppUser:
        return await _make_user(db_session, email, role, **kwargs)
    return factory


@pytest_asyncio.fixture
async def secretary(db_session) -> AppUser:
    return await _make_user(db_session, "secretary@example.com", UserRole.SECRETARY)


@pytest_asyncio.fixture
async def pm_user(db_session) -> AppUser:
    return await _make_user(db_session, "pm@example.com", UserRole.PM)


@pytest_asyncio.fixture
async def pmo_user(db_session) -> AppUser:
    return await _make_user(db_session, "pmo@example.com", UserRole.PMO)


@pytest_asyncio.fixture
async def head_user(db_session) -> AppUser:
    return await _make_user(db_session, "head@example.com", UserRole.HEAD)


@pytest_asyncio.fixture
async def admin_user(db_session) -> AppUser:
    return await _make_user(db_session, "admin@example.com", UserRole.ADMIN)


@pytest_asyncio.fixture
async def readonly_user(db_session) -> AppUser:
    return await _make_user(db_session, "viewer@example.com", UserRole.READ_ONLY)


def auth_headers(user: AppUser) -> dict:
    """Bearer header for a user, without going through /login."""
    token = create_access_token({"sub": str(user.id), "email": user.email, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def submitted_invoice(db_session, secretary) -> Invoice:
    """An invoice entered by the secretary, in Submitted status with its first ledger entry."""
    invoice = Invoice(
        invoice_number="INV-1001",
        invoice_date=datetime(2026, 1, 5).date(),
        invoice_value=Decimal("1050.00"),
        sub_total=Decimal("1000.00"),
        tax_amount=Decimal("50.00"),
        currency=CurrencyType.QAR,
        status=InvoiceStatus.SUBMITTED,
        vendor_name="Gulf Office Supplies",
        vendor_tax_id="TAX-778812",
        requires_manual_review=False,
        is_potential_duplicate=False,
    )
    engine = InvoiceWorkflowEngine(db_session)
    return await engine.submit_invoice(invoice, actor_id=secretary.actor_id)
