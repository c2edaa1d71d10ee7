"""
InvoiceFlow - Main Application Entry Point

FastAPI application for invoice intake and approval workflow.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from invoiceflow import __version__
from invoiceflow.config import settings
from invoiceflow.database import async_session_maker, close_db, init_db
from invoiceflow.middleware.security import RequestLoggingMiddleware, SecurityHeadersMiddleware
from invoiceflow.models.user import UserRole
from invoiceflow.routers import auth, comments, invoices, projects, reports, vendors
from invoiceflow.services.auth_service import AuthService
from invoiceflow.services.file_storage_service import FileStorageService
from invoiceflow.services.notification_service import WorkflowNotifier
from invoiceflow.services.ocr_service import OcrService
from invoiceflow.services.rate_limiter import LoginRateLimiter
from invoiceflow.utils.error_handling import AppException, setup_exception_handlers


# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def seed_initial_admin():
    """Create the configured Admin account if it does not exist yet."""
    if not (settings.initial_admin_email and settings.initial_admin_password):
        return

    async with async_session_maker() as session:
        service = AuthService(session)
        if await service.get_user_by_email(settings.initial_admin_email):
            return
        await service.register_user(
            email=settings.initial_admin_email,
            password=settings.initial_admin_password,
            first_name="System",
            last_name="Administrator",
            role=UserRole.ADMIN,
        )
        logger.info(f"Initial admin {settings.initial_admin_email} created")


async def _cleanup_rate_limiter(rate_limiter: LoginRateLimiter, interval_seconds: int):
    while True:
        await asyncio.sleep(interval_seconds)
        removed = rate_limiter.cleanup_expired_entries()
        if removed:
            logger.info(f"Cleaned up {removed} expired login rate-limit entries")


def configure_app_state(app: FastAPI) -> None:
    """Attach the process-wide collaborators that request handlers share."""
    app.state.rate_limiter = LoginRateLimiter.from_settings(settings)
    app.state.notifier = WorkflowNotifier()
    app.state.ocr_service = OcrService()
    app.state.file_storage = FileStorageService()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    # Initialize database (dev only - use migrations in production)
    if not settings.is_production:
        await init_db()
        logger.info("Database tables initialized")

    try:
        await seed_initial_admin()
    except AppException as e:
        logger.warning(f"Initial admin seeding skipped: {e.message}")

    configure_app_state(app)
    logger.info(f"OCR provider: {app.state.ocr_service.provider.value}")

    cleanup_task = asyncio.create_task(
        _cleanup_rate_limiter(app.state.rate_limiter, settings.rate_limit_cleanup_interval_seconds)
    )

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    cleanup_task.cancel()
    with suppress(asyncio.CancelledError):
        await cleanup_task
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Invoice intake, OCR extraction and role-based approval workflow",
    version=__version__,
    docs_url="/api/docs" if not settings.is_production else None,
    redoc_url="/api/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware, development_mode=not settings.is_production)
app.add_middleware(RequestLoggingMiddleware)

setup_exception_handlers(app)

# API routes
app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(invoices.router, prefix="/api/v1/invoices", tags=["Invoices"])
app.include_router(comments.router, prefix="/api/v1/invoices", tags=["Comments"])
app.include_router(vendors.router, prefix="/api/v1/vendors", tags=["Vendors"])
app.include_router(projects.router, prefix="/api/v1/projects", tags=["Projects"])
app.include_router(projects.lpo_router, prefix="/api/v1/lpos", tags=["LPOs"])
app.include_router(projects.department_router, prefix="/api/v1/departments", tags=["Departments"])
app.include_router(reports.router, prefix="/api/v1/reports", tags=["Reports"])
app.include_router(reports.audit_router, prefix="/api/v1/audit", tags=["Audit"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
