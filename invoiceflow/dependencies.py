"""
InvoiceFlow - FastAPI Dependencies

Shared dependencies for authentication, database sessions, role checks
and service construction.

Process-wide collaborators (login rate limiter, notifier, OCR client,
file storage) are created in the application lifespan and kept on
`app.state`; the dependencies below only hand them out.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.database import get_async_session
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.services.file_storage_service import FileStorageService
from invoiceflow.services.invoice_service import InvoiceService
from invoiceflow.services.notification_service import WorkflowNotifier
from invoiceflow.services.ocr_service import OcrService
from invoiceflow.services.rate_limiter import LoginRateLimiter
from invoiceflow.services.workflow_engine import InvoiceWorkflowEngine
from invoiceflow.utils.error_handling import AuthorizationException, ErrorCode
from invoiceflow.utils.security import verify_access_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> AppUser:
    """
    Get the current authenticated user from JWT token.

    Token can be provided via:
    1. Authorization: Bearer <token> header
    2. access_token cookie

    Raises:
        HTTPException: If token is invalid or user not found
    """
    if credentials:
        token = credentials.credentials
    else:
        token = request.cookies.get("access_token")
        if token and token.startswith("Bearer "):
            token = token[7:]

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await db.get(AppUser, user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


def require_role(min_role: UserRole):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/projects")
        async def create(user: AppUser = Depends(require_role(UserRole.PM))):
            ...
    """
    async def role_checker(
        current_user: AppUser = Depends(get_current_user),
    ) -> AppUser:
        if not current_user.role.at_least(min_role):
            raise AuthorizationException(
                message=f"Access denied. Requires {min_role.value} or above.",
                required_role=min_role.value,
                code=ErrorCode.INSUFFICIENT_PERMISSIONS,
            )
        return current_user

    return role_checker


def get_client_ip(request: Request) -> str:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# ===========================================
# PROCESS-WIDE COLLABORATORS
# ===========================================

def get_rate_limiter(request: Request) -> LoginRateLimiter:
    return request.app.state.rate_limiter


def get_notifier(request: Request) -> Optional[WorkflowNotifier]:
    return getattr(request.app.state, "notifier", None)


def get_ocr_service(request: Request) -> OcrService:
    return request.app.state.ocr_service


def get_file_storage(request: Request) -> FileStorageService:
    return request.app.state.file_storage


# ===========================================
# PER-REQUEST SERVICES
# ===========================================

def get_workflow_engine(
    db: AsyncSession = Depends(get_async_session),
    notifier: Optional[WorkflowNotifier] = Depends(get_notifier),
) -> InvoiceWorkflowEngine:
    return InvoiceWorkflowEngine(db, notifier=notifier)


def get_invoice_service(
    db: AsyncSession = Depends(get_async_session),
    engine: InvoiceWorkflowEngine = Depends(get_workflow_engine),
    ocr_service: OcrService = Depends(get_ocr_service),
    storage: FileStorageService = Depends(get_file_storage),
) -> InvoiceService:
    return InvoiceService(db, engine=engine, ocr_service=ocr_service, storage=storage)
