"""
InvoiceFlow - Error Handling

Every error a client can see is an `AppException` subclass. Each subclass
fixes its HTTP status and default `ErrorCode`; the handlers registered by
`setup_exception_handlers` render all of them, plus framework and database
errors, as

    {"detail": {"code", "message", "timestamp", "field"?, "details"?}}
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("invoiceflow.errors")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in `detail.code`"""

    # Input
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_FILE = "INVALID_FILE"

    # Identity and permissions
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    TOKEN_INVALID = "TOKEN_INVALID"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    ACCOUNT_DISABLED = "ACCOUNT_DISABLED"
    FORBIDDEN_TRANSITION = "FORBIDDEN_TRANSITION"

    # Records
    NOT_FOUND = "NOT_FOUND"
    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    CANNOT_DELETE = "CANNOT_DELETE"

    RATE_LIMITED = "RATE_LIMITED"

    # Collaborators
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    OCR_SERVICE_ERROR = "OCR_SERVICE_ERROR"
    EMAIL_SERVICE_ERROR = "EMAIL_SERVICE_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base class; subclasses override `status_code` and `code`."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error


# ============================================================================
# Input
# ============================================================================

class ValidationException(AppException):
    """Input rejected before any state change"""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[ErrorCode] = None,
    ):
        super().__init__(message, code=code, details=details, field=field)


class InvalidAmountException(ValidationException):
    """Monetary amounts may not be negative"""

    def __init__(self, amount: Any, field: str = "amount", message: Optional[str] = None):
        super().__init__(
            message or f"{field} must not be negative (got {amount})",
            field=field,
            details={"provided_amount": str(amount)},
            code=ErrorCode.INVALID_AMOUNT,
        )


# ============================================================================
# Identity and permissions
# ============================================================================

class AuthenticationException(AppException):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = ErrorCode.UNAUTHORIZED

    def __init__(
        self,
        message: str = "Authentication required",
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, details=details)


class TokenInvalidException(AuthenticationException):
    code = ErrorCode.TOKEN_INVALID

    def __init__(self, message: str = "Invalid access token"):
        super().__init__(message)


class AuthorizationException(AppException):
    """Caller's role is below what the endpoint or record requires"""

    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.FORBIDDEN

    def __init__(
        self,
        message: str = "Permission denied",
        required_role: Optional[str] = None,
        code: Optional[ErrorCode] = None,
    ):
        details = {"required_role": required_role} if required_role else None
        super().__init__(message, code=code, details=details)


class ForbiddenTransitionException(AuthorizationException):
    """The acting role may not move the invoice between these statuses"""

    code = ErrorCode.FORBIDDEN_TRANSITION

    def __init__(
        self,
        current_status: str,
        target_status: str,
        actor_role: str,
        message: Optional[str] = None,
    ):
        super().__init__(
            message or f"Role '{actor_role}' may not move an invoice from {current_status} to {target_status}",
        )
        self.details = {
            "current_status": current_status,
            "target_status": target_status,
            "actor_role": actor_role,
        }


class AccountLockedException(AppException):
    """Login refused until the lockout for this client expires"""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = ErrorCode.ACCOUNT_LOCKED

    def __init__(self, locked_until: Optional[datetime] = None, retry_after: Optional[int] = None):
        details: Dict[str, Any] = {"reason": "Too many failed login attempts"}
        if locked_until is not None:
            details["locked_until"] = locked_until.isoformat()
        if retry_after is not None:
            details["retry_after_seconds"] = retry_after
        super().__init__(
            "Too many failed login attempts. Try again later.",
            details=details,
        )


# ============================================================================
# Records
# ============================================================================

class NotFoundException(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.NOT_FOUND

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, int]] = None,
        message: Optional[str] = None,
        code: Optional[ErrorCode] = None,
    ):
        if message is None:
            message = f"{resource_type} {resource_id} not found" if resource_id is not None else f"{resource_type} not found"
        super().__init__(
            message,
            code=code,
            details={
                "resource_type": resource_type,
                "resource_id": None if resource_id is None else str(resource_id),
            },
        )


class InvoiceNotFoundException(NotFoundException):
    code = ErrorCode.INVOICE_NOT_FOUND

    def __init__(self, invoice_id: int):
        super().__init__("Invoice", invoice_id)


class ConflictException(AppException):
    """The request clashes with the stored state (stale version, taken value)"""

    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.RESOURCE_CONFLICT

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        details = dict(details or {})
        if resource_type:
            details["resource_type"] = resource_type
        super().__init__(message, code=code, details=details, original_error=original_error)


class DuplicateEntryException(ConflictException):
    code = ErrorCode.DUPLICATE_ENTRY

    def __init__(self, resource_type: str, field: str, value: str):
        super().__init__(
            f"{resource_type} with {field} '{value}' already exists",
            resource_type=resource_type,
            details={"field": field, "value": value},
        )


class BusinessRuleException(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = ErrorCode.BUSINESS_RULE_VIOLATION

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if rule:
            details["violated_rule"] = rule
        super().__init__(message, code=code, details=details)


# ============================================================================
# Collaborators
# ============================================================================

class ExternalServiceException(AppException):
    """OCR provider, mail server or another remote dependency failed"""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = ErrorCode.EXTERNAL_SERVICE_ERROR

    def __init__(
        self,
        service_name: str,
        message: str,
        code: Optional[ErrorCode] = None,
        original_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        details["service"] = service_name
        super().__init__(message, code=code, details=details, original_error=original_error)


class DatabaseException(AppException):
    code = ErrorCode.DATABASE_ERROR

    def __init__(
        self,
        message: str = "A database error occurred",
        code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, code=code, status_code=status_code, original_error=original_error)

    @classmethod
    def from_sqlalchemy(cls, exc: SQLAlchemyError) -> "DatabaseException":
        """Classify a driver error without leaking its text to the client."""
        if isinstance(exc, IntegrityError):
            reason = str(exc.orig).lower() if exc.orig else ""
            if "unique" in reason or "duplicate" in reason:
                return cls("A record with this value already exists",
                           ErrorCode.DUPLICATE_ENTRY, status.HTTP_409_CONFLICT, exc)
            if "foreign key" in reason:
                return cls("Record is referenced by or references another record",
                           ErrorCode.DATA_INTEGRITY_ERROR, status.HTTP_409_CONFLICT, exc)
            return cls("Data integrity constraint violated", ErrorCode.DATA_INTEGRITY_ERROR, original_error=exc)
        if isinstance(exc, OperationalError):
            return cls("Database operation failed", ErrorCode.CONNECTION_ERROR, original_error=exc)
        if isinstance(exc, DataError):
            return cls("Invalid data format for database", status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                       original_error=exc)
        return cls(original_error=exc)


# ============================================================================
# Handlers
# ============================================================================

_HTTP_STATUS_CODES = {
    400: ErrorCode.INVALID_INPUT,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.RESOURCE_CONFLICT,
    413: ErrorCode.INVALID_FILE,
    415: ErrorCode.INVALID_FILE,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMITED,
}


def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"code": code.value, "message": message, "timestamp": _timestamp()}
    if field:
        body["field"] = field
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"detail": body}, headers=headers)


def _request_context(request: Request) -> Dict[str, str]:
    return {"path": request.url.path, "method": request.method}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        f"{exc.code.value} on {request.method} {request.url.path}: {exc.message}",
        extra={"code": exc.code.value, **_request_context(request)},
        exc_info=exc.original_error,
    )

    headers = None
    retry_after = exc.details.get("retry_after_seconds")
    if exc.status_code == status.HTTP_429_TOO_MANY_REQUESTS and retry_after is not None:
        headers = {"Retry-After": str(retry_after)}

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Give framework-raised HTTP errors (missing token, unknown route) the same shape."""
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    logger.warning(f"HTTP {exc.status_code} on {request.method} {request.url.path}: {message}",
                   extra=_request_context(request))

    return create_error_response(
        code=_HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
        message=message,
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(f"{len(errors)} validation errors on {request.method} {request.url.path}",
                   extra=_request_context(request))

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def stale_data_exception_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    """Optimistic-lock failure that escaped a service."""
    return await app_exception_handler(
        request,
        ConflictException(
            "The record was modified by another request. Reload and try again.",
            code=ErrorCode.VERSION_CONFLICT,
            original_error=exc,
        ),
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    return await app_exception_handler(request, DatabaseException.from_sqlalchemy(exc))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        extra=_request_context(request),
        exc_info=True,
    )
    # Internal details never reach the client
    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StaleDataError, stale_data_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    "AppException",
    "ErrorCode",
    "ValidationException",
    "InvalidAmountException",
    "AuthenticationException",
    "TokenInvalidException",
    "AuthorizationException",
    "ForbiddenTransitionException",
    "AccountLockedException",
    "NotFoundException",
    "InvoiceNotFoundException",
    "ConflictException",
    "DuplicateEntryException",
    "BusinessRuleException",
    "ExternalServiceException",
    "DatabaseException",
    "setup_exception_handlers",
    "create_error_response",
]
