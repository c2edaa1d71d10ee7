"""
InvoiceFlow - Authentication Router

Registration, login (rate limited per client address), token refresh
and user administration.
"""

from typing import List

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.config import settings
from invoiceflow.database import get_async_session
from invoiceflow.dependencies import get_client_ip, get_current_user, get_rate_limiter, require_role
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshTokenRequest,
    TokenResponse,
    UserRegisterRequest,
    UserResponse,
    UserUpdateRequest,
)
from invoiceflow.services.auth_service import AuthService
from invoiceflow.services.rate_limiter import LoginRateLimiter


router = APIRouter()


def _set_auth_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
    )


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    description="Create a read-only account. An Admin assigns working roles afterwards.",
)
async def register(
    request: UserRegisterRequest,
    db: AsyncSession = Depends(get_async_session),
):
    auth_service = AuthService(db)
    user = await auth_service.register_user(
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        role=UserRole.READ_ONLY,
    )
    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login user",
    description=(
        "Authenticate with email and password. Repeated failures from one "
        "client address lock it out temporarily (HTTP 429 with Retry-After)."
    ),
)
async def login(
    request: LoginRequest,
    http_request: Request,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
    rate_limiter: LoginRateLimiter = Depends(get_rate_limiter),
):
    """Login with email and password."""
    auth_service = AuthService(db)
    user = await auth_service.login(
        email=request.email,
        password=request.password,
        rate_limiter=rate_limiter,
        client_key=get_client_ip(http_request),
        ip_address=get_client_ip(http_request),
        user_agent=http_request.headers.get("User-Agent"),
    )

    tokens = auth_service.create_tokens(user)
    _set_auth_cookie(response, tokens["access_token"])

    return LoginResponse(
        user=UserResponse.model_validate(user),
        tokens=TokenResponse(**tokens),
    )


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token",
)
async def refresh_token(
    request: RefreshTokenRequest,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
):
    tokens = await AuthService(db).refresh_tokens(request.refresh_token)
    _set_auth_cookie(response, tokens["access_token"])
    return TokenResponse(**tokens)


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user",
)
async def get_me(current_user: AppUser = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout user",
)
async def logout(
    response: Response,
    current_user: AppUser = Depends(get_current_user),
):
    """
    Logout user.

    Tokens are stateless; this clears the cookie and the client discards
    its copies.
    """
    response.delete_cookie("access_token")
    return MessageResponse(message="Successfully logged out")


@router.get(
    "/users",
    response_model=List[UserResponse],
    summary="List users",
)
async def list_users(
    current_user: AppUser = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_async_session),
):
    users = await AuthService(db).list_users()
    return [UserResponse.model_validate(user) for user in users]


@router.patch(
    "/users/{user_id}",
    response_model=UserResponse,
    summary="Change a user's role or active flag",
)
async def update_user(
    user_id: int,
    request: UserUpdateRequest,
    current_user: AppUser = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_async_session),
):
    user = await AuthService(db).update_user(
        user_id,
        actor_id=current_user.actor_id,
        role=request.role,
        is_active=request.is_active,
    )
    return UserResponse.model_validate(user)
