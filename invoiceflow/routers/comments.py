"""
InvoiceFlow - Invoice Comments Router
"""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.database import get_async_session
from invoiceflow.dependencies import get_current_user, require_role
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.schemas.auth import MessageResponse
from invoiceflow.schemas.common import CommentRequest, CommentResponse
from invoiceflow.services.comment_service import CommentService


router = APIRouter()


@router.get(
    "/{invoice_id}/comments",
    response_model=List[CommentResponse],
    summary="List comments",
)
async def list_comments(
    invoice_id: int,
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    comments = await CommentService(db).list_comments(invoice_id)
    return [CommentResponse.model_validate(comment) for comment in comments]


@router.post(
    "/{invoice_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a comment",
)
async def add_comment(
    invoice_id: int,
    request: CommentRequest,
    current_user: AppUser = Depends(require_role(UserRole.SECRETARY)),
    db: AsyncSession = Depends(get_async_session),
):
    comment = await CommentService(db).add_comment(invoice_id, current_user, request.content)
    return CommentResponse.model_validate(comment)


@router.put(
    "/{invoice_id}/comments/{comment_id}",
    response_model=CommentResponse,
    summary="Edit a comment",
    description="Only the author or an Admin may edit a comment.",
)
async def update_comment(
    invoice_id: int,
    comment_id: int,
    request: CommentRequest,
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    comment = await CommentService(db).update_comment(invoice_id, comment_id, current_user, request.content)
    return CommentResponse.model_validate(comment)


@router.delete(
    "/{invoice_id}/comments/{comment_id}",
    response_model=MessageResponse,
    summary="Delete a comment",
)
async def delete_comment(
    invoice_id: int,
    comment_id: int,
    current_user: AppUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    await CommentService(db).delete_comment(invoice_id, comment_id, current_user)
    return MessageResponse(message="Comment deleted")
