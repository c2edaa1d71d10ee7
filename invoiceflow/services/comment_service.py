"""
InvoiceFlow - Invoice Comment Service
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.models.comment import InvoiceComment
from invoiceflow.models.invoice import Invoice
from invoiceflow.models.user import AppUser, UserRole
from invoiceflow.utils.error_handling import (
    AuthorizationException,
    InvoiceNotFoundException,
    NotFoundException,
    ValidationException,
)


class CommentService:
    """Comments on invoices. Only the author or an Admin may change one."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _ensure_invoice(self, invoice_id: int) -> None:
        if await self.db.get(Invoice, invoice_id) is None:
            raise InvoiceNotFoundException(invoice_id)

    @staticmethod
    def _clean(content: str) -> str:
        content = (content or "").strip()
        if not content:
            raise ValidationException("Comment cannot be empty", field="content")
        return content

    async def list_comments(self, invoice_id: int) -> List[InvoiceComment]:
        await self._ensure_invoice(invoice_id)
        result = await self.db.execute(
            select(InvoiceComment)
            .where(InvoiceComment.invoice_id == invoice_id)
            .order_by(InvoiceComment.created_at, InvoiceComment.id)
        )
        return list(result.scalars().all())

    async def get_comment(self, invoice_id: int, comment_id: int) -> InvoiceComment:
        comment = await self.db.get(InvoiceComment, comment_id)
        if comment is None or comment.invoice_id != invoice_id:
            raise NotFoundException(resource_type="Comment", resource_id=comment_id)
        return comment

    async def add_comment(self, invoice_id: int, user: AppUser, content: str) -> InvoiceComment:
        await self._ensure_invoice(invoice_id)
        comment = InvoiceComment(
            invoice_id=invoice_id,
            author=user.actor_id,
            content=self._clean(content),
            created_by=user.actor_id,
        )
        self.db.add(comment)
        await self.db.commit()
        await self.db.refresh(comment)
        return comment

    @staticmethod
    def _check_owner(comment: InvoiceComment, user: AppUser) -> None:
        if comment.author != user.actor_id and user.role != UserRole.ADMIN:
            raise AuthorizationException("Only the author or an Admin can change this comment")

    async def update_comment(
        self,
        invoice_id: int,
        comment_id: int,
        user: AppUser,
        content: str,
    ) -> InvoiceComment:
        comment = await self.get_comment(invoice_id, comment_id)
        self._check_owner(comment, user)

        comment.content = self._clean(content)
        comment.modified_by = user.actor_id
        await self.db.commit()
        await self.db.refresh(comment)
        return comment

    async def delete_comment(self, invoice_id: int, comment_id: int, user: AppUser) -> None:
        comment = await self.get_comment(invoice_id, comment_id)
        self._check_owner(comment, user)

        await self.db.delete(comment)
        await self.db.commit()
