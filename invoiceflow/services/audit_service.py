"""
InvoiceFlow - Audit Trail Service

Audit logging for invoice changes and sign-in events.
"""

from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoiceflow.models.audit import AuditAction, AuditLog


class AuditService:
    """Service for writing and querying the audit trail."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_action(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: Optional[Any] = None,
        actor: Optional[str] = None,
        user_id: Optional[int] = None,
        description: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """
        Log an audit action.

        The entry joins the caller's transaction; committing is up to the
        caller.

        Args:
            action: Type of action performed
            entity_type: Type of record (e.g. 'invoice', 'vendor')
            entity_id: ID of the affected record
            actor: Email of the user who performed the action
            user_id: ID of the user who performed the action
            description: Human readable summary
            old_values: Previous values (for updates)
            new_values: New values (for creates/updates)
            ip_address: Client IP address
            user_agent: Client user agent

        Returns:
            Created AuditLog record
        """
        audit_log = AuditLog(
            action=action,
            target_entity_type=entity_type,
            target_entity_id=str(entity_id) if entity_id is not None else None,
            actor=actor,
            user_id=user_id,
            description=description,
            old_values=old_values,
            new_values=new_values,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        self.db.add(audit_log)
        await self.db.flush()

        return audit_log

    @staticmethod
    def calculate_changes(
        old_values: Dict[str, Any],
        new_values: Dict[str, Any],
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Reduce two snapshots to the keys whose values differ."""
        changed = [
            key for key in set(old_values) | set(new_values)
            if old_values.get(key) != new_values.get(key)
        ]
        return (
            {key: old_values.get(key) for key in changed},
            {key: new_values.get(key) for key in changed},
        )

    async def get_audit_logs(
        self,
        target_entity_type: Optional[str] = None,
        target_entity_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        actor: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[AuditLog], int]:
        """Get audit logs with filtering, newest first. Returns (logs, total)."""
        query = select(AuditLog)
        count_query = select(func.count(AuditLog.id))

        filters = []
        if target_entity_type:
            filters.append(AuditLog.target_entity_type == target_entity_type)
        if target_entity_id:
            filters.append(AuditLog.target_entity_id == str(target_entity_id))
        if action:
            filters.append(AuditLog.action == action)
        if actor:
            filters.append(AuditLog.actor == actor)
        if start_date:
            filters.append(
                AuditLog.created_at >= datetime.combine(start_date, time.min, tzinfo=timezone.utc)
            )
        if end_date:
            filters.append(
                AuditLog.created_at <= datetime.combine(end_date, time.max, tzinfo=timezone.utc)
            )

        for condition in filters:
            query = query.where(condition)
            count_query = count_query.where(condition)

        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)

        return list(result.scalars().all()), total
