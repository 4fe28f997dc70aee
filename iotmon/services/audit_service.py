"""
Audit logging service for privileged and account actions
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from fastapi import Request
from sqlalchemy import select, func, delete, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from iotmon.core.errors import ValidationError
from iotmon.models import AuditLog, AuditAction

logger = logging.getLogger(__name__)


class AuditService:
    """Service for creating, listing and purging audit logs"""

    @staticmethod
    def get_client_ip(request: Request) -> Optional[str]:
        """Extract client IP from request"""
        # Check forwarded headers first (for reverse proxy)
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return None

    @staticmethod
    def get_user_agent(request: Request) -> Optional[str]:
        """Extract user agent from request"""
        return request.headers.get("User-Agent", "")[:500]

    async def record(
        self,
        db: AsyncSession,
        action: AuditAction,
        entity_type: str,
        entity_id: Optional[Any] = None,
        actor: Optional[Any] = None,
        request: Optional[Request] = None,
        metadata: Optional[dict] = None
    ) -> Optional[AuditLog]:
        """
        Append an audit entry.

        The insert runs in a savepoint so a failure rolls back only the
        audit row; the caller's operation still succeeds and the failure
        is logged.
        """
        entry = AuditLog(
            action=AuditAction(action).value,
            actor_id=actor.id if actor else None,
            actor_email=actor.email if actor else None,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=metadata,
            ip_address=self.get_client_ip(request) if request else None,
            user_agent=self.get_user_agent(request) if request else None
        )

        try:
            async with db.begin_nested():
                db.add(entry)
                await db.flush()
        except SQLAlchemyError:
            logger.exception(f"Failed to record audit entry {action} for {entity_type}:{entity_id}")
            return None

        return entry

    async def list_entries(
        self,
        db: AsyncSession,
        actor_id: Optional[int] = None,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> tuple[list[AuditLog], int]:
        """Newest-first page of entries plus the total matching count"""
        filters = []
        if actor_id is not None:
            filters.append(AuditLog.actor_id == actor_id)
        if action:
            filters.append(AuditLog.action == action)
        if entity_type:
            filters.append(AuditLog.entity_type == entity_type)
        if entity_id:
            filters.append(AuditLog.entity_id == entity_id)

        query = select(AuditLog)
        count_query = select(func.count(AuditLog.id))
        if filters:
            query = query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))

        total_result = await db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        query = query.offset((page - 1) * limit).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all()), total

    async def purge(
        self,
        db: AsyncSession,
        purge_all: bool = False,
        before: Optional[datetime] = None
    ) -> int:
        """Delete every entry, or entries created strictly before a cutoff"""
        if purge_all and before is not None:
            raise ValidationError("Specify either all=true or before, not both")
        if not purge_all and before is None:
            raise ValidationError("Specify all=true or a before timestamp")

        statement = delete(AuditLog)
        if before is not None:
            if before.tzinfo is not None:
                before = before.astimezone(timezone.utc).replace(tzinfo=None)
            statement = statement.where(AuditLog.created_at < before)

        result = await db.execute(statement)
        deleted = result.rowcount or 0
        logger.warning(
            f"Purged {deleted} audit entries ({'all' if purge_all else f'before {before.isoformat()}'})"
        )
        return deleted


audit_service = AuditService()
