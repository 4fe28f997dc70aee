"""
Audit log routes (dev only)
"""
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from iotmon.models import get_db
from iotmon.schemas import AuditLogResponse, AuditLogListResponse, AuditPurgeResponse
from iotmon.core.security import Requester, require_dev
from iotmon.services import audit_service

router = APIRouter(prefix="/audit", tags=["Audit Logs"])


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    actor_id: Optional[int] = Query(None, alias="actorId"),
    action: Optional[str] = None,
    entity_type: Optional[str] = Query(None, alias="entityType"),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    requester: Requester = Depends(require_dev),
    db: AsyncSession = Depends(get_db)
):
    """
    List audit logs newest first with filtering and pagination.
    """
    logs, total = await audit_service.list_entries(
        db,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        page=page,
        limit=limit
    )

    return AuditLogListResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
        page=page,
        per_page=limit
    )


@router.delete("", response_model=AuditPurgeResponse)
async def purge_audit_logs(
    purge_all: bool = Query(False, alias="all"),
    before: Optional[datetime] = None,
    requester: Requester = Depends(require_dev),
    db: AsyncSession = Depends(get_db)
):
    """
    Purge audit logs. Requires exactly one of all=true or before=<ISO-8601>.
    """
    deleted = await audit_service.purge(db, purge_all=purge_all, before=before)
    await db.commit()
    return AuditPurgeResponse(deleted=deleted)
