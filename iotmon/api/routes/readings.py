"""
Sensor reading routes
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from iotmon.models import get_db
from iotmon.schemas import ReadingResponse, ReadingPage, Pagination
from iotmon.core.config import settings
from iotmon.core.security import Requester, require_requester
from iotmon.services import readings_query
from iotmon.services.readings_query import ReadingsQuery

router = APIRouter(tags=["Readings"])


@router.get("/devices", response_model=list[str])
async def list_devices(
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Device ids visible to the caller.
    """
    return await readings_query.list_devices(db, requester)


@router.get("/latest/{device_id}", response_model=Optional[ReadingResponse])
async def latest_reading(
    device_id: str,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    reading = await readings_query.latest_reading(db, requester, device_id)
    return ReadingResponse.model_validate(reading) if reading else None


@router.get("/history/{device_id}", response_model=list[ReadingResponse])
async def reading_history(
    device_id: str,
    hours: int = Query(settings.HISTORY_DEFAULT_HOURS, ge=1, le=24 * 31),
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Readings from the last N hours, oldest first.
    """
    readings = await readings_query.reading_history(db, requester, device_id, hours)
    return [ReadingResponse.model_validate(r) for r in readings]


@router.get("/readings", response_model=ReadingPage)
async def list_readings(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.READINGS_DEFAULT_LIMIT, ge=1),
    search: Optional[str] = None,
    device: Optional[str] = None,
    sort_by: str = Query("ts", alias="sortBy"),
    sort_order: str = Query("DESC", alias="sortOrder"),
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Paginated readings with search and sorting.

    Search accepts prefixed tokens such as ``device:kitchen``, ``t:>25``,
    ``t:20-30``, ``h:<=40`` or ``ts:2024-01-15``; anything else matches
    device ids.
    """
    query = ReadingsQuery(
        page=page,
        limit=limit,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order
    )
    result = await readings_query.search_readings(db, requester, query, device=device or None)

    meta = result["pagination"]
    return ReadingPage(
        data=[ReadingResponse.model_validate(r) for r in result["data"]],
        pagination=Pagination(
            page=meta["page"],
            limit=meta["limit"],
            total=meta["total"],
            totalPages=meta["totalPages"]
        )
    )
