"""
Pydantic schemas for Readings API
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ReadingResponse(BaseModel):
    id: int
    device_id: str
    ts: datetime
    temperature_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    lux: Optional[float] = None
    sound: Optional[int] = None
    co2_ppm: Optional[int] = None

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(..., serialization_alias="totalPages", validation_alias="totalPages")


class ReadingPage(BaseModel):
    data: list[ReadingResponse]
    pagination: Pagination
