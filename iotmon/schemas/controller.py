"""
Pydantic schemas for Controller API
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ControllerCreate(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=100)
    label: Optional[str] = Field(None, max_length=255)


class ControllerClaim(BaseModel):
    # Format is checked by the claim protocol so a bad code is a plain 400
    code: str
    label: Optional[str] = Field(None, max_length=255)


class AssignmentCreate(BaseModel):
    controller_id: int
    label: Optional[str] = Field(None, max_length=255)


class AssignmentLabelUpdate(BaseModel):
    label: Optional[str] = Field(None, max_length=255)


class ControllerResponse(BaseModel):
    id: int
    device_id: str
    label: Optional[str] = None
    pairing_code: Optional[str] = None
    claimed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AssignmentResponse(BaseModel):
    user_id: int
    controller_id: int
    label: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserControllerResponse(BaseModel):
    """An assignment joined with its controller"""
    user_id: int
    controller_id: int
    device_id: str
    controller_label: Optional[str] = None
    assignment_label: Optional[str] = None
    pairing_code: Optional[str] = None
    created_at: datetime


class ClaimResponse(BaseModel):
    controller: ControllerResponse
    assignment: AssignmentResponse
