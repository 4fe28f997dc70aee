"""
Pydantic schemas package
"""
from iotmon.schemas.user import (
    UserCreate, UserInvite, ProfileUpdate, UserUpdate, UserPasswordChange,
    UserResponse, UserListResponse, UserInviteResponse, LoginRequest, LoginResponse
)
from iotmon.schemas.controller import (
    ControllerCreate, ControllerClaim, AssignmentCreate, AssignmentLabelUpdate,
    ControllerResponse, AssignmentResponse, UserControllerResponse, ClaimResponse
)
from iotmon.schemas.reading import ReadingResponse, Pagination, ReadingPage
from iotmon.schemas.audit import AuditLogResponse, AuditLogListResponse, AuditPurgeResponse

__all__ = [
    # User
    "UserCreate", "UserInvite", "ProfileUpdate", "UserUpdate", "UserPasswordChange",
    "UserResponse", "UserListResponse", "UserInviteResponse", "LoginRequest", "LoginResponse",
    # Controller
    "ControllerCreate", "ControllerClaim", "AssignmentCreate", "AssignmentLabelUpdate",
    "ControllerResponse", "AssignmentResponse", "UserControllerResponse", "ClaimResponse",
    # Reading
    "ReadingResponse", "Pagination", "ReadingPage",
    # Audit
    "AuditLogResponse", "AuditLogListResponse", "AuditPurgeResponse",
]
