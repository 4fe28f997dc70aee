"""
Pydantic schemas for User API
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, field_validator
from iotmon.core.roles import effective_role
from iotmon.models.user import User, UserRole


# Create schemas
class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class UserInvite(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    role: UserRole = UserRole.USER


# Update schemas
class ProfileUpdate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr


class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    is_admin: Optional[bool] = None
    is_dev: Optional[bool] = None
    must_change_password: Optional[bool] = None

    # Fields may be omitted but not sent as null
    @field_validator('username', 'email', 'role', 'is_admin', 'is_dev', 'must_change_password')
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError('may be omitted but not null')
        return v


class UserPasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


# Response schemas
class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: UserRole
    is_admin: bool
    is_dev: bool
    must_change_password: bool
    invited_by: Optional[int] = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Serialize with the boolean flags projected from the effective role"""
        role = effective_role(user.role, user.is_admin, user.is_dev)
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=role,
            is_admin=role in (UserRole.ADMIN, UserRole.DEV),
            is_dev=role == UserRole.DEV,
            must_change_password=bool(user.must_change_password),
            invited_by=user.invited_by,
            created_at=user.created_at,
        )


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
    page: int
    per_page: int


class UserInviteResponse(BaseModel):
    user: UserResponse
    temp_password: str


# Auth schemas
class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
