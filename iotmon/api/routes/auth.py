"""
Authentication routes
"""
from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from iotmon.models import get_db, User, UserRole, AuditAction
from iotmon.schemas import UserCreate, UserResponse, LoginRequest, LoginResponse
from iotmon.core.errors import InvalidCredentials
from iotmon.core.security import verify_password, get_password_hash, create_access_token
from iotmon.services import audit_service
from iotmon.services.user_service import ensure_email_available, flush_user

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Self-registration. Always creates a plain user.
    """
    await ensure_email_available(db, user_data.email)

    user = User(
        username=user_data.username,
        email=user_data.email,
        password_hash=get_password_hash(user_data.password)
    )
    user.set_role(UserRole.USER)
    await flush_user(db, user)

    await audit_service.record(
        db=db,
        action=AuditAction.USER_REGISTER,
        entity_type="user",
        entity_id=user.id,
        actor=user,
        request=request
    )

    await db.commit()
    return UserResponse.from_user(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Verify credentials and return the user with an access token.
    """
    result = await db.execute(select(User).where(User.email == login_data.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.password_hash):
        # Log failed attempt
        if user:
            await audit_service.record(
                db=db,
                action=AuditAction.USER_LOGIN_FAILED,
                entity_type="user",
                entity_id=user.id,
                request=request
            )
            await db.commit()
        raise InvalidCredentials()

    await audit_service.record(
        db=db,
        action=AuditAction.USER_LOGIN,
        entity_type="user",
        entity_id=user.id,
        actor=user,
        request=request
    )
    await db.commit()

    return LoginResponse(
        user=UserResponse.from_user(user),
        access_token=create_access_token(user.id)
    )
