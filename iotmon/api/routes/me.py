"""
Self-service routes for the current user
"""
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from iotmon.models import get_db, AuditAction
from iotmon.schemas import ProfileUpdate, UserPasswordChange, UserResponse
from iotmon.core.errors import InvalidCredentials
from iotmon.core.security import (
    Requester, get_password_hash, verify_password, require_requester
)
from iotmon.services import audit_service
from iotmon.services.user_service import ensure_email_available, flush_user, get_user_or_404

router = APIRouter(prefix="/me", tags=["Profile"])


@router.get("", response_model=UserResponse)
async def get_me(
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    user = await get_user_or_404(db, requester.id)
    return UserResponse.from_user(user)


@router.patch("", response_model=UserResponse)
async def update_me(
    profile: ProfileUpdate,
    request: Request,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Update own username and email.
    """
    user = await get_user_or_404(db, requester.id)
    if profile.email != user.email:
        await ensure_email_available(db, profile.email, exclude_id=user.id)

    changes = {}
    for field in ("username", "email"):
        value = getattr(profile, field)
        if getattr(user, field) != value:
            changes[field] = {"old": getattr(user, field), "new": value}
            setattr(user, field, value)

    if changes:
        await flush_user(db, user)
        await audit_service.record(
            db=db,
            action=AuditAction.ME_UPDATE,
            entity_type="user",
            entity_id=user.id,
            actor=requester,
            request=request,
            metadata=changes
        )

    await db.commit()
    return UserResponse.from_user(user)


@router.patch("/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    password_data: UserPasswordChange,
    request: Request,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Change own password; clears the forced-change flag.
    """
    user = await get_user_or_404(db, requester.id)
    if not verify_password(password_data.current_password, user.password_hash):
        raise InvalidCredentials("Current password is incorrect")

    user.password_hash = get_password_hash(password_data.new_password)
    user.must_change_password = False

    await audit_service.record(
        db=db,
        action=AuditAction.USER_PASSWORD_CHANGE,
        entity_type="user",
        entity_id=user.id,
        actor=requester,
        request=request
    )

    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(
    request: Request,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete own account and its controller assignments.
    """
    user = await get_user_or_404(db, requester.id)

    await audit_service.record(
        db=db,
        action=AuditAction.ME_DELETE,
        entity_type="user",
        entity_id=user.id,
        actor=requester,
        request=request
    )

    await db.delete(user)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
