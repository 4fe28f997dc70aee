"""
Admin console routes: invites and system health
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from iotmon.models import get_db
from iotmon.schemas import UserInvite, UserInviteResponse, UserResponse
from iotmon.core.security import Requester, require_admin, require_dev
from iotmon.services import user_service
from iotmon.services.health_service import collect_health

router = APIRouter(prefix="/admin", tags=["Administration"])


@router.post("/users/invite", response_model=UserInviteResponse, status_code=status.HTTP_201_CREATED)
async def invite_user(
    payload: UserInvite,
    request: Request,
    requester: Requester = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Invite a user with a temporary password.
    Admins may invite plain users; admin and dev invites require dev.
    """
    user, temp_password = await user_service.invite_user(
        db,
        actor=requester,
        username=payload.username,
        email=payload.email,
        role=payload.role,
        request=request
    )
    await db.commit()
    return UserInviteResponse(user=UserResponse.from_user(user), temp_password=temp_password)


@router.get("/health")
async def system_health(
    requester: Requester = Depends(require_dev),
    db: AsyncSession = Depends(get_db)
):
    """
    Uptime, request counters, storage, device and user statistics (dev).
    """
    return await collect_health(db)
