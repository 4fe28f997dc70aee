"""
User management routes
"""
from typing import Optional
from fastapi import APIRouter, Depends, Request, Response, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from iotmon.models import get_db, User, Controller, UserControllerAssignment, AuditAction
from iotmon.schemas import (
    UserUpdate, UserResponse, UserListResponse,
    AssignmentCreate, AssignmentLabelUpdate, AssignmentResponse, UserControllerResponse
)
from iotmon.core.errors import NotFound
from iotmon.core.roles import ensure_self_or_admin
from iotmon.core.security import Requester, require_admin, require_requester
from iotmon.services import audit_service
from iotmon.services import user_service
from iotmon.services.pairing_service import assign_controller
from iotmon.services.readings_query import escape_like

router = APIRouter(prefix="/users", tags=["User Management"])


@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    requester: Requester = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List all users with optional search and pagination.
    Requires admin or dev role.
    """
    query = select(User)
    count_query = select(func.count(User.id))

    if search:
        search_filter = f"%{escape_like(search)}%"
        condition = (
            User.email.ilike(search_filter, escape="\\") |
            User.username.ilike(search_filter, escape="\\")
        )
        query = query.where(condition)
        count_query = count_query.where(condition)

    # Get total count
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    # Apply pagination
    query = query.order_by(User.created_at.desc(), User.id.desc())
    query = query.offset((page - 1) * per_page).limit(per_page)

    result = await db.execute(query)
    users = result.scalars().all()

    return UserListResponse(
        users=[UserResponse.from_user(user) for user in users],
        total=total,
        page=page,
        per_page=per_page
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    requester: Requester = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Get a specific user by ID.
    """
    user = await user_service.get_user_or_404(db, user_id)
    return UserResponse.from_user(user)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    request: Request,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a user. Role and account flags require dev.
    """
    user = await user_service.update_user(
        db,
        actor=requester,
        user_id=user_id,
        changes=user_data.model_dump(exclude_unset=True),
        request=request
    )
    await db.commit()
    return UserResponse.from_user(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    request: Request,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete another user (dev only). Self-deletion goes through /me.
    """
    await user_service.delete_user(db, actor=requester, user_id=user_id, request=request)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{user_id}/controllers", response_model=list[UserControllerResponse])
async def list_user_controllers(
    user_id: int,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Controllers assigned to a user. Self or admin.
    """
    ensure_self_or_admin(requester, user_id)

    result = await db.execute(
        select(UserControllerAssignment, Controller)
        .join(Controller, UserControllerAssignment.controller_id == Controller.id)
        .where(UserControllerAssignment.user_id == user_id)
        .order_by(UserControllerAssignment.created_at.asc(), UserControllerAssignment.id.asc())
    )
    return [
        UserControllerResponse(
            user_id=assignment.user_id,
            controller_id=controller.id,
            device_id=controller.device_id,
            controller_label=controller.label,
            assignment_label=assignment.label,
            pairing_code=controller.pairing_code,
            created_at=assignment.created_at
        )
        for assignment, controller in result.all()
    ]


@router.post("/{user_id}/controllers", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def add_user_controller(
    user_id: int,
    payload: AssignmentCreate,
    request: Request,
    requester: Requester = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Assign a controller to a user (admin).
    """
    controller, assignment = await assign_controller(
        db, user_id=user_id, controller_id=payload.controller_id, label=payload.label
    )

    await audit_service.record(
        db=db,
        action=AuditAction.CONTROLLER_ASSIGN,
        entity_type="controller",
        entity_id=controller.id,
        actor=requester,
        request=request,
        metadata={"user_id": user_id, "device_id": controller.device_id, "label": payload.label}
    )

    await db.commit()
    return AssignmentResponse.model_validate(assignment)


async def _get_assignment(db: AsyncSession, user_id: int, controller_id: int) -> UserControllerAssignment:
    result = await db.execute(
        select(UserControllerAssignment).where(
            UserControllerAssignment.user_id == user_id,
            UserControllerAssignment.controller_id == controller_id
        )
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise NotFound("Assignment not found")
    return assignment


@router.patch("/{user_id}/controllers/{controller_id}", response_model=AssignmentResponse)
async def relabel_user_controller(
    user_id: int,
    controller_id: int,
    payload: AssignmentLabelUpdate,
    request: Request,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Change the per-user label of an assignment. Self or admin.
    """
    ensure_self_or_admin(requester, user_id)
    assignment = await _get_assignment(db, user_id, controller_id)

    old_label = assignment.label
    assignment.label = payload.label
    await db.flush()

    await audit_service.record(
        db=db,
        action=AuditAction.CONTROLLER_RELABEL,
        entity_type="controller",
        entity_id=controller_id,
        actor=requester,
        request=request,
        metadata={"user_id": user_id, "old": old_label, "new": payload.label}
    )

    await db.commit()
    return AssignmentResponse.model_validate(assignment)


@router.delete("/{user_id}/controllers/{controller_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_user_controller(
    user_id: int,
    controller_id: int,
    request: Request,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Remove an assignment. Self or admin.
    """
    ensure_self_or_admin(requester, user_id)
    assignment = await _get_assignment(db, user_id, controller_id)

    await audit_service.record(
        db=db,
        action=AuditAction.CONTROLLER_UNASSIGN,
        entity_type="controller",
        entity_id=controller_id,
        actor=requester,
        request=request,
        metadata={"user_id": user_id}
    )

    await db.delete(assignment)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
