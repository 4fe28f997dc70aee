"""
Controller registration and claim routes
"""
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from iotmon.models import get_db, Controller, Reading, AuditAction
from iotmon.schemas import (
    ControllerCreate, ControllerClaim, ControllerResponse, AssignmentResponse, ClaimResponse
)
from iotmon.core.errors import NotFound
from iotmon.core.security import Requester, require_admin, require_requester
from iotmon.services import audit_service
from iotmon.services.pairing_service import claim_controller, create_controller

router = APIRouter(prefix="/controllers", tags=["Controllers"])


@router.get("", response_model=list[ControllerResponse])
async def list_controllers(
    requester: Requester = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List every registered controller (admin).
    """
    result = await db.execute(select(Controller).order_by(Controller.created_at.desc(), Controller.id.desc()))
    return [ControllerResponse.model_validate(c) for c in result.scalars().all()]


@router.get("/available-devices", response_model=list[str])
async def list_available_devices(
    requester: Requester = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Device ids seen in readings that have no controller yet (admin).
    """
    registered = select(Controller.device_id)
    result = await db.execute(
        select(Reading.device_id)
        .where(Reading.device_id.not_in(registered))
        .distinct()
        .order_by(Reading.device_id)
    )
    return [row[0] for row in result.all()]


@router.post("", response_model=ControllerResponse, status_code=status.HTTP_201_CREATED)
async def register_controller(
    payload: ControllerCreate,
    request: Request,
    requester: Requester = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Register a controller and issue its pairing code (admin).
    """
    controller = await create_controller(db, device_id=payload.device_id, label=payload.label)

    await audit_service.record(
        db=db,
        action=AuditAction.CONTROLLER_CREATE,
        entity_type="controller",
        entity_id=controller.id,
        actor=requester,
        request=request,
        metadata={"device_id": controller.device_id, "label": controller.label}
    )

    await db.commit()
    return ControllerResponse.model_validate(controller)


@router.post("/claim", response_model=ClaimResponse)
async def claim(
    payload: ControllerClaim,
    request: Request,
    requester: Requester = Depends(require_requester),
    db: AsyncSession = Depends(get_db)
):
    """
    Redeem a pairing code for the current user.
    """
    controller, assignment = await claim_controller(
        db, requester, code=payload.code, label=payload.label, request=request
    )
    await db.commit()
    return ClaimResponse(
        controller=ControllerResponse.model_validate(controller),
        assignment=AssignmentResponse.model_validate(assignment)
    )


@router.delete("/{controller_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_controller(
    controller_id: int,
    request: Request,
    requester: Requester = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a controller and its assignments (admin).
    """
    controller = await db.get(Controller, controller_id)
    if controller is None:
        raise NotFound("Controller not found")

    await audit_service.record(
        db=db,
        action=AuditAction.CONTROLLER_DELETE,
        entity_type="controller",
        entity_id=controller.id,
        actor=requester,
        request=request,
        metadata={"device_id": controller.device_id}
    )

    await db.delete(controller)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
