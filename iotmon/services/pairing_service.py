"""
Pairing codes and the controller claim protocol

A controller is created unclaimed with a 5-digit pairing code. The first
successful claim (or an admin assignment) marks it claimed; its code is
kept for display but no longer redeemable and may be reissued to a new
controller.
"""
import logging
import re
import secrets
from typing import Awaitable, Callable, Optional
from fastapi import Request
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.ext.asyncio import AsyncSession

from iotmon.core.config import settings
from iotmon.core.errors import (
    AuthenticationRequired, Conflict, NotFound, PairingCodeExhausted, ValidationError
)
from iotmon.models import (
    AuditAction, Controller, User, UserControllerAssignment, utcnow
)
from iotmon.services.audit_service import audit_service

logger = logging.getLogger(__name__)

PAIRING_CODE_PATTERN = re.compile(r"^\d{5}$")
PAIRING_CODE_SPACE = 100_000


class PairingCodeGenerator:
    """Draws zero-padded 5-digit codes, retrying while a code is taken."""

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        randbelow: Callable[[int], int] = secrets.randbelow
    ):
        self.max_attempts = max_attempts or settings.PAIRING_CODE_MAX_ATTEMPTS
        self._randbelow = randbelow

    def candidate(self) -> str:
        return f"{self._randbelow(PAIRING_CODE_SPACE):05d}"

    async def generate(self, is_taken: Callable[[str], Awaitable[bool]]) -> str:
        for _ in range(self.max_attempts):
            code = self.candidate()
            if not await is_taken(code):
                return code
        logger.error(f"No free pairing code after {self.max_attempts} attempts")
        raise PairingCodeExhausted()


pairing_code_generator = PairingCodeGenerator()


def validate_pairing_code(code: Optional[str]) -> str:
    code = (code or "").strip()
    if not PAIRING_CODE_PATTERN.match(code):
        raise ValidationError("Pairing code must be exactly 5 digits")
    return code


async def code_in_use(db: AsyncSession, code: str) -> bool:
    """True when an unclaimed controller currently holds the code"""
    result = await db.execute(
        select(Controller.id).where(
            Controller.pairing_code == code,
            Controller.claimed_at.is_(None)
        ).limit(1)
    )
    return result.first() is not None


async def mark_claimed(db: AsyncSession, controller: Controller) -> bool:
    """
    Compare-and-set the claim timestamp. Returns False when another
    request claimed the controller first.
    """
    now = utcnow()
    result = await db.execute(
        update(Controller)
        .where(Controller.id == controller.id, Controller.claimed_at.is_(None))
        .values(claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        set_committed_value(controller, "claimed_at", now)
        return True
    return False


async def create_controller(
    db: AsyncSession,
    device_id: str,
    label: Optional[str] = None,
    generator: PairingCodeGenerator = pairing_code_generator
) -> Controller:
    """Register a controller with a fresh pairing code"""
    existing = await db.execute(select(Controller.id).where(Controller.device_id == device_id))
    if existing.first() is not None:
        raise Conflict("A controller with this device id already exists")

    # The partial unique index decides races the in-use check cannot see
    for _ in range(generator.max_attempts):
        code = await generator.generate(lambda candidate: code_in_use(db, candidate))
        controller = Controller(device_id=device_id, label=label, pairing_code=code)
        try:
            async with db.begin_nested():
                db.add(controller)
                await db.flush()
        except IntegrityError:
            dup = await db.execute(select(Controller.id).where(Controller.device_id == device_id))
            if dup.first() is not None:
                raise Conflict("A controller with this device id already exists")
            logger.info(f"Pairing code {code} taken concurrently, retrying")
            continue
        return controller

    raise PairingCodeExhausted()


async def claim_controller(
    db: AsyncSession,
    requester,
    code: Optional[str],
    label: Optional[str] = None,
    request: Optional[Request] = None
) -> tuple[Controller, UserControllerAssignment]:
    """Redeem a pairing code for the requester"""
    if requester is None:
        raise AuthenticationRequired()
    code = validate_pairing_code(code)

    result = await db.execute(
        select(Controller).where(
            Controller.pairing_code == code,
            Controller.claimed_at.is_(None)
        )
    )
    controller = result.scalars().first()

    if controller is None:
        claimed = await db.execute(
            select(Controller.id).where(
                Controller.pairing_code == code,
                Controller.claimed_at.is_not(None)
            ).limit(1)
        )
        if claimed.first() is not None:
            raise Conflict("Controller already claimed")
        raise NotFound("Invalid pairing code")

    if not await mark_claimed(db, controller):
        raise Conflict("Controller already claimed")

    assignment = UserControllerAssignment(
        user_id=requester.id,
        controller_id=controller.id,
        label=label
    )
    try:
        async with db.begin_nested():
            db.add(assignment)
            await db.flush()
    except IntegrityError:
        raise Conflict("Controller already assigned to this user")

    await audit_service.record(
        db=db,
        action=AuditAction.CONTROLLER_CLAIM,
        entity_type="controller",
        entity_id=controller.id,
        actor=requester,
        request=request,
        metadata={"device_id": controller.device_id, "label": label}
    )

    return controller, assignment


async def assign_controller(
    db: AsyncSession,
    user_id: int,
    controller_id: int,
    label: Optional[str] = None
) -> tuple[Controller, UserControllerAssignment]:
    """Admin assignment; also takes the controller out of the claimable pool"""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    controller = await db.get(Controller, controller_id)
    if controller is None:
        raise NotFound("Controller not found")

    existing = await db.execute(
        select(UserControllerAssignment.id).where(
            UserControllerAssignment.user_id == user_id,
            UserControllerAssignment.controller_id == controller_id
        )
    )
    if existing.first() is not None:
        raise Conflict("Controller already assigned to this user")

    if controller.claimed_at is None:
        await mark_claimed(db, controller)

    assignment = UserControllerAssignment(user_id=user_id, controller_id=controller_id, label=label)
    try:
        async with db.begin_nested():
            db.add(assignment)
            await db.flush()
    except IntegrityError:
        raise Conflict("Controller already assigned to this user")

    return controller, assignment
