"""
User administration: privileged edits, deletion and invites
"""
import logging
import secrets
from typing import Optional
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from iotmon.core.config import settings
from iotmon.core.errors import AuthorizationDenied, Conflict, NotFound, ValidationError
from iotmon.core.roles import apply_role_change, effective_role, is_admin, is_dev
from iotmon.core.security import get_password_hash
from iotmon.models import AuditAction, User, UserRole
from iotmon.services.audit_service import audit_service

logger = logging.getLogger(__name__)

PRIVILEGED_FIELDS = ("role", "is_admin", "is_dev", "must_change_password")


async def get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


async def ensure_email_available(db: AsyncSession, email: str, exclude_id: Optional[int] = None) -> None:
    query = select(User.id).where(User.email == email)
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    result = await db.execute(query)
    if result.first() is not None:
        raise Conflict("Email already registered")


async def flush_user(db: AsyncSession, user: User) -> None:
    """Flush pending user changes, reporting a lost email race as a conflict"""
    # Read before the savepoint; a rollback expires the instance
    email, user_id = user.email, user.id
    try:
        async with db.begin_nested():
            db.add(user)
            await db.flush()
    except IntegrityError:
        if email is not None:
            query = select(User.id).where(User.email == email)
            if user_id is not None:
                query = query.where(User.id != user_id)
            taken = await db.execute(query)
            if taken.first() is not None:
                raise Conflict("Email already registered")
        raise


async def update_user(
    db: AsyncSession,
    actor,
    user_id: int,
    changes: dict,
    request: Optional[Request] = None
) -> User:
    """
    Apply an admin edit. Username and email need admin; role and the
    legacy flags need dev, even when the requested value is unchanged.
    """
    if not is_admin(actor):
        raise AuthorizationDenied()
    if any(name in changes for name in PRIVILEGED_FIELDS) and not is_dev(actor):
        raise AuthorizationDenied("Only dev users can change roles or account flags")

    user = await get_user_or_404(db, user_id)
    current = effective_role(user.role, user.is_admin, user.is_dev)
    audit_changes = {}

    if "email" in changes and changes["email"] != user.email:
        await ensure_email_available(db, changes["email"], exclude_id=user.id)

    for name in ("username", "email", "must_change_password"):
        if name in changes and getattr(user, name) != changes[name]:
            audit_changes[name] = {"old": getattr(user, name), "new": changes[name]}
            setattr(user, name, changes[name])

    if any(name in changes for name in ("role", "is_admin", "is_dev")):
        target = apply_role_change(
            current,
            role=changes.get("role"),
            is_admin_flag=changes.get("is_admin"),
            is_dev_flag=changes.get("is_dev"),
        )
        if target != current or user.role != target.value:
            audit_changes["role"] = {"old": current.value, "new": target.value}
        user.set_role(target)

    await flush_user(db, user)

    if audit_changes:
        action = AuditAction.USER_ROLE_CHANGE if "role" in audit_changes else AuditAction.USER_UPDATE
        await audit_service.record(
            db=db,
            action=action,
            entity_type="user",
            entity_id=user.id,
            actor=actor,
            request=request,
            metadata=audit_changes
        )

    return user


async def delete_user(
    db: AsyncSession,
    actor,
    user_id: int,
    request: Optional[Request] = None
) -> None:
    """Privileged delete; accounts are removed by their owner through /me"""
    if actor.id == user_id:
        raise ValidationError("Cannot delete your own account here")
    if not is_dev(actor):
        raise AuthorizationDenied("Only dev users can delete users")

    user = await get_user_or_404(db, user_id)

    await audit_service.record(
        db=db,
        action=AuditAction.USER_DELETE,
        entity_type="user",
        entity_id=user.id,
        actor=actor,
        request=request,
        metadata={"email": user.email, "role": effective_role(user.role, user.is_admin, user.is_dev).value}
    )
    await db.delete(user)
    await db.flush()


def generate_temp_password() -> str:
    return secrets.token_urlsafe(settings.TEMP_PASSWORD_BYTES)


async def invite_user(
    db: AsyncSession,
    actor,
    username: str,
    email: str,
    role: UserRole = UserRole.USER,
    request: Optional[Request] = None
) -> tuple[User, str]:
    """Create an account with a temporary password that must be changed"""
    role = UserRole(role)
    if not is_admin(actor):
        raise AuthorizationDenied()
    if role != UserRole.USER and not is_dev(actor):
        raise AuthorizationDenied("Only dev users can invite admin or dev users")

    await ensure_email_available(db, email)

    temp_password = generate_temp_password()
    user = User(
        username=username,
        email=email,
        password_hash=get_password_hash(temp_password),
        invited_by=actor.id,
        must_change_password=True,
    )
    user.set_role(role)
    await flush_user(db, user)

    await audit_service.record(
        db=db,
        action=AuditAction.USER_INVITE,
        entity_type="user",
        entity_id=user.id,
        actor=actor,
        request=request,
        metadata={"email": email, "role": role.value}
    )
    logger.info(f"User {email} invited by {actor.email} with role {role.value}")

    return user, temp_password
