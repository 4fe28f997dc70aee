"""
Role authority: privilege predicates over resolved users

A subject is anything with a ``role`` attribute, optionally carrying the
legacy ``is_admin`` / ``is_dev`` flags (ORM users read straight from the
table), or ``None`` for an anonymous caller.
"""
from typing import Any, Optional

from iotmon.core.errors import AuthorizationDenied, ValidationError
from iotmon.models.user import UserRole


def normalize_flag(value: Any) -> bool:
    """Interpret a legacy flag stored as bool, 0/1 or "0"/"1"/"true"."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true")
    return False


def effective_role(role: Any, is_admin_flag: Any = None, is_dev_flag: Any = None) -> UserRole:
    """Strongest role implied by the role column and either legacy flag."""
    try:
        resolved = UserRole(role) if role is not None else UserRole.USER
    except ValueError:
        resolved = UserRole.USER
    if normalize_flag(is_dev_flag):
        return UserRole.DEV
    if normalize_flag(is_admin_flag) and resolved.rank < UserRole.ADMIN.rank:
        return UserRole.ADMIN
    return resolved


def role_of(subject: Any) -> Optional[UserRole]:
    if subject is None:
        return None
    return effective_role(
        getattr(subject, "role", None),
        getattr(subject, "is_admin", None),
        getattr(subject, "is_dev", None),
    )


def is_admin(subject: Any) -> bool:
    """Admin or dev; dev implies every admin privilege."""
    role = role_of(subject)
    return role is not None and role.rank >= UserRole.ADMIN.rank


def is_dev(subject: Any) -> bool:
    return role_of(subject) == UserRole.DEV


def ensure_self_or_admin(requester: Any, user_id: int) -> None:
    if requester.id != user_id and not is_admin(requester):
        raise AuthorizationDenied()


def apply_role_change(
    current: UserRole,
    role: Optional[UserRole] = None,
    is_admin_flag: Optional[bool] = None,
    is_dev_flag: Optional[bool] = None,
) -> UserRole:
    """
    Fold an explicit role and the legacy boolean fields of an update
    payload into a single target role.
    """
    if is_dev_flag is True and is_admin_flag is False:
        raise ValidationError("is_dev cannot be set while clearing is_admin")

    if role is not None:
        role = UserRole(role)
        # An explicit role must agree with any flag sent alongside it
        implied_admin = role.rank >= UserRole.ADMIN.rank
        implied_dev = role == UserRole.DEV
        if (is_admin_flag is not None and is_admin_flag != implied_admin) or \
                (is_dev_flag is not None and is_dev_flag != implied_dev):
            raise ValidationError(f"Role '{role.value}' contradicts the is_admin/is_dev flags")
        return role

    target = UserRole(current)

    if is_dev_flag is True:
        target = UserRole.DEV
    elif is_dev_flag is False and target == UserRole.DEV:
        target = UserRole.ADMIN

    if is_admin_flag is True and target == UserRole.USER:
        target = UserRole.ADMIN
    elif is_admin_flag is False:
        target = UserRole.USER

    return target
