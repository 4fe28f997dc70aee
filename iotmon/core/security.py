"""
Security utilities for authentication and authorization
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
import bcrypt
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from iotmon.core.config import settings
from iotmon.core.errors import AuthenticationRequired, AuthorizationDenied
from iotmon.core.roles import effective_role, is_admin, is_dev
from iotmon.models.database import get_db
from iotmon.models.user import User, UserRole


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # Malformed stored hash
        return False


def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    ).decode('utf-8')


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token carrying the user id"""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": str(user_id), "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str, token_type: str = "access") -> Optional[dict]:
    """Verify and decode JWT token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        if payload.get("type") != token_type:
            return None
        return payload
    except JWTError:
        return None


@dataclass(frozen=True)
class CallerIdentity:
    """An externally asserted user id, or None for an anonymous caller."""
    user_id: Optional[int] = None


@dataclass(frozen=True)
class Requester:
    """Normalized snapshot of the user making the current call."""
    id: int
    username: str
    email: str
    role: UserRole
    must_change_password: bool = False

    @classmethod
    def from_user(cls, user: User) -> "Requester":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=effective_role(user.role, user.is_admin, user.is_dev),
            must_change_password=bool(user.must_change_password),
        )


# Ids live in a 32-bit INTEGER column
MAX_USER_ID = 2**31 - 1


def _parse_user_id(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    raw = raw.strip()
    if not (raw.isascii() and raw.isdigit()):
        return None
    user_id = int(raw)
    if user_id > MAX_USER_ID:
        return None
    return user_id


def get_caller_identity(request: Request) -> CallerIdentity:
    """Extract the asserted user id from a bearer token or the id header"""
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        payload = verify_token(token.strip(), "access")
        if payload is not None:
            return CallerIdentity(_parse_user_id(str(payload.get("sub", ""))))
        return CallerIdentity()

    if settings.TRUST_USER_ID_HEADER:
        return CallerIdentity(_parse_user_id(request.headers.get(settings.USER_ID_HEADER)))

    return CallerIdentity()


async def resolve_requester(db: AsyncSession, identity: CallerIdentity) -> Optional[Requester]:
    """Look up the caller; an absent id never touches the database."""
    if identity.user_id is None:
        return None

    result = await db.execute(select(User).where(User.id == identity.user_id))
    user = result.scalar_one_or_none()
    if user is None:
        return None
    return Requester.from_user(user)


async def get_requester(
    identity: CallerIdentity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db)
) -> Optional[Requester]:
    return await resolve_requester(db, identity)


async def require_requester(
    requester: Optional[Requester] = Depends(get_requester)
) -> Requester:
    """Ensure a resolvable caller"""
    if requester is None:
        raise AuthenticationRequired()
    return requester


async def require_admin(requester: Requester = Depends(require_requester)) -> Requester:
    if not is_admin(requester):
        raise AuthorizationDenied()
    return requester


async def require_dev(requester: Requester = Depends(require_requester)) -> Requester:
    if not is_dev(requester):
        raise AuthorizationDenied()
    return requester
