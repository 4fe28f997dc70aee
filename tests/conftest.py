"""
Shared fixtures: in-memory database, API client and seeding helpers
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["TRUST_USER_ID_HEADER"] = "true"

from datetime import datetime
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from iotmon.core.security import get_password_hash
from iotmon.main import app
from iotmon.models import (
    AuditLog, Base, Controller, Reading, User, UserControllerAssignment, UserRole, get_db, utcnow
)
from iotmon.services import request_stats

PASSWORD = "password123"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite defers BEGIN, which breaks SAVEPOINT; emit it ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    request_stats.reset()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth(user) -> dict:
    return {"x-user-id": str(user.id)}


class Seeder:
    """Writes fixtures through short-lived sessions so none stays open"""

    def __init__(self, session_maker):
        self.session_maker = session_maker

    async def _save(self, obj):
        async with self.session_maker() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def user(
        self,
        username: str = "user",
        email: Optional[str] = None,
        role: UserRole = UserRole.USER,
        **columns
    ) -> User:
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=PASSWORD_HASH,
        )
        user.set_role(role)
        for name, value in columns.items():
            setattr(user, name, value)
        return await self._save(user)

    async def controller(
        self,
        device_id: str,
        pairing_code: str = "12345",
        label: Optional[str] = None,
        claimed: bool = False
    ) -> Controller:
        return await self._save(Controller(
            device_id=device_id,
            pairing_code=pairing_code,
            label=label,
            claimed_at=utcnow() if claimed else None,
        ))

    async def assign(self, user: User, controller: Controller, label: Optional[str] = None):
        return await self._save(UserControllerAssignment(
            user_id=user.id, controller_id=controller.id, label=label
        ))

    async def reading(self, device_id: str, ts: Optional[datetime] = None, **values) -> Reading:
        return await self._save(Reading(device_id=device_id, ts=ts or utcnow(), **values))

    async def audit(self, action: str = "user.login", created_at: Optional[datetime] = None, **columns):
        return await self._save(AuditLog(
            action=action,
            entity_type=columns.pop("entity_type", "user"),
            created_at=created_at or utcnow(),
            **columns
        ))

    async def all(self, model, *criteria):
        async with self.session_maker() as session:
            result = await session.execute(select(model).where(*criteria))
            return list(result.scalars().all())

    async def get(self, model, ident):
        async with self.session_maker() as session:
            return await session.get(model, ident)


@pytest.fixture
def seed(session_maker):
    return Seeder(session_maker)


class RecordingSession:
    """Stand-in session that records every call and returns nothing"""

    def __init__(self):
        self.calls = []

    async def execute(self, *args, **kwargs):
        self.calls.append(("execute", args))
        raise AssertionError("execute should not have been called")

    async def get(self, *args, **kwargs):
        self.calls.append(("get", args))
        raise AssertionError("get should not have been called")

    def add(self, *args, **kwargs):
        self.calls.append(("add", args))

    async def flush(self, *args, **kwargs):
        self.calls.append(("flush", args))


@pytest.fixture
def recording_session():
    return RecordingSession()
