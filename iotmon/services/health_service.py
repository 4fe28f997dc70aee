"""
Operational health statistics for the dev dashboard
"""
import time
from collections import Counter
from datetime import timedelta
from sqlalchemy import select, func, text
from sqlalchemy.ext.asyncio import AsyncSession

from iotmon.models import (
    AuditLog, Controller, Reading, User, UserControllerAssignment, UserRole, utcnow
)

TRACKED_TABLES = (User, Controller, UserControllerAssignment, Reading, AuditLog)


class RequestStats:
    """In-process request counters, reset on restart"""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.started_at = utcnow()
        self._started_monotonic = time.monotonic()
        self.total = 0
        self.by_status = Counter()
        self.by_route = Counter()

    def record(self, route: str, status_code: int) -> None:
        self.total += 1
        self.by_status[str(status_code)] += 1
        self.by_route[route] += 1

    @property
    def uptime_seconds(self) -> int:
        return int(time.monotonic() - self._started_monotonic)

    def snapshot(self) -> dict:
        return {
            "total": self.total,
            "byStatus": dict(self.by_status),
            "byRoute": dict(self.by_route),
            "since": self.started_at.isoformat() + "Z",
        }


request_stats = RequestStats()


async def _count(db: AsyncSession, query) -> int:
    result = await db.execute(query)
    return result.scalar() or 0


async def _database_stats(db: AsyncSession) -> dict:
    is_postgres = db.get_bind().dialect.name == "postgresql"
    tables = []
    for model in TRACKED_TABLES:
        table = model.__tablename__
        rows = await _count(db, select(func.count()).select_from(model))
        size = 0
        if is_postgres:
            size = await _count(db, text("SELECT pg_total_relation_size(:table)").bindparams(table=table))
        tables.append({"table": table, "bytes": size, "rows": rows})

    size_bytes = 0
    if is_postgres:
        size_bytes = await _count(db, text("SELECT pg_database_size(current_database())"))
    return {"sizeBytes": size_bytes, "tableSizes": tables}


async def collect_health(db: AsyncSession) -> dict:
    now = utcnow()

    devices = {
        "totalControllers": await _count(db, select(func.count(Controller.id))),
        "distinctDevices": await _count(db, select(func.count(func.distinct(Reading.device_id)))),
        "activeDevicesLast24h": await _count(
            db,
            select(func.count(func.distinct(Reading.device_id))).where(Reading.ts > now - timedelta(hours=24))
        ),
        "totalReadings": await _count(db, select(func.count(Reading.id))),
        "latestReadingAt": None,
    }
    latest = (await db.execute(select(func.max(Reading.ts)))).scalar()
    if latest is not None:
        devices["latestReadingAt"] = latest.isoformat()

    admin_roles = (UserRole.ADMIN.value, UserRole.DEV.value)
    users = {
        "total": await _count(db, select(func.count(User.id))),
        "admins": await _count(
            db, select(func.count(User.id)).where(User.role.in_(admin_roles) | User.is_admin.is_(True))
        ),
        "devs": await _count(
            db, select(func.count(User.id)).where((User.role == UserRole.DEV.value) | User.is_dev.is_(True))
        ),
        "invited": await _count(db, select(func.count(User.id)).where(User.invited_by.is_not(None))),
        "mustChangePassword": await _count(
            db, select(func.count(User.id)).where(User.must_change_password.is_(True))
        ),
    }

    return {
        "serverTime": now.isoformat() + "Z",
        "uptimeSeconds": request_stats.uptime_seconds,
        "requests": request_stats.snapshot(),
        "database": await _database_stats(db),
        "devices": devices,
        "users": users,
    }
