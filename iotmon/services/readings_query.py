"""
Readings search, sorting, pagination and access scoping

Search strings are whitespace-separated ``prefix:value`` tokens joined with
AND, for example ``device:kitchen t:>=20 ts:2024-01-15``. A string with no
recognized prefix is a case-insensitive substring match on the device id.
"""
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional
from sqlalchemy import String, and_, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from iotmon.core.config import settings
from iotmon.core.errors import AuthorizationDenied, ValidationError
from iotmon.core.roles import is_admin
from iotmon.models import Reading, UserControllerAssignment, Controller, utcnow

FIELD_ALIASES = {
    "t": "temperature_c",
    "temp": "temperature_c",
    "h": "humidity_pct",
    "humidity": "humidity_pct",
    "l": "lux",
    "lux": "lux",
    "s": "sound",
    "sound": "sound",
    "co2": "co2_ppm",
    "air": "co2_ppm",
    "aq": "co2_ppm",
    "ts": "ts",
    "date": "ts",
    "time": "ts",
    "d": "device_id",
    "device": "device_id",
}

SORTABLE_COLUMNS = (
    "id", "device_id", "ts", "temperature_c", "humidity_pct", "lux", "sound", "co2_ppm"
)

TOKEN_PATTERN = re.compile(r"^(\w+):(>=|<=|>|<|=)?(\S+)$")
NUMBER = r"-?\d+(?:\.\d+)?"
RANGE_PATTERN = re.compile(rf"^({NUMBER})-({NUMBER})$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class SearchTerm:
    """
    One parsed predicate.

    kind is one of "contains" (value is text), "date" (value is a date),
    "compare" (op plus a float), "range" (value is an inclusive
    (low, high) pair) or "equals" (a float).
    """
    column: str
    kind: str
    value: Any
    op: Optional[str] = None


def _to_number(raw: str, prefix: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"'{prefix}:' expects a number, got '{raw}'")


def _parse_token(prefix: str, column: str, op: Optional[str], value: str) -> SearchTerm:
    if column == "device_id":
        return SearchTerm(column, "contains", value)

    if column == "ts":
        if DATE_PATTERN.match(value):
            try:
                return SearchTerm(column, "date", date.fromisoformat(value))
            except ValueError:
                raise ValidationError(f"Invalid date '{value}'")
        return SearchTerm(column, "contains", value)

    if op:
        return SearchTerm(column, "compare", _to_number(value, prefix), op=op)

    range_match = RANGE_PATTERN.match(value)
    if range_match:
        low, high = float(range_match.group(1)), float(range_match.group(2))
        if low > high:
            raise ValidationError(f"Range '{value}' has its lower bound above its upper bound")
        return SearchTerm(column, "range", (low, high))

    return SearchTerm(column, "equals", _to_number(value, prefix))


def parse_search(search: Optional[str]) -> list[SearchTerm]:
    """Translate a search string into predicates"""
    text = (search or "").strip()
    if not text:
        return []

    terms = []
    for token in text.split():
        match = TOKEN_PATTERN.match(token)
        if not match:
            continue
        prefix, op, value = match.groups()
        column = FIELD_ALIASES.get(prefix.lower())
        if column is None:
            continue
        terms.append(_parse_token(prefix, column, op, value))

    if not terms:
        terms.append(SearchTerm("device_id", "contains", text))
    return terms


def escape_like(value: str) -> str:
    """Make % and _ match literally in a LIKE pattern escaped with a backslash"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def term_clause(term: SearchTerm):
    column = getattr(Reading, term.column)

    if term.kind == "contains":
        target = column if term.column == "device_id" else cast(column, String)
        return target.ilike(f"%{escape_like(term.value)}%", escape="\\")
    if term.kind == "date":
        day_start = datetime.combine(term.value, datetime.min.time())
        return and_(column >= day_start, column < day_start + timedelta(days=1))
    if term.kind == "range":
        low, high = term.value
        return and_(column >= low, column <= high)
    if term.kind == "compare":
        return {
            ">": column > term.value,
            "<": column < term.value,
            ">=": column >= term.value,
            "<=": column <= term.value,
            "=": column == term.value,
        }[term.op]
    return column == term.value


@dataclass
class ReadingsQuery:
    page: int = 1
    limit: int = field(default_factory=lambda: settings.READINGS_DEFAULT_LIMIT)
    search: Optional[str] = None
    sort_by: str = "ts"
    sort_order: str = "DESC"

    def __post_init__(self):
        if self.page < 1:
            raise ValidationError("page must be at least 1")
        if self.limit < 1:
            raise ValidationError("limit must be positive")
        self.limit = min(self.limit, settings.READINGS_MAX_LIMIT)

        if self.sort_by not in SORTABLE_COLUMNS:
            raise ValidationError(f"Cannot sort by '{self.sort_by}'")
        order = (self.sort_order or "DESC").upper()
        if order not in ("ASC", "DESC"):
            raise ValidationError("sortOrder must be ASC or DESC")
        self.sort_order = order

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


async def owned_device_ids(db: AsyncSession, user_id: int) -> list[str]:
    """Device ids of every controller assigned to the user"""
    result = await db.execute(
        select(Controller.device_id)
        .join(UserControllerAssignment, UserControllerAssignment.controller_id == Controller.id)
        .where(UserControllerAssignment.user_id == user_id)
        .distinct()
        .order_by(Controller.device_id)
    )
    return [row[0] for row in result.all()]


async def ensure_device_access(db: AsyncSession, requester, device_id: str) -> None:
    """Privileged callers see every device; others only their own"""
    if is_admin(requester):
        return
    result = await db.execute(
        select(Controller.id)
        .join(UserControllerAssignment, UserControllerAssignment.controller_id == Controller.id)
        .where(
            UserControllerAssignment.user_id == requester.id,
            Controller.device_id == device_id
        )
        .limit(1)
    )
    if result.first() is None:
        raise AuthorizationDenied("No access to this device")


async def search_readings(
    db: AsyncSession,
    requester,
    query: ReadingsQuery,
    device: Optional[str] = None
) -> dict:
    """Filtered, sorted page of readings plus pagination metadata"""
    conditions = [term_clause(term) for term in parse_search(query.search)]

    if device:
        await ensure_device_access(db, requester, device)
        conditions.append(Reading.device_id == device)
    elif not is_admin(requester):
        allowed = await owned_device_ids(db, requester.id)
        conditions.append(Reading.device_id.in_(allowed))

    count_query = select(func.count(Reading.id))
    data_query = select(Reading)
    if conditions:
        count_query = count_query.where(and_(*conditions))
        data_query = data_query.where(and_(*conditions))

    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    sort_column = getattr(Reading, query.sort_by)
    if query.sort_order == "ASC":
        data_query = data_query.order_by(sort_column.asc(), Reading.id.asc())
    else:
        data_query = data_query.order_by(sort_column.desc(), Reading.id.desc())
    data_query = data_query.offset(query.offset).limit(query.limit)

    result = await db.execute(data_query)
    return {
        "data": list(result.scalars().all()),
        "pagination": {
            "page": query.page,
            "limit": query.limit,
            "total": total,
            "totalPages": math.ceil(total / query.limit),
        },
    }


async def list_devices(db: AsyncSession, requester) -> list[str]:
    if is_admin(requester):
        result = await db.execute(
            select(Reading.device_id).distinct().order_by(Reading.device_id)
        )
        return [row[0] for row in result.all()]
    return await owned_device_ids(db, requester.id)


async def latest_reading(db: AsyncSession, requester, device_id: str) -> Optional[Reading]:
    await ensure_device_access(db, requester, device_id)
    result = await db.execute(
        select(Reading)
        .where(Reading.device_id == device_id)
        .order_by(Reading.ts.desc(), Reading.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def reading_history(db: AsyncSession, requester, device_id: str, hours: int) -> list[Reading]:
    await ensure_device_access(db, requester, device_id)
    since = utcnow() - timedelta(hours=hours)
    result = await db.execute(
        select(Reading)
        .where(Reading.device_id == device_id, Reading.ts > since)
        .order_by(Reading.ts.asc(), Reading.id.asc())
    )
    return list(result.scalars().all())
