from datetime import datetime, timedelta, timezone

from jose import jwt
from starlette.requests import Request

from iotmon.core.config import settings
from iotmon.core.security import (
    MAX_USER_ID, CallerIdentity, create_access_token, get_caller_identity, resolve_requester
)
from iotmon.models import UserRole


def make_request(headers: dict) -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    })


class TestCallerIdentity:
    def test_no_headers(self):
        assert get_caller_identity(make_request({})) == CallerIdentity()

    def test_numeric_header(self):
        identity = get_caller_identity(make_request({settings.USER_ID_HEADER: "42"}))
        assert identity.user_id == 42

    def test_non_numeric_header_is_anonymous(self):
        for value in ("abc", "", "4 2", "-1", "1.5"):
            identity = get_caller_identity(make_request({settings.USER_ID_HEADER: value}))
            assert identity.user_id is None

    def test_non_ascii_digits_are_anonymous(self):
        for value in ("²", "٣", "1²"):
            identity = get_caller_identity(make_request({settings.USER_ID_HEADER: value}))
            assert identity.user_id is None

    def test_out_of_range_id_is_anonymous(self):
        for value in (str(MAX_USER_ID + 1), "9" * 40):
            identity = get_caller_identity(make_request({settings.USER_ID_HEADER: value}))
            assert identity.user_id is None
        identity = get_caller_identity(make_request({settings.USER_ID_HEADER: str(MAX_USER_ID)}))
        assert identity.user_id == MAX_USER_ID

    def test_token_with_unusable_subject_is_anonymous(self):
        for subject in ("²", "9" * 40):
            token = jwt.encode(
                {"sub": subject, "type": "access", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
                settings.SECRET_KEY,
                algorithm=settings.ALGORITHM
            )
            identity = get_caller_identity(make_request({"Authorization": f"Bearer {token}"}))
            assert identity.user_id is None

    def test_bearer_token(self):
        token = create_access_token(7)
        identity = get_caller_identity(make_request({"Authorization": f"Bearer {token}"}))
        assert identity.user_id == 7

    def test_expired_token_is_anonymous(self):
        token = create_access_token(7, expires_delta=timedelta(minutes=-5))
        identity = get_caller_identity(make_request({"Authorization": f"Bearer {token}"}))
        assert identity.user_id is None

    def test_invalid_token_does_not_fall_back_to_header(self):
        identity = get_caller_identity(make_request({
            "Authorization": "Bearer not-a-token",
            settings.USER_ID_HEADER: "3",
        }))
        assert identity.user_id is None


async def test_absent_id_never_queries(recording_session):
    assert await resolve_requester(recording_session, CallerIdentity()) is None
    assert recording_session.calls == []


async def test_unknown_id_resolves_to_none(session_maker):
    async with session_maker() as session:
        assert await resolve_requester(session, CallerIdentity(999)) is None


async def test_resolves_role(seed, session_maker):
    admin = await seed.user("alice", role=UserRole.ADMIN, must_change_password=True)
    async with session_maker() as session:
        requester = await resolve_requester(session, CallerIdentity(admin.id))

    assert requester.id == admin.id
    assert requester.email == "alice@example.com"
    assert requester.role == UserRole.ADMIN
    assert requester.must_change_password is True


async def test_legacy_flag_row_resolves_to_admin(seed, session_maker):
    legacy = await seed.user("old", role=UserRole.USER, is_admin=True)
    async with session_maker() as session:
        requester = await resolve_requester(session, CallerIdentity(legacy.id))
    assert requester.role == UserRole.ADMIN


async def test_unusable_header_ids_are_unauthenticated(client):
    for value in (b"\xb2", b"9" * 40):
        response = await client.get("/api/me", headers={"x-user-id": value})
        assert response.status_code == 401
