from datetime import datetime, timedelta

import pytest

from iotmon.models import UserRole, utcnow

from tests.conftest import auth

TEMPERATURES = [19.5, 20.0, 25.0, 25.5, 30.0, 31.0]


@pytest.fixture
async def world(seed):
    """Two devices with readings; bob owns dev1 only"""
    admin = await seed.user("admin", role=UserRole.ADMIN)
    bob = await seed.user("bob")
    nobody = await seed.user("nobody")

    dev1 = await seed.controller("dev1", pairing_code="11111", claimed=True)
    await seed.controller("dev2", pairing_code="22222", claimed=True)
    await seed.assign(bob, dev1, label="Bob's kitchen")

    base = datetime(2024, 1, 15, 8, 0, 0)
    for i, temp in enumerate(TEMPERATURES):
        await seed.reading("dev1", ts=base + timedelta(hours=i), temperature_c=temp, humidity_pct=40.0 + i)
    await seed.reading("dev2", ts=base, temperature_c=25.0, humidity_pct=90.0)
    await seed.reading("dev2", ts=base - timedelta(days=1), temperature_c=18.0)

    return {"admin": admin, "bob": bob, "nobody": nobody}


async def get_readings(client, user, **params):
    return await client.get("/api/readings", params=params, headers=auth(user))


async def test_requires_requester(client, world):
    response = await client.get("/api/readings")
    assert response.status_code == 401


async def test_admin_sees_everything(client, world):
    response = await get_readings(client, world["admin"], limit=100)
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 8
    assert {r["device_id"] for r in body["data"]} == {"dev1", "dev2"}


async def test_user_scoped_to_owned_devices(client, world):
    body = (await get_readings(client, world["bob"], limit=100)).json()
    assert body["pagination"]["total"] == len(TEMPERATURES)
    assert {r["device_id"] for r in body["data"]} == {"dev1"}


async def test_user_denied_foreign_device(client, world):
    response = await get_readings(client, world["bob"], device="dev2")
    assert response.status_code == 403


async def test_user_without_devices_gets_empty_page(client, world):
    response = await get_readings(client, world["nobody"])
    assert response.status_code == 200
    assert response.json() == {
        "data": [],
        "pagination": {"page": 1, "limit": 20, "total": 0, "totalPages": 0},
    }


@pytest.mark.parametrize("search,expected", [
    ("t:20-30", {20.0, 25.0, 25.5, 30.0}),
    ("t:>25", {25.5, 30.0, 31.0}),
    ("t:>=25", {25.0, 25.5, 30.0, 31.0}),
    ("t:25", {25.0}),
    ("t:<20", {19.5}),
])
async def test_numeric_search(client, world, search, expected):
    body = (await get_readings(client, world["admin"], device="dev1", search=search, limit=100)).json()
    assert {r["temperature_c"] for r in body["data"]} == expected
    assert body["pagination"]["total"] == len(expected)


async def test_combined_search(client, world):
    body = (await get_readings(client, world["admin"], search="device:dev t:25", limit=100)).json()
    assert sorted(r["device_id"] for r in body["data"]) == ["dev1", "dev2"]


async def test_bare_text_matches_device_substring(client, world):
    body = (await get_readings(client, world["admin"], search="DEV2", limit=100)).json()
    assert body["pagination"]["total"] == 2


async def test_date_search(client, world):
    body = (await get_readings(client, world["admin"], device="dev2", search="ts:2024-01-14")).json()
    assert [r["temperature_c"] for r in body["data"]] == [18.0]


async def test_invalid_search_is_bad_request(client, world):
    response = await get_readings(client, world["admin"], search="t:hot")
    assert response.status_code == 400


async def test_pagination(client, world):
    first = (await get_readings(client, world["bob"], limit=4, sortBy="ts", sortOrder="ASC")).json()
    second = (await get_readings(client, world["bob"], limit=4, page=2, sortBy="ts", sortOrder="ASC")).json()

    assert first["pagination"] == {"page": 1, "limit": 4, "total": 6, "totalPages": 2}
    assert [r["temperature_c"] for r in first["data"]] == TEMPERATURES[:4]
    assert [r["temperature_c"] for r in second["data"]] == TEMPERATURES[4:]


async def test_sort_by_column(client, world):
    body = (await get_readings(client, world["bob"], sortBy="temperature_c", sortOrder="desc")).json()
    assert [r["temperature_c"] for r in body["data"]] == sorted(TEMPERATURES, reverse=True)


async def test_limit_capped(client, world):
    body = (await get_readings(client, world["admin"], limit=5000)).json()
    assert body["pagination"]["limit"] == 100


@pytest.mark.parametrize("params", [
    {"sortBy": "password_hash"},
    {"sortOrder": "UP"},
])
async def test_bad_sort_is_bad_request(client, world, params):
    response = await get_readings(client, world["admin"], **params)
    assert response.status_code == 400


async def test_devices_listing(client, world):
    admin = await client.get("/api/devices", headers=auth(world["admin"]))
    bob = await client.get("/api/devices", headers=auth(world["bob"]))
    assert admin.json() == ["dev1", "dev2"]
    assert bob.json() == ["dev1"]


async def test_latest(client, world):
    response = await client.get("/api/latest/dev1", headers=auth(world["bob"]))
    assert response.status_code == 200
    assert response.json()["temperature_c"] == 31.0

    denied = await client.get("/api/latest/dev2", headers=auth(world["bob"]))
    assert denied.status_code == 403


async def test_history_window(client, world, seed):
    now = utcnow()
    await seed.reading("dev1", ts=now - timedelta(hours=1), temperature_c=22.0)
    await seed.reading("dev1", ts=now - timedelta(minutes=10), temperature_c=23.0)

    response = await client.get("/api/history/dev1", params={"hours": 2}, headers=auth(world["bob"]))
    assert response.status_code == 200
    assert [r["temperature_c"] for r in response.json()] == [22.0, 23.0]


@pytest.mark.parametrize("search", ["device:a_b", "a_b", "d:a%b"])
async def test_like_wildcards_match_literally(client, world, seed, search):
    await seed.reading("a_b", temperature_c=1.0)
    await seed.reading("a%b", temperature_c=2.0)
    await seed.reading("axb", temperature_c=3.0)

    body = (await get_readings(client, world["admin"], search=search, limit=100)).json()
    expected = "a%b" if "%" in search else "a_b"
    assert [r["device_id"] for r in body["data"]] == [expected]
