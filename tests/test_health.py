from datetime import timedelta

from iotmon.models import UserRole, utcnow
from iotmon.services import RequestStats

from tests.conftest import auth


def test_request_stats_counts():
    stats = RequestStats()
    stats.record("GET /api/readings", 200)
    stats.record("GET /api/readings", 403)
    stats.record("POST /api/controllers/claim", 200)

    snapshot = stats.snapshot()
    assert snapshot["total"] == 3
    assert snapshot["byStatus"] == {"200": 2, "403": 1}
    assert snapshot["byRoute"]["GET /api/readings"] == 2

    stats.reset()
    assert stats.snapshot()["total"] == 0


async def test_health_is_dev_only(client, seed):
    admin = await seed.user("admin", role=UserRole.ADMIN)
    assert (await client.get("/api/admin/health", headers=auth(admin))).status_code == 403
    assert (await client.get("/api/admin/health")).status_code == 401


async def test_health_report(client, seed):
    dev = await seed.user("dev", role=UserRole.DEV)
    await seed.user("invitee", invited_by=dev.id, must_change_password=True)
    await seed.controller("dev1", pairing_code="11111")
    await seed.reading("dev1", ts=utcnow() - timedelta(hours=1), temperature_c=20.0)
    await seed.reading("old", ts=utcnow() - timedelta(days=3), temperature_c=20.0)

    await client.get("/api/readings", headers=auth(dev))
    response = await client.get("/api/admin/health", headers=auth(dev))
    assert response.status_code == 200
    body = response.json()

    assert body["devices"] == {
        "totalControllers": 1,
        "distinctDevices": 2,
        "activeDevicesLast24h": 1,
        "totalReadings": 2,
        "latestReadingAt": body["devices"]["latestReadingAt"],
    }
    assert body["devices"]["latestReadingAt"] is not None
    assert body["users"] == {"total": 2, "admins": 1, "devs": 1, "invited": 1, "mustChangePassword": 1}

    assert body["requests"]["byRoute"]["GET /api/readings"] == 1
    tables = {t["table"]: t["rows"] for t in body["database"]["tableSizes"]}
    assert tables["readings"] == 2
    assert tables["users"] == 2
