"""
API integration tests (async, httpx + ASGITransport).

The app runs against the per-test SQLite trip store; the lifespan workers
(Redis publisher, change feed, reconciler) are not started.
"""

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from tests.support import DEPOT, north_of

RIDER = {"X-Actor-Id": "rider-1", "X-Actor-Role": "requester"}
DRIVER = {"X-Actor-Id": "prov-1", "X-Actor-Role": "provider"}
OPS = {"X-Actor-Id": "ops", "X-Actor-Role": "system"}

DESTINATION = north_of(DEPOT, 7.0)
TRIP_BODY = {
    "requester_id": "rider-1",
    "pickup_lat": DEPOT.latitude,
    "pickup_lng": DEPOT.longitude,
    "destination_lat": DESTINATION.latitude,
    "destination_lng": DESTINATION.longitude,
    "pickup_address": "Hosur Bus Stand",
    "destination_address": "Mathigiri",
    "booking_type": "metered",
    "vehicle_class": "sedan",
}


def parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


async def create_trip(client: AsyncClient) -> str:
    resp = await client.post("/api/v1/trips", json=TRIP_BODY, headers=RIDER)
    assert resp.status_code == 201
    return resp.json()["id"]


async def start_trip(client: AsyncClient) -> tuple[str, datetime]:
    """Request, assign, arrive and verify the pickup code; returns (id, started_at)."""
    trip_id = await create_trip(client)
    base = f"/api/v1/trips/{trip_id}"
    assert (await client.post(f"{base}/assign", json={"provider_id": "prov-1"}, headers=DRIVER)).status_code == 200
    assert (await client.post(f"{base}/arrive", headers=DRIVER)).status_code == 200
    code = (await client.post(f"{base}/pickup-code", headers=RIDER)).json()["code"]
    resp = await client.post(f"{base}/pickup-code/verify", json={"code": code}, headers=DRIVER)
    assert resp.status_code == 200
    return trip_id, parse_time(resp.json()["started_at"])


# ── Tests ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_create_trip_returns_201(client: AsyncClient):
    resp = await client.post("/api/v1/trips", json=TRIP_BODY, headers=RIDER)
    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "requested"
    assert data["version"] == 0
    assert data["provider_id"] is None


@pytest.mark.asyncio
async def test_create_trip_for_someone_else_forbidden(client: AsyncClient):
    resp = await client.post(
        "/api/v1/trips",
        json=TRIP_BODY,
        headers={"X-Actor-Id": "rider-2", "X-Actor-Role": "requester"},
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "not_authorized"


@pytest.mark.asyncio
async def test_actor_headers_required(client: AsyncClient):
    resp = await client.post("/api/v1/trips", json=TRIP_BODY)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_trip(client: AsyncClient):
    trip_id = await create_trip(client)
    resp = await client.get(f"/api/v1/trips/{trip_id}", headers=RIDER)
    assert resp.status_code == 200
    assert resp.json()["id"] == trip_id


@pytest.mark.asyncio
async def test_get_trip_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/trips/no-such-trip", headers=OPS)
    assert resp.status_code == 404
    assert resp.json() == {"error": "trip_not_found", "detail": "Trip no-such-trip not found"}


@pytest.mark.asyncio
async def test_get_trip_of_another_requester_forbidden(client: AsyncClient):
    trip_id = await create_trip(client)
    resp = await client.get(
        f"/api/v1/trips/{trip_id}",
        headers={"X-Actor-Id": "rider-2", "X-Actor-Role": "requester"},
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_full_metered_trip(client: AsyncClient):
    trip_id, started_at = await start_trip(client)
    base = f"/api/v1/trips/{trip_id}"

    t0 = started_at + timedelta(seconds=1)
    points = [
        {
            "latitude": north_of(DEPOT, km).latitude,
            "longitude": north_of(DEPOT, km).longitude,
            "captured_at": (t0 + timedelta(minutes=minute)).isoformat(),
        }
        for km, minute in ((0, 0), (2.5, 5), (5.0, 10), (7.9, 14))
    ]
    resp = await client.post(f"{base}/breadcrumbs", json={"points": points}, headers=DRIVER)
    assert resp.status_code == 202
    assert resp.json()["stored"] == 4

    drop = await client.post(f"{base}/drop-code", headers=RIDER)
    assert drop.status_code == 201
    assert drop.json()["kind"] == "drop"

    resp = await client.post(
        f"{base}/complete", json={"drop_code": drop.json()["code"]}, headers=DRIVER
    )
    assert resp.status_code == 200
    fare = resp.json()
    assert fare["total_fare"] == 128.14
    assert fare["details"]["actual_distance_km"] == 7.9
    assert fare["details"]["actual_duration_minutes"] == 14

    stored = await client.get(f"{base}/fare", headers=RIDER)
    assert stored.status_code == 200
    assert stored.json()["total_fare"] == 128.14

    trip = (await client.get(base, headers=RIDER)).json()
    assert trip["status"] == "completed"
    assert trip["fare_amount"] == 128.14
    assert trip["distance_km"] == 7.9

    earnings = await client.get("/api/v1/providers/prov-1/earnings", headers=DRIVER)
    assert earnings.json() == {
        "subject_id": "prov-1",
        "booking_type": None,
        "trips": 1,
        "total": 128.14,
    }
    spending = await client.get(
        "/api/v1/requesters/rider-1/spending",
        params={"booking_type": "rental"},
        headers=RIDER,
    )
    assert spending.json()["trips"] == 0

    rated = await client.post(f"{base}/rating", json={"rating": 5}, headers=RIDER)
    assert rated.status_code == 200
    assert rated.json()["rating"] == 5

    log = await client.get(f"/api/v1/admin/trips/{trip_id}/estimations", headers=OPS)
    assert log.status_code == 200
    assert [entry["tier"] for entry in log.json()] == [1]


@pytest.mark.asyncio
async def test_wrong_pickup_code(client: AsyncClient):
    trip_id = await create_trip(client)
    base = f"/api/v1/trips/{trip_id}"
    await client.post(f"{base}/assign", json={"provider_id": "prov-1"}, headers=DRIVER)
    await client.post(f"{base}/arrive", headers=DRIVER)
    await client.post(f"{base}/pickup-code", headers=RIDER)

    resp = await client.post(f"{base}/pickup-code/verify", json={"code": "0000"}, headers=DRIVER)
    assert resp.status_code == 422
    assert resp.json()["error"] == "code_mismatch"
    assert (await client.get(base, headers=RIDER)).json()["status"] == "provider_arrived"


@pytest.mark.asyncio
async def test_complete_without_body(client: AsyncClient):
    trip_id, _ = await start_trip(client)
    resp = await client.post(f"/api/v1/trips/{trip_id}/complete", headers=DRIVER)
    assert resp.status_code == 200
    assert resp.json()["details"]["estimation_degraded"] is True


@pytest.mark.asyncio
async def test_fare_before_completion_conflicts(client: AsyncClient):
    trip_id, _ = await start_trip(client)
    resp = await client.get(f"/api/v1/trips/{trip_id}/fare", headers=RIDER)
    assert resp.status_code == 409
    assert resp.json()["error"] == "invalid_transition"


@pytest.mark.asyncio
async def test_second_assignment_to_busy_provider(client: AsyncClient):
    await start_trip(client)
    other = await create_trip(client)
    resp = await client.post(
        f"/api/v1/trips/{other}/assign", json={"provider_id": "prov-1"}, headers=DRIVER
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "provider_busy"


@pytest.mark.asyncio
async def test_cancel(client: AsyncClient):
    trip_id = await create_trip(client)
    base = f"/api/v1/trips/{trip_id}"

    blank = await client.post(f"{base}/cancel", json={"reason": ""}, headers=RIDER)
    assert blank.status_code == 422
    assert blank.json()["error"] == "invalid_command"

    resp = await client.post(f"{base}/cancel", json={"reason": "changed plans"}, headers=RIDER)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    again = await client.post(f"{base}/cancel", json={"reason": "changed plans"}, headers=RIDER)
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_rating_out_of_range(client: AsyncClient):
    trip_id, _ = await start_trip(client)
    resp = await client.post(f"/api/v1/trips/{trip_id}/rating", json={"rating": 6}, headers=RIDER)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_availability_toggle(client: AsyncClient):
    resp = await client.put(
        "/api/v1/providers/prov-2/availability",
        json={"status": "unavailable"},
        headers={"X-Actor-Id": "prov-2", "X-Actor-Role": "provider"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"provider_id": "prov-2", "status": "unavailable"}


@pytest.mark.asyncio
async def test_availability_toggle_with_live_trip(client: AsyncClient):
    await start_trip(client)
    resp = await client.put(
        "/api/v1/providers/prov-1/availability",
        json={"status": "unavailable"},
        headers=DRIVER,
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "has_active_trip"


@pytest.mark.asyncio
async def test_availability_of_another_provider_forbidden(client: AsyncClient):
    resp = await client.put(
        "/api/v1/providers/prov-2/availability",
        json={"status": "unavailable"},
        headers=DRIVER,
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_resync(client: AsyncClient):
    await start_trip(client)
    resp = await client.post("/api/v1/providers/prov-1/resync", headers=OPS)
    assert resp.status_code == 200
    assert resp.json()["status"] == "engaged"


@pytest.mark.asyncio
async def test_earnings_unknown_provider(client: AsyncClient):
    resp = await client.get("/api/v1/providers/prov-404/earnings", headers=OPS)
    assert resp.status_code == 404
    assert resp.json()["error"] == "provider_not_found"


@pytest.mark.asyncio
async def test_estimation_log_is_for_system_callers(client: AsyncClient):
    trip_id = await create_trip(client)
    resp = await client.get(f"/api/v1/admin/trips/{trip_id}/estimations", headers=RIDER)
    assert resp.status_code == 403
