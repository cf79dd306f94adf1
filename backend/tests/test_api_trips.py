"""
Trip API: publishing, browsing and status changes over HTTP.
"""

from datetime import timedelta

import pytest
from fastapi.encoders import jsonable_encoder

from backend.tests.helpers import (
    TRAVELLER_ID, SENDER_ID, STRANGER_ID, auth_headers, trip_payload, request_payload, utc_now
)


async def _publish(client, traveller_id=TRAVELLER_ID, **overrides):
    response = await client.post(
        "/v1/trips",
        json=jsonable_encoder(trip_payload(**overrides)),
        headers=auth_headers(traveller_id)
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_health_and_root(client):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert health.json()["redis"] == "up"

    root = await client.get("/")
    assert root.json()["message"] == "Welcome to Parcel Carry Backend API"


@pytest.mark.asyncio
async def test_requires_bearer_token(client):
    response = await client.get("/v1/trips/mine")

    assert response.status_code == 401
    assert response.json()["kind"] == "Unauthenticated"


@pytest.mark.asyncio
async def test_rejects_garbage_token(client):
    response = await client.get("/v1/trips/mine", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_publish_trip(client):
    trip = await _publish(client)

    assert trip["traveller_id"] == TRAVELLER_ID
    assert trip["status"] == "open"
    assert trip["available_slots"] == trip["total_slots"] == 3

    mine = await client.get("/v1/trips/mine", headers=auth_headers(TRAVELLER_ID))
    assert mine.json()["total"] == 1


@pytest.mark.asyncio
async def test_publish_trip_validation_error_shape(client):
    response = await client.post(
        "/v1/trips",
        json=jsonable_encoder(trip_payload(pnr_number="AB")),
        headers=auth_headers(TRAVELLER_ID)
    )

    assert response.status_code == 400
    body = response.json()
    assert body["kind"] == "ValidationError"
    assert body["details"]["field"] == "pnr_number"


@pytest.mark.asyncio
async def test_publish_trip_schema_error(client):
    payload = jsonable_encoder(trip_payload())
    payload["transport_mode"] = "rocket"

    response = await client.post("/v1/trips", json=payload, headers=auth_headers(TRAVELLER_ID))

    assert response.status_code == 422
    assert response.json()["kind"] == "ValidationError"


@pytest.mark.asyncio
async def test_search_hides_own_trips(client):
    own = await _publish(client)
    other = await _publish(client, traveller_id="traveller-2", departure=utc_now() + timedelta(days=1))

    as_traveller = await client.get("/v1/trips/search", headers=auth_headers(TRAVELLER_ID))
    assert [t["id"] for t in as_traveller.json()["trips"]] == [other["id"]]

    as_sender = await client.get(
        "/v1/trips/search",
        params={"source": "Mumbai", "transport_mode": "train"},
        headers=auth_headers(SENDER_ID)
    )
    assert [t["id"] for t in as_sender.json()["trips"]] == [other["id"], own["id"]]


@pytest.mark.asyncio
async def test_update_trip_permissions(client):
    trip = await _publish(client)

    forbidden = await client.patch(
        f"/v1/trips/{trip['id']}", json={"notes": "mine now"}, headers=auth_headers(STRANGER_ID)
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["kind"] == "Unauthorized"

    updated = await client.patch(
        f"/v1/trips/{trip['id']}", json={"total_slots": 5}, headers=auth_headers(TRAVELLER_ID)
    )
    assert updated.status_code == 200
    assert updated.json()["available_slots"] == 5


@pytest.mark.asyncio
async def test_trip_locked_after_acceptance(client):
    trip = await _publish(client)
    request = await client.post(
        "/v1/requests", json=request_payload(trip["id"]), headers=auth_headers(SENDER_ID)
    )
    await client.post(f"/v1/requests/{request.json()['id']}/accept", headers=auth_headers(TRAVELLER_ID))

    response = await client.patch(
        f"/v1/trips/{trip['id']}", json={"notes": "late"}, headers=auth_headers(TRAVELLER_ID)
    )

    assert response.status_code == 409
    assert response.json()["kind"] == "TooLateToEdit"


@pytest.mark.asyncio
async def test_status_change_and_soft_delete(client):
    first = await _publish(client)
    second = await _publish(client)

    completed = await client.patch(
        f"/v1/trips/{first['id']}/status", json={"status": "completed"}, headers=auth_headers(TRAVELLER_ID)
    )
    assert completed.json()["status"] == "completed"

    again = await client.patch(
        f"/v1/trips/{first['id']}/status", json={"status": "cancelled"}, headers=auth_headers(TRAVELLER_ID)
    )
    assert again.status_code == 409
    assert again.json()["kind"] == "StateConflict"

    deleted = await client.delete(f"/v1/trips/{second['id']}", headers=auth_headers(TRAVELLER_ID))
    assert deleted.json()["status"] == "cancelled"

    still_there = await client.get(f"/v1/trips/{second['id']}", headers=auth_headers(SENDER_ID))
    assert still_there.status_code == 200


@pytest.mark.asyncio
async def test_unknown_trip(client):
    response = await client.get("/v1/trips/4242", headers=auth_headers(SENDER_ID))

    assert response.status_code == 404
    assert response.json()["kind"] == "NotFound"


@pytest.mark.asyncio
async def test_trip_requests_visible_to_owner_only(client):
    trip = await _publish(client)
    await client.post("/v1/requests", json=request_payload(trip["id"]), headers=auth_headers(SENDER_ID))

    owner_view = await client.get(f"/v1/trips/{trip['id']}/requests", headers=auth_headers(TRAVELLER_ID))
    assert len(owner_view.json()) == 1
    assert "pickup_otp" not in owner_view.json()[0]

    sender_view = await client.get(f"/v1/trips/{trip['id']}/requests", headers=auth_headers(SENDER_ID))
    assert sender_view.status_code == 403


@pytest.mark.asyncio
async def test_correlation_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "trace-123"})
    assert response.headers["X-Correlation-ID"] == "trace-123"

    generated = await client.get("/health")
    assert generated.headers["X-Correlation-ID"]
    assert "X-Process-Time" in generated.headers
