"""
End-to-end tests for the reservation, meeting and calendar endpoints:
the happy paths and how domain errors surface over HTTP.
"""

import asyncio

import pytest
from httpx import AsyncClient


async def _reserve(client, headers, instrument_id, start="2024-06-01", end="2024-06-30"):
    return await client.post(
        f"/api/v1/instruments/{instrument_id}/reserve",
        json={"start_date": start, "end_date": end},
        headers=headers,
    )


async def _create_meeting(client, headers, reservation_id, start="18:00", end="19:00", room="DYLAN"):
    return await client.post(
        "/api/v1/meetings/",
        json={
            "reservation_id": reservation_id,
            "room": room,
            "day": "2024-06-02",
            "start_time": start,
            "end_time": end,
        },
        headers=headers,
    )


@pytest.mark.asyncio
async def test_reserve_instrument(client: AsyncClient, member_headers, guitar):
    response = await _reserve(client, member_headers, guitar.id)
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "ACTIVE"
    assert data["instrument"]["name"] == "Telecaster"


@pytest.mark.asyncio
async def test_reserve_requires_auth(client: AsyncClient, guitar):
    response = await client.post(
        f"/api/v1/instruments/{guitar.id}/reserve",
        json={"start_date": "2024-06-01", "end_date": "2024-06-02"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_reserve_conflict_body(client: AsyncClient, member_headers, other_headers, guitar):
    """409 bodies name the rule and the conflicting range."""
    first = await _reserve(client, member_headers, guitar.id, "2024-06-01", "2024-06-03")

    response = await _reserve(client, other_headers, guitar.id, "2024-06-03", "2024-06-04")
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "conflict"
    assert body["conflicting_reservation_id"] == first.json()["id"]
    assert "already reserved" in body["detail"]


@pytest.mark.asyncio
async def test_reserve_inverted_range(client: AsyncClient, member_headers, guitar):
    response = await _reserve(client, member_headers, guitar.id, "2024-06-05", "2024-06-01")
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_return_and_list_reservations(client: AsyncClient, member_headers, admin_headers, guitar):
    reservation_id = (await _reserve(client, member_headers, guitar.id)).json()["id"]

    response = await client.get("/api/v1/reservations/my", headers=member_headers)
    assert [r["id"] for r in response.json()] == [reservation_id]

    response = await client.post(f"/api/v1/reservations/{reservation_id}/return", headers=member_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "FINISHED"

    response = await client.post(f"/api/v1/reservations/{reservation_id}/return", headers=member_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_state"

    response = await client.get("/api/v1/reservations/", headers=member_headers)
    assert response.status_code == 403

    response = await client.get("/api/v1/reservations/", headers=admin_headers)
    assert response.status_code == 200
    assert len(response.json()) == 1


@pytest.mark.asyncio
async def test_delete_reservation_flow(client: AsyncClient, member_headers, admin_headers, guitar):
    reservation_id = (await _reserve(client, member_headers, guitar.id)).json()["id"]

    response = await client.delete(f"/api/v1/reservations/{reservation_id}", headers=admin_headers)
    assert response.status_code == 400

    await client.post(f"/api/v1/reservations/{reservation_id}/return", headers=member_headers)
    response = await client.delete(f"/api/v1/reservations/{reservation_id}", headers=admin_headers)
    assert response.status_code == 200

    response = await client.delete(f"/api/v1/reservations/{reservation_id}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_meeting_lifecycle(client: AsyncClient, member_headers, other_headers, admin_headers, guitar):
    reservation_id = (await _reserve(client, member_headers, guitar.id)).json()["id"]

    response = await _create_meeting(client, member_headers, reservation_id)
    assert response.status_code == 201
    meeting = response.json()
    assert meeting["users_count"] == 1
    assert meeting["start_time"] == "18:00:00"
    assert meeting["reservation"]["id"] == reservation_id
    assert meeting["reservation"]["instrument"]["id"] == guitar.id

    response = await client.get("/api/v1/meetings/available", headers=other_headers)
    assert [m["id"] for m in response.json()] == [meeting["id"]]

    response = await client.post(f"/api/v1/meetings/{meeting['id']}/join", headers=other_headers)
    assert response.status_code == 200
    assert response.json()["users_count"] == 2

    response = await client.post(f"/api/v1/meetings/{meeting['id']}/join", headers=other_headers)
    assert response.status_code == 409

    response = await client.get("/api/v1/meetings/my", headers=other_headers)
    assert [m["id"] for m in response.json()] == [meeting["id"]]

    response = await client.post(f"/api/v1/meetings/{meeting['id']}/quit", headers=other_headers)
    assert response.json()["users_count"] == 1

    response = await client.post(f"/api/v1/meetings/{meeting['id']}/quit", headers=other_headers)
    assert response.status_code == 404

    response = await client.patch(
        f"/api/v1/meetings/{meeting['id']}/status", json={"status": "FINISHED"}, headers=member_headers
    )
    assert response.status_code == 403

    response = await client.patch(
        f"/api/v1/meetings/{meeting['id']}/status", json={"status": "FINISHED"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "FINISHED"

    response = await client.delete(f"/api/v1/meetings/{meeting['id']}", headers=admin_headers)
    assert response.status_code == 200

    response = await client.get("/api/v1/meetings/", headers=admin_headers)
    assert response.json() == []


@pytest.mark.asyncio
async def test_meeting_room_conflict(client: AsyncClient, member_headers, guitar):
    reservation_id = (await _reserve(client, member_headers, guitar.id)).json()["id"]
    await _create_meeting(client, member_headers, reservation_id, "18:00", "19:00")

    response = await _create_meeting(client, member_headers, reservation_id, "18:30", "19:30")
    assert response.status_code == 409
    assert response.json()["room"] == "DYLAN"

    response = await _create_meeting(client, member_headers, reservation_id, "19:00", "20:00")
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_meeting_with_unknown_room(client: AsyncClient, member_headers, guitar):
    reservation_id = (await _reserve(client, member_headers, guitar.id)).json()["id"]

    response = await _create_meeting(client, member_headers, reservation_id, room="GARAGE")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_meeting_on_foreign_reservation(client: AsyncClient, member_headers, other_headers, guitar):
    reservation_id = (await _reserve(client, member_headers, guitar.id)).json()["id"]

    response = await _create_meeting(client, other_headers, reservation_id)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_calendar_feed(client: AsyncClient, member_headers, guitar):
    reservation_id = (await _reserve(client, member_headers, guitar.id, "2024-06-01", "2024-06-03")).json()["id"]
    meeting_id = (await _create_meeting(client, member_headers, reservation_id)).json()["id"]

    response = await client.get("/api/v1/calendar/", headers=member_headers)
    assert response.status_code == 200
    assert response.json() == [
        {
            "kind": "reservation",
            "id": reservation_id,
            "title": "Telecaster reservation",
            "start": "2024-06-01",
            "end": "2024-06-04",
            "all_day": True,
        },
        {
            "kind": "meeting",
            "id": meeting_id,
            "title": "Rehearsal in DYLAN",
            "start": "2024-06-02T18:00:00",
            "end": "2024-06-02T19:00:00",
            "all_day": False,
        },
    ]

    response = await client.get(
        "/api/v1/calendar/", params={"start": "2024-06-10", "end": "2024-06-01"}, headers=member_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_concurrent_reserve_requests(client: AsyncClient, make_member, auth_headers_for, guitar):
    """CONCURRENCY TEST: parallel HTTP requests for the same days, one winner."""
    users = [await make_member() for _ in range(6)]

    responses = await asyncio.gather(
        *(_reserve(client, auth_headers_for(user), guitar.id, "2024-09-01", "2024-09-02") for user in users)
    )

    codes = sorted(r.status_code for r in responses)
    assert codes == [201, 409, 409, 409, 409, 409]


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "abc-123"
    assert response.json()["status"] == "healthy"
