"""
Tests for trip scheduling endpoints.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from conftest import future_window, headers_for, make_user, persist
from app.core.roles import Role
from app.models import Bus


def trip_body(bus_id: int, start, end, start_from: str = "Colombo") -> dict:
    return {
        "bus": bus_id,
        "start_at": start.isoformat(),
        "end_at": end.isoformat(),
        "start_from": start_from,
    }


@pytest.mark.asyncio
async def test_schedule_trip(client: AsyncClient, owner_headers, bus):
    """Owner schedules a trip on their bus."""
    start, end = future_window(days=10)
    response = await client.post("/api/v1/trip", json=trip_body(bus.id, start, end), headers=owner_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["bus_id"] == bus.id
    assert data["start_from"] == "Colombo"
    assert data["id"] > 0


@pytest.mark.asyncio
async def test_schedule_trip_from_other_end_of_route(client: AsyncClient, owner_headers, bus):
    """Either town of the route is a valid departure point."""
    start, end = future_window(days=10)
    response = await client.post(
        "/api/v1/trip", json=trip_body(bus.id, start, end, "Kandy"), headers=owner_headers
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_schedule_trip_unauthenticated(client: AsyncClient, bus):
    start, end = future_window(days=10)
    response = await client.post("/api/v1/trip", json=trip_body(bus.id, start, end))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_schedule_trip_commuter_forbidden(client: AsyncClient, commuter_headers, bus):
    """Commuters cannot schedule trips at all."""
    start, end = future_window(days=10)
    response = await client.post(
        "/api/v1/trip", json=trip_body(bus.id, start, end), headers=commuter_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_schedule_trip_not_bus_owner(client: AsyncClient, other_owner, bus):
    """Another bus owner cannot schedule on this bus."""
    start, end = future_window(days=10)
    response = await client.post(
        "/api/v1/trip", json=trip_body(bus.id, start, end), headers=headers_for(other_owner)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_ownership_checked_before_timestamps(client: AsyncClient, other_owner, bus):
    """A non-owner with garbage timestamps gets 403, not 400."""
    response = await client.post(
        "/api/v1/trip",
        json={"bus": bus.id, "start_at": "not-a-date", "end_at": "nope", "start_from": "Colombo"},
        headers=headers_for(other_owner),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_schedule_trip_unparseable_timestamp(client: AsyncClient, owner_headers, bus):
    response = await client.post(
        "/api/v1/trip",
        json={"bus": bus.id, "start_at": "tomorrow", "end_at": "later", "start_from": "Colombo"},
        headers=owner_headers,
    )
    assert response.status_code == 400
    assert "start_at" in response.json()["detail"]


@pytest.mark.asyncio
async def test_schedule_trip_in_past(client: AsyncClient, owner_headers, bus):
    start, end = future_window(days=-2)
    response = await client.post("/api/v1/trip", json=trip_body(bus.id, start, end), headers=owner_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_schedule_trip_end_before_start(client: AsyncClient, owner_headers, bus):
    start, end = future_window(days=10)
    response = await client.post("/api/v1/trip", json=trip_body(bus.id, end, start), headers=owner_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_schedule_trip_wrong_town(client: AsyncClient, owner_headers, bus):
    """Departure town must be on the bus's route."""
    start, end = future_window(days=10)
    response = await client.post(
        "/api/v1/trip", json=trip_body(bus.id, start, end, "Galle"), headers=owner_headers
    )
    assert response.status_code == 400
    assert "check route again" in response.json()["detail"]


@pytest.mark.asyncio
async def test_schedule_overlapping_trip(client: AsyncClient, owner_headers, bus):
    """10:00-12:00 booked; 11:00-13:00 on the same bus is a time conflict."""
    start, end = future_window(days=10, start_hour=10, hours=2)
    first = await client.post("/api/v1/trip", json=trip_body(bus.id, start, end), headers=owner_headers)
    assert first.status_code == 201

    response = await client.post(
        "/api/v1/trip",
        json=trip_body(bus.id, start + timedelta(hours=1), end + timedelta(hours=1)),
        headers=owner_headers,
    )
    assert response.status_code == 409
    assert "check time again" in response.json()["detail"]


@pytest.mark.asyncio
async def test_update_trip(client: AsyncClient, owner_headers, trip, bus):
    """Rescheduling a trip does not conflict with its own old window."""
    trip_id = trip.id
    start, end = future_window(days=30, start_hour=11, hours=2)  # overlaps old 10:00-12:00
    response = await client.put(
        f"/api/v1/trip?trip={trip_id}",
        json=trip_body(bus.id, start, end, "Kandy"),
        headers=owner_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == trip_id
    assert data["start_from"] == "Kandy"


@pytest.mark.asyncio
async def test_update_trip_not_owner(client: AsyncClient, db_session, other_owner, trip, route):
    """Owning the target bus is not enough: the trip's current bus must be yours too."""
    rival_bus = await persist(db_session, Bus(
        owner_id=other_owner.id, route_id=route.id, busno="NB-9999", permit_no="PERMIT-999", seat_count=30,
    ))
    start, end = future_window(days=12)
    response = await client.put(
        f"/api/v1/trip?trip={trip.id}",
        json=trip_body(rival_bus.id, start, end),
        headers=headers_for(other_owner),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_trip_not_found(client: AsyncClient, owner_headers, bus):
    start, end = future_window(days=12)
    response = await client.put(
        "/api/v1/trip?trip=99999", json=trip_body(bus.id, start, end), headers=owner_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_trip_into_conflict(client: AsyncClient, owner_headers, trip, bus):
    """Moving a trip onto another trip's window is rejected."""
    trip_id = trip.id
    start, end = future_window(days=40)
    created = await client.post("/api/v1/trip", json=trip_body(bus.id, start, end), headers=owner_headers)
    assert created.status_code == 201

    response = await client.put(
        f"/api/v1/trip?trip={trip_id}",
        json=trip_body(bus.id, start + timedelta(minutes=30), end + timedelta(minutes=30)),
        headers=owner_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_list_bus_trips(client: AsyncClient, owner_headers, trip, bus):
    response = await client.get(f"/api/v1/trip?bus={bus.id}", headers=owner_headers)
    assert response.status_code == 200
    data = response.json()
    assert [t["id"] for t in data] == [trip.id]


@pytest.mark.asyncio
async def test_list_bus_trips_not_owner(client: AsyncClient, other_owner, trip, bus):
    response = await client.get(f"/api/v1/trip?bus={bus.id}", headers=headers_for(other_owner))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_search_trips(client: AsyncClient, commuter_headers, trip):
    """Commuters find upcoming trips between two towns, in either order of the route."""
    response = await client.get(
        "/api/v1/bus?start_from=Colombo&end_from=Kandy", headers=commuter_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["cached"] is False
    assert [t["id"] for t in data["trips"]] == [trip.id]
    assert data["trips"][0]["busno"] == "NB-1234"

    # Trip leaves Colombo, so nothing departs from Kandy
    response = await client.get(
        "/api/v1/bus?start_from=Kandy&end_from=Colombo", headers=commuter_headers
    )
    assert response.status_code == 200
    assert response.json()["trips"] == []


@pytest.mark.asyncio
async def test_search_trips_unknown_route(client: AsyncClient, commuter_headers, route):
    response = await client.get(
        "/api/v1/bus?start_from=Colombo&end_from=Jaffna", headers=commuter_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_admin_has_no_trip_capabilities(client: AsyncClient, db_session, bus):
    admin = await make_user(db_session, "Admin", Role.ADMIN)
    response = await client.get(f"/api/v1/trip?bus={bus.id}", headers=headers_for(admin))
    assert response.status_code == 403
