"""
Tests for the Redis trip-search cache, with an in-memory stand-in for the
async Redis client.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient

from conftest import future_window
from app.services import cache_service


class InMemoryRedis:
    """The subset of redis.asyncio.Redis the cache service calls."""

    def __init__(self):
        self.store = {}
        self.invalidations = 0
        self.on_scan = None

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, key):
        self.store.pop(key, None)

    async def scan_iter(self, match=None, count=None):
        self.invalidations += 1
        if self.on_scan is not None:
            self.on_scan()
        prefix = match.rstrip("*")
        for key in list(self.store):
            if key.startswith(prefix):
                yield key


@pytest_asyncio.fixture
async def fake_redis(monkeypatch) -> InMemoryRedis:
    fake = InMemoryRedis()

    async def get_fake_redis():
        return fake

    monkeypatch.setattr(cache_service, "get_redis", get_fake_redis)
    return fake


def trip_body(bus_id: int, start, end, start_from: str = "Colombo") -> dict:
    return {
        "bus": bus_id,
        "start_at": start.isoformat(),
        "end_at": end.isoformat(),
        "start_from": start_from,
    }


async def search(client: AsyncClient, headers: dict, start_from: str = "Colombo", end_from: str = "Kandy"):
    return await client.get(
        f"/api/v1/bus?start_from={start_from}&end_from={end_from}", headers=headers
    )


@pytest.mark.asyncio
async def test_repeated_search_served_from_cache(client: AsyncClient, commuter_headers, trip, fake_redis):
    first = await search(client, commuter_headers)
    assert first.status_code == 200
    assert first.json()["cached"] is False
    assert list(fake_redis.store) == ["trips:search:from=Colombo&to=Kandy"]

    second = await search(client, commuter_headers)
    assert second.status_code == 200
    data = second.json()
    assert data["cached"] is True
    assert [t["id"] for t in data["trips"]] == [trip.id]
    assert data["trips"][0]["busno"] == "NB-1234"


@pytest.mark.asyncio
async def test_cached_search_does_not_answer_other_spelling(
    client: AsyncClient, commuter_headers, trip, fake_redis
):
    """Town lookups are exact, so a cached entry never answers a differently-cased query."""
    assert (await search(client, commuter_headers, "colombo", "kandy")).status_code == 404

    assert (await search(client, commuter_headers)).status_code == 200

    response = await search(client, commuter_headers, "colombo", "kandy")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_scheduling_invalidates_cached_searches(
    client: AsyncClient, commuter_headers, owner_headers, trip, bus, fake_redis
):
    await search(client, commuter_headers)
    assert (await search(client, commuter_headers)).json()["cached"] is True

    start, end = future_window(days=12)
    created = await client.post("/api/v1/trip", json=trip_body(bus.id, start, end), headers=owner_headers)
    assert created.status_code == 201
    assert fake_redis.store == {}

    data = (await search(client, commuter_headers)).json()
    assert data["cached"] is False
    assert [t["id"] for t in data["trips"]] == [created.json()["id"], trip.id]


@pytest.mark.asyncio
async def test_rescheduling_invalidates_cached_searches(
    client: AsyncClient, commuter_headers, owner_headers, trip, bus, fake_redis
):
    await search(client, commuter_headers)

    start, end = future_window(days=30, start_hour=11, hours=2)
    response = await client.put(
        f"/api/v1/trip?trip={trip.id}", json=trip_body(bus.id, start, end, "Kandy"), headers=owner_headers
    )
    assert response.status_code == 200

    # Trip now leaves Kandy
    data = (await search(client, commuter_headers)).json()
    assert data["cached"] is False
    assert data["trips"] == []


@pytest.mark.asyncio
async def test_cache_invalidated_after_trip_is_committed(
    client: AsyncClient, db_session, commuter_headers, owner_headers, bus, fake_redis
):
    open_transaction_seen = []
    fake_redis.on_scan = lambda: open_transaction_seen.append(db_session.in_transaction())

    start, end = future_window(days=12)
    created = await client.post("/api/v1/trip", json=trip_body(bus.id, start, end), headers=owner_headers)
    assert created.status_code == 201

    assert open_transaction_seen == [False]


@pytest.mark.asyncio
async def test_rejected_schedule_keeps_cache(
    client: AsyncClient, commuter_headers, owner_headers, trip, bus, fake_redis
):
    await search(client, commuter_headers)

    clash = trip_body(bus.id, trip.start_at + timedelta(minutes=30), trip.end_at + timedelta(minutes=30))
    response = await client.post("/api/v1/trip", json=clash, headers=owner_headers)
    assert response.status_code == 409
    assert fake_redis.invalidations == 0
    assert (await search(client, commuter_headers)).json()["cached"] is True
