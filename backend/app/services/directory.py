"""
Lookups over reference data (buses, routes, trips), the per-bus scheduling
claim, and the ownership predicates the scheduling and booking services run
before any mutation.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.bus import Bus
from app.models.route import Route
from app.models.trip import Trip


async def get_bus(db: AsyncSession, bus_id: int) -> Optional[Bus]:
    result = await db.execute(select(Bus).where(Bus.id == bus_id))
    return result.scalar_one_or_none()


async def claim_bus(db: AsyncSession, bus_id: int) -> Optional[Bus]:
    """
    Bump the bus's schedule_version inside the current transaction. The
    write holds the bus row lock (the database write lock on SQLite) until
    commit, so a second scheduler for the same bus waits here and then sees
    the first one's trip. Returns None for an unknown bus.
    """
    result = await db.execute(
        update(Bus)
        .where(Bus.id == bus_id)
        .values(schedule_version=Bus.schedule_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    return await get_bus(db, bus_id)


async def get_route(db: AsyncSession, route_id: int) -> Optional[Route]:
    result = await db.execute(select(Route).where(Route.id == route_id))
    return result.scalar_one_or_none()


async def find_route_between(db: AsyncSession, town_a: str, town_b: str) -> Optional[Route]:
    """Route joining the two towns, in either direction."""
    result = await db.execute(
        select(Route)
        .where(
            ((Route.town_one == town_a) & (Route.town_two == town_b))
            | ((Route.town_one == town_b) & (Route.town_two == town_a))
        )
        .order_by(Route.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_trip(db: AsyncSession, trip_id: int) -> Optional[Trip]:
    result = await db.execute(select(Trip).where(Trip.id == trip_id))
    return result.scalar_one_or_none()


async def get_trip_with_bus(
    db: AsyncSession, trip_id: int, for_update: bool = False
) -> Optional[tuple[Trip, Bus]]:
    """
    Trip joined to its bus. With for_update the trip row is locked, which
    serializes seat allocation per trip on PostgreSQL.
    """
    query = select(Trip, Bus).join(Bus, Bus.id == Trip.bus_id).where(Trip.id == trip_id)
    if for_update:
        query = query.with_for_update(of=Trip)
    row = (await db.execute(query)).one_or_none()
    if row is None:
        return None
    return row[0], row[1]


async def owns_bus(db: AsyncSession, user_id: int, bus_id: int) -> bool:
    result = await db.execute(
        select(Bus.id).where(Bus.id == bus_id, Bus.owner_id == user_id)
    )
    return result.scalar_one_or_none() is not None


async def owns_trip(db: AsyncSession, user_id: int, trip_id: int) -> bool:
    """Does `user_id` own the bus running `trip_id`."""
    result = await db.execute(
        select(Trip.id)
        .join(Bus, Bus.id == Trip.bus_id)
        .where(Trip.id == trip_id, Bus.owner_id == user_id)
    )
    return result.scalar_one_or_none() is not None
