"""
Trip scheduling with per-bus conflict detection.

CONCURRENCY STRATEGY: Claim the bus row before checking
=======================================================

Problem:
  Two owners' sessions (or two tabs of one owner) schedule trips for the same
  bus at the same moment. Both run the overlap query against a snapshot
  without the other's trip, both insert. Result: the bus is double-booked.

Solution:
  Every schedule/update first bumps busses.schedule_version, the same
  counter-on-the-parent-row idea as an optimistic version column, but taken
  up front. The UPDATE holds the bus row lock until commit (on SQLite the
  database write lock), so a second scheduler for the same bus blocks until
  the first commits, then sees its trip. Different buses never contend on
  PostgreSQL.

  Unlike seat booking there is no unique constraint that can express "no
  overlapping intervals" portably, so the lock is the guarantee here.

Overlap semantics:
  Windows are half-open [start_at, end_at). Two trips conflict when
  existing.start_at < candidate.end_at AND existing.end_at > candidate.start_at.
  Back-to-back trips (one ends exactly when the next starts) are allowed.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AuthorizationError,
    BookingSystemError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.core.logging import get_logger
from app.core.metrics import record_trip_schedule
from app.models.bus import Bus
from app.models.trip import Trip
from app.schemas.trip import TripCreate, TripSearchResult
from app.services import directory

logger = get_logger(__name__)

_datetime_adapter = TypeAdapter(datetime)


def parse_timestamp(value: str, field: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime. Naive input is taken as UTC."""
    try:
        parsed = _datetime_adapter.validate_python(value)
    except PydanticValidationError:
        raise ValidationError(f"{field} is not a valid timestamp: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def validate_window(raw_start: str, raw_end: str) -> tuple[datetime, datetime]:
    start_at = parse_timestamp(raw_start, "start_at")
    end_at = parse_timestamp(raw_end, "end_at")

    if start_at <= datetime.now(timezone.utc):
        raise ValidationError("start_at must be in the future")
    if end_at <= start_at:
        raise ValidationError("end_at must be after start_at")
    return start_at, end_at


async def _check_route(db: AsyncSession, bus: Bus, start_from: str) -> None:
    route = await directory.get_route(db, bus.route_id)
    if route is None or not route.serves(start_from):
        raise ValidationError(f"{start_from} is not on the route of bus {bus.id}, check route again")


async def _check_overlap(
    db: AsyncSession,
    bus_id: int,
    start_at: datetime,
    end_at: datetime,
    exclude_trip_id: Optional[int] = None,
) -> None:
    query = select(Trip.id).where(
        Trip.bus_id == bus_id,
        Trip.start_at < end_at,
        Trip.end_at > start_at,
    )
    if exclude_trip_id is not None:
        query = query.where(Trip.id != exclude_trip_id)

    clash = (await db.execute(query.order_by(Trip.start_at).limit(1))).scalar_one_or_none()
    if clash is not None:
        logger.warning(
            "trip_conflict",
            bus_id=bus_id,
            conflicting_trip_id=clash,
            start_at=start_at.isoformat(),
            end_at=end_at.isoformat(),
        )
        raise ConflictError(f"Bus {bus_id} already has trip {clash} in this window, check time again")


async def _lock_and_check(
    db: AsyncSession,
    data: TripCreate,
    start_at: datetime,
    end_at: datetime,
    exclude_trip_id: Optional[int] = None,
) -> Bus:
    """Route and overlap checks, run while holding the bus claim."""
    bus = await directory.claim_bus(db, data.bus)
    if bus is None:
        raise NotFoundError(f"Bus {data.bus} not found")
    await _check_route(db, bus, data.start_from)
    await _check_overlap(db, bus.id, start_at, end_at, exclude_trip_id)
    return bus


def _outcome(error: BookingSystemError) -> str:
    if isinstance(error, ConflictError):
        return "conflict"
    if isinstance(error, AuthorizationError):
        return "forbidden"
    if isinstance(error, (ValidationError, NotFoundError)):
        return "invalid"
    return "error"


async def schedule_trip(db: AsyncSession, data: TripCreate, user_id: int) -> Trip:
    """
    Schedule a new trip. Checks run in order and stop at the first failure:
    ownership, timestamp window, route, overlap.
    """
    try:
        if not await directory.owns_bus(db, user_id, data.bus):
            raise AuthorizationError(f"You do not own bus {data.bus}")

        start_at, end_at = validate_window(data.start_at, data.end_at)
        bus = await _lock_and_check(db, data, start_at, end_at)

        trip = Trip(bus_id=bus.id, start_at=start_at, end_at=end_at, start_from=data.start_from)
        db.add(trip)
        await db.flush()
        await db.refresh(trip)
    except BookingSystemError as e:
        record_trip_schedule("create", _outcome(e))
        raise

    record_trip_schedule("create", "success")
    logger.info(
        "trip_scheduled",
        trip_id=trip.id,
        bus_id=trip.bus_id,
        start_at=start_at.isoformat(),
        end_at=end_at.isoformat(),
        user_id=user_id,
    )
    return trip


async def update_trip(db: AsyncSession, trip_id: int, data: TripCreate, user_id: int) -> Trip:
    """
    Reschedule an existing trip. The caller must own the bus currently running
    the trip and the bus named in the request; the trip is excluded from its
    own overlap check.
    """
    try:
        trip = await directory.get_trip(db, trip_id)
        if trip is None:
            raise NotFoundError(f"Trip {trip_id} not found")
        if not await directory.owns_trip(db, user_id, trip_id):
            raise AuthorizationError(f"You do not own the bus running trip {trip_id}")
        if not await directory.owns_bus(db, user_id, data.bus):
            raise AuthorizationError(f"You do not own bus {data.bus}")

        start_at, end_at = validate_window(data.start_at, data.end_at)
        bus = await _lock_and_check(db, data, start_at, end_at, exclude_trip_id=trip_id)

        trip.bus_id = bus.id
        trip.start_at = start_at
        trip.end_at = end_at
        trip.start_from = data.start_from
        await db.flush()
        await db.refresh(trip)
    except BookingSystemError as e:
        record_trip_schedule("update", _outcome(e))
        raise

    record_trip_schedule("update", "success")
    logger.info(
        "trip_rescheduled",
        trip_id=trip.id,
        bus_id=trip.bus_id,
        start_at=start_at.isoformat(),
        end_at=end_at.isoformat(),
        user_id=user_id,
    )
    return trip


async def list_bus_trips(db: AsyncSession, bus_id: int, user_id: int) -> list[Trip]:
    """All trips of a bus, for its owner."""
    if not await directory.owns_bus(db, user_id, bus_id):
        raise AuthorizationError(f"You do not own bus {bus_id}")

    result = await db.execute(
        select(Trip).where(Trip.bus_id == bus_id).order_by(Trip.start_at.asc())
    )
    return list(result.scalars().all())


async def search_trips(db: AsyncSession, start_from: str, end_from: str) -> list[TripSearchResult]:
    """
    Upcoming trips leaving `start_from` on the route between the two towns.
    Uses the ix_trips_bus_start index through the bus join.
    """
    route = await directory.find_route_between(db, start_from, end_from)
    if route is None:
        raise NotFoundError(f"No route between {start_from} and {end_from}")

    result = await db.execute(
        select(Trip.id, Bus.busno, Trip.start_at, Trip.end_at)
        .join(Bus, Bus.id == Trip.bus_id)
        .where(
            Bus.route_id == route.id,
            Trip.start_from == start_from,
            Trip.start_at > datetime.now(timezone.utc),
        )
        .order_by(Trip.start_at.asc())
    )
    return [
        TripSearchResult(id=row.id, busno=row.busno, start_at=row.start_at, end_at=row.end_at)
        for row in result.all()
    ]
