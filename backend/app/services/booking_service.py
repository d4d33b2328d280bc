"""
Seat booking service with concurrency-safe allocation.

CONCURRENCY STRATEGY: Unique constraint as the safety net
=========================================================

Problem:
  Two commuters ask for seat 12 on the same trip at the same moment.
  Both read the trip's bookings, neither sees seat 12 taken, both insert.
  Result: one seat, two passengers.

Solution:
  bookings has UNIQUE (trip_id, seat). Whatever the application believes,
  the database accepts exactly one row per seat per trip. The second
  INSERT fails with an IntegrityError, which we translate into a seat
  conflict after rolling the whole request back.

  On top of that:
  1. The trip row is locked (SELECT ... FOR UPDATE) before reading booked
     seats, so on PostgreSQL concurrent requests for one trip queue up and
     the pre-check below is usually accurate.
  2. The pre-check rejects known collisions without touching the table and
     names the seat that is taken.
  3. All seats of one request are inserted in one flush inside the request
     transaction: either every seat is booked or none is.

Retries:
  Only transient storage failures (deadlock, serialization failure) are
  retried. A seat conflict is a final answer.

Idempotency:
  With an Idempotency-Key, the key row is inserted in the same transaction
  as the bookings. A retry of a committed request replays its bookings; a
  concurrent duplicate loses on the key's unique constraint.
"""

import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import (
    AuthorizationError,
    BookingSystemError,
    ConflictError,
    NotFoundError,
    SeatConflictError,
    StorageError,
    ValidationError,
)
from app.core.logging import get_logger
from app.core.metrics import (
    booking_cancellations,
    booking_latency,
    db_retries,
    record_booking_attempt,
)
from app.models.booking import Booking
from app.models.idempotency import IdempotencyKey
from app.services import directory

logger = get_logger(__name__)
settings = get_settings()

# SQLSTATEs worth retrying: serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = {"40001", "40P01"}

SEAT_UNIQUE_CONSTRAINT = "uq_booking_trip_seat"
# SQLite names columns instead of the constraint
SEAT_UNIQUE_COLUMNS = "bookings.trip_id, bookings.seat"


@dataclass
class BookingResult:
    bookings: list[Booking] = field(default_factory=list)
    replayed: bool = False

    @property
    def seats(self) -> list[int]:
        return [b.seat for b in self.bookings]


def _is_transient(error: DBAPIError) -> bool:
    if error.connection_invalidated:
        return True
    orig = getattr(error, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in TRANSIENT_SQLSTATES


def _is_seat_collision(error: IntegrityError) -> bool:
    """Was `error` raised by the (trip_id, seat) unique constraint."""
    orig = error.orig
    # asyncpg chains its own exception, psycopg2 exposes diag
    for source in (getattr(orig, "__cause__", None), getattr(orig, "diag", None)):
        constraint = getattr(source, "constraint_name", None)
        if constraint:
            return constraint == SEAT_UNIQUE_CONSTRAINT
    message = str(orig)
    return SEAT_UNIQUE_CONSTRAINT in message or SEAT_UNIQUE_COLUMNS in message


def _validate_seats(seats: list[int], seat_count: int) -> None:
    if not seats:
        raise ValidationError("At least one seat is required")
    if len(seats) > settings.BOOKING_MAX_SEATS_PER_REQUEST:
        raise ValidationError(
            f"At most {settings.BOOKING_MAX_SEATS_PER_REQUEST} seats can be booked at once"
        )
    for seat in seats:
        if seat < 1 or seat > seat_count:
            raise ValidationError(f"Invalid seat: {seat}")
    if len(set(seats)) != len(seats):
        raise ValidationError("Duplicate seat numbers in request")


def _seats_fingerprint(seats: Iterable[int]) -> str:
    return ",".join(str(s) for s in sorted(seats))


async def _taken_seats(db: AsyncSession, trip_id: int, seats: list[int]) -> set[int]:
    result = await db.execute(
        select(Booking.seat).where(Booking.trip_id == trip_id, Booking.seat.in_(seats))
    )
    return set(result.scalars().all())


def _first_in_request_order(seats: list[int], taken: set[int]) -> int:
    return next(s for s in seats if s in taken)


async def _replay(
    db: AsyncSession,
    record: IdempotencyKey,
    trip_id: int,
    seats: list[int],
    user_id: int,
) -> BookingResult:
    if (
        record.user_id != user_id
        or record.trip_id != trip_id
        or record.seats != _seats_fingerprint(seats)
    ):
        raise ConflictError("Idempotency-Key was already used with different parameters")

    result = await db.execute(
        select(Booking)
        .where(Booking.trip_id == trip_id, Booking.user_id == user_id, Booking.seat.in_(seats))
        .order_by(Booking.seat)
    )
    return BookingResult(bookings=list(result.scalars().all()), replayed=True)


async def _allocate(
    db: AsyncSession,
    trip_id: int,
    seats: list[int],
    user_id: int,
    idempotency_key: Optional[str],
) -> BookingResult:
    row = await directory.get_trip_with_bus(db, trip_id, for_update=True)
    if row is None:
        raise NotFoundError(f"Trip {trip_id} not found")
    trip, bus = row

    _validate_seats(seats, bus.seat_count)

    if idempotency_key:
        existing = await db.execute(
            select(IdempotencyKey).where(IdempotencyKey.key == idempotency_key)
        )
        record = existing.scalar_one_or_none()
        if record is not None:
            return await _replay(db, record, trip.id, seats, user_id)

    taken = await _taken_seats(db, trip.id, seats)
    if taken:
        raise SeatConflictError(_first_in_request_order(seats, taken))

    if idempotency_key:
        db.add(IdempotencyKey(
            key=idempotency_key,
            user_id=user_id,
            trip_id=trip.id,
            seats=_seats_fingerprint(seats),
        ))
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("A request with this Idempotency-Key is already in progress")

    bookings = [Booking(trip_id=trip.id, seat=seat, user_id=user_id) for seat in sorted(seats)]
    db.add_all(bookings)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        if not _is_seat_collision(e):
            logger.error("booking_integrity_error", trip_id=trip_id, user_id=user_id, error=str(e.orig))
            raise StorageError("Booking could not be stored") from e
        # Lost the race for at least one seat: the winner has committed by now
        taken = await _taken_seats(db, trip_id, seats)
        if taken:
            raise SeatConflictError(_first_in_request_order(seats, taken))
        raise ConflictError("Seats were booked concurrently, please try again")

    for booking in bookings:
        await db.refresh(booking)
    return BookingResult(bookings=bookings)


async def book_seats(
    db: AsyncSession,
    trip_id: int,
    seats: list[int],
    user_id: int,
    idempotency_key: Optional[str] = None,
) -> BookingResult:
    """
    Book every seat in `seats` on `trip_id` for `user_id`, or none of them.

    Raises NotFoundError (unknown trip), ValidationError (bad seat numbers),
    ConflictError (seat taken, reused idempotency key) or StorageError.
    """
    started = time.perf_counter()
    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        try:
            result = await _allocate(db, trip_id, seats, user_id, idempotency_key)
            break
        except BookingSystemError as e:
            if isinstance(e, ConflictError):
                status = "conflict"
            elif isinstance(e, StorageError):
                status = "error"
            else:
                status = "invalid"
            record_booking_attempt(status)
            logger.warning(
                "booking_rejected",
                trip_id=trip_id,
                user_id=user_id,
                seats=seats,
                reason=e.detail,
            )
            raise
        except DBAPIError as e:
            if not _is_transient(e) or attempt == settings.MAX_RETRY_ATTEMPTS:
                record_booking_attempt("error")
                logger.error("booking_storage_error", trip_id=trip_id, attempt=attempt, error=str(e))
                raise StorageError("Booking could not be stored") from e
            await db.rollback()
            db_retries.inc()
            logger.info("booking_retry", trip_id=trip_id, attempt=attempt, reason="transient_storage_error")

    booking_latency.observe(time.perf_counter() - started)
    record_booking_attempt("replayed" if result.replayed else "success")
    logger.info(
        "booking_created",
        trip_id=trip_id,
        user_id=user_id,
        seats=result.seats,
        booking_ids=[b.id for b in result.bookings],
        replayed=result.replayed,
    )
    return result


async def cancel_booking(db: AsyncSession, booking_id: Optional[int], user_id: int) -> int:
    """
    Delete a booking owned by `user_id`. Deleting the row is what returns
    the seat to the trip's inventory.
    """
    if booking_id is None:
        raise ValidationError("Booking ID is required")

    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalar_one_or_none()

    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    if booking.user_id != user_id:
        logger.warning("booking_cancel_forbidden", booking_id=booking_id, user_id=user_id)
        raise AuthorizationError("You are not authorized to delete this booking")

    trip_id, seat = booking.trip_id, booking.seat
    deleted = await db.execute(
        delete(Booking).where(Booking.id == booking_id, Booking.user_id == user_id)
    )
    if deleted.rowcount == 0:
        # Cancelled by a concurrent request between the read and the delete
        raise NotFoundError(f"Booking {booking_id} not found")

    booking_cancellations.inc()
    logger.info(
        "booking_cancelled",
        booking_id=booking_id,
        user_id=user_id,
        trip_id=trip_id,
        seat_released=seat,
    )
    return booking_id


async def list_trip_seats(db: AsyncSession, trip_id: int) -> list[Booking]:
    """Active bookings of a trip, i.e. its occupied seats."""
    result = await db.execute(
        select(Booking).where(Booking.trip_id == trip_id).order_by(Booking.seat.asc())
    )
    return list(result.scalars().all())


async def list_trip_bookings(db: AsyncSession, trip_id: int, user_id: int) -> list[Booking]:
    """Bookings of a trip, visible only to the owner of the bus running it."""
    trip = await directory.get_trip(db, trip_id)
    if trip is None:
        raise NotFoundError(f"Trip {trip_id} not found")
    if not await directory.owns_trip(db, user_id, trip_id):
        raise AuthorizationError(f"You do not own the bus running trip {trip_id}")
    return await list_trip_seats(db, trip_id)
