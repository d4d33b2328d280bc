"""
Booking endpoints with concurrency-safe seat reservation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.booking import (
    BookingCreate,
    BookingCancel,
    BookingResponse,
    BookingConfirmation,
    BookingCancelResponse,
)
from app.services.booking_service import (
    book_seats,
    cancel_booking,
    list_trip_seats,
    list_trip_bookings,
)
from app.core.exceptions import ValidationError
from app.core.roles import Capability
from app.core.security import Identity, require_capability

router = APIRouter(tags=["Bookings"])


@router.post("/book", response_model=BookingConfirmation)
async def create_booking(
    booking_data: BookingCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=120),
    identity: Identity = Depends(require_capability(Capability.BOOK_SEATS)),
    db: AsyncSession = Depends(get_db),
):
    """
    Book seats on a trip, all or nothing.

    If any requested seat is already taken the whole request fails with 409
    naming that seat. Send an Idempotency-Key header to make client retries
    safe: a repeat of a completed request returns the original bookings.
    """
    result = await book_seats(
        db,
        booking_data.trip,
        booking_data.seats,
        identity.user_id,
        idempotency_key=idempotency_key,
    )
    return BookingConfirmation(
        message="Booking placed",
        trip_id=booking_data.trip,
        seats=result.seats,
        bookings=[BookingResponse.model_validate(b) for b in result.bookings],
        replayed=result.replayed,
    )


@router.delete("/book", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    cancel_data: BookingCancel,
    identity: Identity = Depends(require_capability(Capability.BOOK_SEATS)),
    db: AsyncSession = Depends(get_db),
):
    """Cancel one of your bookings; the seat becomes bookable again."""
    booking_id = await cancel_booking(db, cancel_data.id, identity.user_id)
    return BookingCancelResponse(message="Booking deleted successfully", booking_id=booking_id)


@router.get("/seat", response_model=list[BookingResponse])
async def trip_seats_endpoint(
    trip: int = Query(...),
    identity: Identity = Depends(require_capability(Capability.BOOK_SEATS)),
    db: AsyncSession = Depends(get_db),
):
    """Occupied seats of a trip (its active bookings)."""
    return await list_trip_seats(db, trip)


@router.get("/booking", response_model=list[BookingResponse])
async def trip_bookings_endpoint(
    trip: Optional[int] = Query(None),
    identity: Identity = Depends(require_capability(Capability.VIEW_TRIP_BOOKINGS)),
    db: AsyncSession = Depends(get_db),
):
    """Bookings of a trip run by one of your buses."""
    if trip is None:
        raise ValidationError("trip query parameter is required")
    return await list_trip_bookings(db, trip, identity.user_id)
