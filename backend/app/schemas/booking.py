"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class BookingCreate(BaseModel):
    trip: int
    seats: list[int]


class BookingCancel(BaseModel):
    # Optional so a missing id is reported as 400, not 422
    id: Optional[int] = None


class BookingResponse(BaseModel):
    id: int
    trip_id: int
    seat: int
    user_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingConfirmation(BaseModel):
    message: str
    trip_id: int
    seats: list[int]
    bookings: list[BookingResponse]
    replayed: bool = False


class BookingCancelResponse(BaseModel):
    message: str
    booking_id: int
