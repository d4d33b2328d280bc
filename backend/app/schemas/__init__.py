from app.schemas.trip import TripCreate, TripResponse, TripSearchResult, TripSearchResponse
from app.schemas.booking import (
    BookingCreate, BookingCancel, BookingResponse, BookingConfirmation, BookingCancelResponse,
)

__all__ = [
    "TripCreate", "TripResponse", "TripSearchResult", "TripSearchResponse",
    "BookingCreate", "BookingCancel", "BookingResponse", "BookingConfirmation",
    "BookingCancelResponse",
]
