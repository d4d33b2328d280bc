from app.models.user import User
from app.models.route import Route
from app.models.bus import Bus
from app.models.trip import Trip
from app.models.booking import Booking
from app.models.idempotency import IdempotencyKey

__all__ = ["User", "Route", "Bus", "Trip", "Booking", "IdempotencyKey"]
