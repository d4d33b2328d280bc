"""
Idempotency keys for seat booking requests.

A key is written in the same transaction as the bookings it produced, so a
client retrying after a timeout either replays the committed result or
loses the race on the unique key.
"""

from sqlalchemy import Column, Integer, String, ForeignKey

from app.db.base import Base, TimestampMixin


class IdempotencyKey(Base, TimestampMixin):
    __tablename__ = "idempotency_keys"

    id = Column(Integer, primary_key=True)
    key = Column(String(120), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    # Sorted, comma-joined seat numbers, e.g. "1,2,3"
    seats = Column(String(500), nullable=False)

    def __repr__(self) -> str:
        return f"<IdempotencyKey(key={self.key}, trip={self.trip_id}, seats={self.seats})>"
