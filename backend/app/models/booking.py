"""
Booking model: one row per reserved seat on a trip.

Key design decisions:
- Unique constraint on (trip_id, seat) is the authoritative guard against
  double-booking; the service's pre-check only produces a nicer error
- No status column: deleting the row is what frees the seat
- The upper bound (seat <= bus.seat_count) spans tables and is enforced by
  the booking service
"""

from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, CheckConstraint

from app.db.base import Base, TimestampMixin


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    seat = Column(Integer, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("trip_id", "seat", name="uq_booking_trip_seat"),
        CheckConstraint("seat > 0", name="check_booking_seat_positive"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, trip={self.trip_id}, seat={self.seat}, user={self.user_id})>"
