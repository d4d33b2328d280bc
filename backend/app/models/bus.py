"""
Bus model.

Key design decisions:
- `owner_id` is fixed at registration and drives every trip ownership check
- `seat_count` bounds the seat numbers a booking may claim (1..seat_count)
- `schedule_version` is bumped by every trip schedule/update before its
  overlap check; the write locks the bus row, so overlap checks for one bus
  run one at a time
"""

from sqlalchemy import Column, Integer, String, ForeignKey, CheckConstraint

from app.db.base import Base, TimestampMixin


class Bus(Base, TimestampMixin):
    __tablename__ = "busses"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    busno = Column(String(20), unique=True, nullable=False)
    permit_no = Column(String(50), unique=True, nullable=False)
    seat_count = Column(Integer, nullable=False)

    # Bumped to claim the bus for scheduling
    schedule_version = Column(Integer, nullable=False, default=1, server_default="1")

    __table_args__ = (
        CheckConstraint("seat_count > 0", name="check_bus_seat_count_positive"),
    )

    def __repr__(self) -> str:
        return f"<Bus(id={self.id}, busno={self.busno}, seats={self.seat_count})>"
