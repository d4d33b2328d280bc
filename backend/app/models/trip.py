"""
Trip model: one run of a bus between start_at and end_at.

Key design decisions:
- CHECK end_at > start_at at the DB level
- Composite index (bus_id, start_at) serves both the overlap check and the
  per-bus trip listing
- No delete path; trips are only created or rescheduled
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint

from app.db.base import Base, TimestampMixin


class Trip(Base, TimestampMixin):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    bus_id = Column(Integer, ForeignKey("busses.id"), nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    start_from = Column(String(100), nullable=False)

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="check_trip_window"),
        Index("ix_trips_bus_start", "bus_id", "start_at"),
    )

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, bus={self.bus_id}, {self.start_at} -> {self.end_at})>"
