"""
Route between two towns. Reference data: created once, never edited.
"""

from sqlalchemy import Column, Integer, String, UniqueConstraint

from app.db.base import Base, TimestampMixin


class Route(Base, TimestampMixin):
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True)
    town_one = Column(String(100), nullable=False)
    town_two = Column(String(100), nullable=False)

    __table_args__ = (
        UniqueConstraint("town_one", "town_two", name="uq_route_towns"),
    )

    def serves(self, town: str) -> bool:
        return town in (self.town_one, self.town_two)

    def __repr__(self) -> str:
        return f"<Route(id={self.id}, {self.town_one} <-> {self.town_two})>"
