"""
Pydantic schemas for trip scheduling and trip search.

start_at/end_at arrive as raw strings: parsing is part of the scheduler's
ordered checks and must happen after the ownership check.
"""

from datetime import datetime
from pydantic import BaseModel, Field


class TripCreate(BaseModel):
    start_at: str = Field(..., examples=["2026-12-01T10:00:00Z"])
    end_at: str = Field(..., examples=["2026-12-01T12:00:00Z"])
    start_from: str = Field(..., min_length=1, max_length=100)
    bus: int


class TripResponse(BaseModel):
    id: int
    bus_id: int
    start_at: datetime
    end_at: datetime
    start_from: str

    model_config = {"from_attributes": True}


class TripSearchResult(BaseModel):
    id: int
    busno: str
    start_at: datetime
    end_at: datetime


class TripSearchResponse(BaseModel):
    trips: list[TripSearchResult]
    cached: bool = False
