"""
Trip endpoints: bus owners schedule and list trips, commuters search them.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.trip import TripCreate, TripResponse, TripSearchResponse, TripSearchResult
from app.services.trip_service import schedule_trip, update_trip, list_bus_trips, search_trips
from app.services.cache_service import (
    get_cached_trip_search,
    set_cached_trip_search,
    invalidate_trip_search_cache,
)
from app.core.roles import Capability
from app.core.security import Identity, require_capability
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["Trips"])


@router.post("/trip", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip_endpoint(
    trip_data: TripCreate,
    identity: Identity = Depends(require_capability(Capability.SCHEDULE_TRIPS)),
    db: AsyncSession = Depends(get_db),
):
    """
    Schedule a trip for one of your buses.

    Rejected when the bus is not yours (403), the window is malformed or in
    the past, the departure town is not on the bus's route (400), or the bus
    already has a trip overlapping the window (409).
    """
    trip = await schedule_trip(db, trip_data, identity.user_id)
    # Invalidate only once the trip is visible to other sessions
    await db.commit()
    await invalidate_trip_search_cache()
    return trip


@router.put("/trip", response_model=TripResponse)
async def update_trip_endpoint(
    trip_data: TripCreate,
    trip: int = Query(..., description="ID of the trip to reschedule"),
    identity: Identity = Depends(require_capability(Capability.SCHEDULE_TRIPS)),
    db: AsyncSession = Depends(get_db),
):
    """Reschedule a trip. Same checks as scheduling; the trip never conflicts with itself."""
    updated = await update_trip(db, trip, trip_data, identity.user_id)
    await db.commit()
    await invalidate_trip_search_cache()
    return updated


@router.get("/trip", response_model=list[TripResponse])
async def list_trips_endpoint(
    bus: int = Query(...),
    identity: Identity = Depends(require_capability(Capability.SCHEDULE_TRIPS)),
    db: AsyncSession = Depends(get_db),
):
    """All trips of one of your buses, earliest first."""
    return await list_bus_trips(db, bus, identity.user_id)


@router.get("/bus", response_model=TripSearchResponse)
async def search_trips_endpoint(
    start_from: str = Query(..., min_length=1),
    end_from: str = Query(..., min_length=1),
    identity: Identity = Depends(require_capability(Capability.SEARCH_TRIPS)),
    db: AsyncSession = Depends(get_db),
):
    """
    Upcoming trips between two towns, leaving from `start_from`.
    Cached in Redis until a trip is scheduled or rescheduled.
    """
    cached = await get_cached_trip_search(start_from, end_from)
    if cached is not None:
        logger.info("trip_search_cache_hit", start_from=start_from, end_from=end_from)
        return TripSearchResponse(trips=[TripSearchResult(**t) for t in cached], cached=True)

    trips = await search_trips(db, start_from, end_from)
    await set_cached_trip_search(start_from, end_from, [t.model_dump(mode="json") for t in trips])
    return TripSearchResponse(trips=trips)
