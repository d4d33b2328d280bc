"""
Pytest fixtures for test database, client, and authentication.

Every test gets its own SQLite database file (aiosqlite), so tests that
open several sessions at once (concurrent booking) see real cross-session
locking and constraint behaviour. Fixture rows are committed and then
expunged: a rollback inside a request never expires them.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator, Optional

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.core.roles import Role
from app.core.security import create_access_token
from app.models import User, Route, Bus, Trip, Booking


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh database per test; yields a factory for independent sessions."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def persist(session: AsyncSession, obj):
    """Commit `obj`, load its server defaults and detach it from the session."""
    session.add(obj)
    await session.commit()
    await session.refresh(obj)
    session.expunge(obj)
    return obj


def headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


def future_window(days: int = 30, start_hour: int = 10, hours: int = 2) -> tuple[datetime, datetime]:
    day = (datetime.now(timezone.utc) + timedelta(days=days)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    start = day + timedelta(hours=start_hour)
    return start, start + timedelta(hours=hours)


async def make_user(session: AsyncSession, name: str, role: Role, user_id: Optional[int] = None) -> User:
    user = User(
        id=user_id,
        name=name,
        email=f"{name.lower()}@example.com",
        password_hash="not-a-real-hash",
        role=role.value,
    )
    return await persist(session, user)


@pytest_asyncio.fixture
async def owner(db_session: AsyncSession) -> User:
    return await make_user(db_session, "Owner", Role.BUS_OWNER)


@pytest_asyncio.fixture
async def other_owner(db_session: AsyncSession) -> User:
    return await make_user(db_session, "Rival", Role.BUS_OWNER)


@pytest_asyncio.fixture
async def commuter(db_session: AsyncSession) -> User:
    return await make_user(db_session, "Commuter", Role.COMMUTER)


@pytest_asyncio.fixture
async def other_commuter(db_session: AsyncSession) -> User:
    return await make_user(db_session, "Traveller", Role.COMMUTER)


@pytest_asyncio.fixture
async def owner_headers(owner: User) -> dict:
    return headers_for(owner)


@pytest_asyncio.fixture
async def commuter_headers(commuter: User) -> dict:
    return headers_for(commuter)


@pytest_asyncio.fixture
async def route(db_session: AsyncSession) -> Route:
    return await persist(db_session, Route(town_one="Colombo", town_two="Kandy"))


@pytest_asyncio.fixture
async def bus(db_session: AsyncSession, owner: User, route: Route) -> Bus:
    """40-seat bus on the Colombo-Kandy route."""
    return await persist(db_session, Bus(
        owner_id=owner.id,
        route_id=route.id,
        busno="NB-1234",
        permit_no="PERMIT-001",
        seat_count=40,
    ))


@pytest_asyncio.fixture
async def trip(db_session: AsyncSession, bus: Bus) -> Trip:
    """Trip 30 days from now, 10:00-12:00 UTC, leaving Colombo."""
    start, end = future_window()
    return await persist(db_session, Trip(
        bus_id=bus.id,
        start_at=start,
        end_at=end,
        start_from="Colombo",
    ))


@pytest_asyncio.fixture
async def booking(db_session: AsyncSession, trip: Trip, commuter: User) -> Booking:
    return await persist(db_session, Booking(trip_id=trip.id, seat=5, user_id=commuter.id))
