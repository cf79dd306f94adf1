"""
Concurrency Tests.

Validates that the last slot on a trip cannot be handed out twice. Runs on a
file-backed SQLite database so each session gets its own connection, with
every transaction opened as BEGIN IMMEDIATE to serialize writers.
"""

import asyncio

import pytest
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from backend.app.core.exceptions import NoSlotsAvailableError, StateConflictError
from backend.app.db.session import Base
from backend.app.models.parcel_request import ParcelRequest
from backend.app.models.trip import Trip
from backend.app.services.request_lifecycle import RequestLifecycleService
from backend.app.services.trip_service import TripService
from backend.tests.helpers import TRAVELLER_ID, SENDER_ID, OTHER_SENDER_ID, publish_trip, submit_request


@pytest.fixture
async def file_sessionmaker(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'race.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


async def _accept(session_factory, request_id):
    async with session_factory() as session:
        return await RequestLifecycleService(session).accept_request(request_id, TRAVELLER_ID)


async def test_concurrent_accepts_on_last_slot(file_sessionmaker):
    """Two accepts racing for one slot: exactly one wins."""
    async with file_sessionmaker() as session:
        trip = await publish_trip(TripService(session), total_slots=1)
        lifecycle = RequestLifecycleService(session)
        first = await submit_request(lifecycle, trip.id, sender_id=SENDER_ID)
        second = await submit_request(lifecycle, trip.id, sender_id=OTHER_SENDER_ID)
        trip_id, request_ids = trip.id, (first.id, second.id)

    results = await asyncio.gather(
        *(_accept(file_sessionmaker, request_id) for request_id in request_ids),
        return_exceptions=True
    )

    successes = [r for r in results if isinstance(r, dict)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], NoSlotsAvailableError)

    async with file_sessionmaker() as session:
        trip = (await session.execute(select(Trip).where(Trip.id == trip_id))).scalar_one()
        statuses = (await session.execute(
            select(ParcelRequest.status).where(ParcelRequest.trip_id == trip_id)
        )).scalars().all()

    assert trip.available_slots == 0
    assert sorted(s.value for s in statuses) == ["accepted", "pending"]


async def test_double_tap_accept_is_exclusive(file_sessionmaker):
    """The same request accepted twice at once consumes one slot."""
    async with file_sessionmaker() as session:
        trip = await publish_trip(TripService(session), total_slots=3)
        request = await submit_request(RequestLifecycleService(session), trip.id)
        trip_id, request_id = trip.id, request.id

    results = await asyncio.gather(
        _accept(file_sessionmaker, request_id),
        _accept(file_sessionmaker, request_id),
        return_exceptions=True
    )

    assert sum(isinstance(r, dict) for r in results) == 1
    assert sum(isinstance(r, StateConflictError) for r in results) == 1

    async with file_sessionmaker() as session:
        trip = (await session.execute(select(Trip).where(Trip.id == trip_id))).scalar_one()
    assert trip.available_slots == 2
