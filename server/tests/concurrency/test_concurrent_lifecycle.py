"""Concurrency tests for booking placement and itinerary ordering."""

import asyncio
from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from portal.core.database import Base, configure_engine
from portal.core.exceptions import DuplicateBookingError
from portal.services.booking_service import BookingService
from portal.services.itinerary_service import ItineraryService
from portal.services.lifecycle_service import LifecycleService

pytestmark = pytest.mark.concurrency


@pytest_asyncio.fixture(scope="function")
async def shared_db(tmp_path):
    """A file-backed database so that every session gets its own connection."""
    engine = configure_engine(
        create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
            connect_args={"timeout": 30},
        )
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_destination_adds_get_distinct_orders(shared_db):
    """Test concurrent appends to one itinerary never share an order value."""
    async with shared_db() as session:
        itinerary = await ItineraryService(session).create_itinerary({"user_id": "u1", "title": "Busy trip"})

    num_concurrent_requests = 8

    async def add_destination(index: int):
        async with shared_db() as session:
            entry = await ItineraryService(session).add_destination({
                "itinerary_id": itinerary.id,
                "destination_id": f"d{index}",
                "name": f"Stop {index}",
                "start_date": date(2024, 1, 1),
                "end_date": date(2024, 1, 2),
            })
            return entry.order

    orders = await asyncio.gather(*(add_destination(i) for i in range(num_concurrent_requests)))

    assert sorted(orders) == list(range(num_concurrent_requests))

    async with shared_db() as session:
        loaded = await ItineraryService(session).get_itinerary(itinerary.id)
    assert [d.order for d in loaded.destinations] == list(range(num_concurrent_requests))


@pytest.mark.asyncio
async def test_concurrent_placements_create_one_booking(shared_db, sample_booking_data):
    """Test simultaneous identical placements leave exactly one unpaid booking."""
    num_concurrent_requests = 6

    async def place(_: int):
        async with shared_db() as session:
            booking, _payment = await LifecycleService(session).place_booking(sample_booking_data)
            return booking.id

    results = await asyncio.gather(
        *(place(i) for i in range(num_concurrent_requests)),
        return_exceptions=True
    )

    successes = [r for r in results if isinstance(r, str)]
    rejected = [r for r in results if isinstance(r, DuplicateBookingError)]
    assert len(successes) == 1
    assert len(rejected) == num_concurrent_requests - 1

    async with shared_db() as session:
        bookings = await BookingService(session).list_user_bookings("u1")
    assert [b.id for b in bookings] == successes


@pytest.mark.asyncio
async def test_unique_index_backs_duplicate_guard(test_session, catalog, sample_booking_data):
    """Test the storage constraint rejects a duplicate that slipped past the application check."""
    service = BookingService(test_session)
    first = await service.create_booking(sample_booking_data)

    real_check = service.find_unpaid_duplicate
    calls = []

    async def miss_first_check(*args):
        calls.append(args)
        if len(calls) == 1:
            return None
        return await real_check(*args)

    service.find_unpaid_duplicate = miss_first_check

    with pytest.raises(DuplicateBookingError) as exc_info:
        await service.create_booking(sample_booking_data)

    assert len(calls) == 2
    assert exc_info.value.problem_details["existing_booking_id"] == first.id
    assert [b.id for b in await service.list_user_bookings("u1")] == [first.id]
