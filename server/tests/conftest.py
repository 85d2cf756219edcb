"""Test configuration and fixtures."""

import os
from decimal import Decimal

# Settings are read at import time; point the service at SQLite before importing it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from portal.core.database import Base, configure_engine, get_db
from portal.models import *  # noqa: F403 - Import all models

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = configure_engine(
        create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """Create the application with the database dependency pointed at the test session."""
    from portal.main import create_app

    app = create_app()

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture(scope="function")
async def catalog(test_session):
    """Seed one destination and one event."""
    destination = Destination(  # noqa: F405
        id="d1",
        name="Victoria Falls",
        location="Victoria Falls",
        price=Decimal("100.00"),
        payment_url="https://pay.example.com/falls",
    )
    event = Event(  # noqa: F405
        id="e1",
        title="Harare Jazz Night",
        location="Harare",
        price=Decimal("15.00"),
    )
    test_session.add_all([destination, event])
    await test_session.commit()
    return {"destination": destination, "event": event}


@pytest.fixture
def sample_booking_data():
    """Booking request for user u1 and destination d1."""
    return {
        "user_id": "u1",
        "destination_id": "d1",
        "number_of_people": 2,
        "total_price": "200.00",
        "contact_name": "A",
        "contact_email": "a@x.com",
        "contact_phone": "123",
    }


@pytest.fixture
def sample_event_booking_data():
    """Booking request for user u1 and event e1."""
    return {
        "user_id": "u1",
        "event_id": "e1",
        "number_of_people": 3,
        "total_price": "45.00",
        "contact_name": "A",
        "contact_email": "a@x.com",
        "contact_phone": "123",
        "selected_ticket_type": {"name": "General", "price": 15},
    }


@pytest.fixture
def sample_gateway_data():
    """Gateway details pointing at an externally hosted payment page."""
    return {
        "payment_method": "bank_transfer",
        "payment_gateway": "manual",
        "payment_gateway_reference": "https://pay.example.com/ref/123",
    }
