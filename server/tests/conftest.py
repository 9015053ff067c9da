"""Test configuration and fixtures."""

from datetime import date, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from helitour.core.database import Base, get_db
from helitour.core.dependencies import Identity
from helitour.models import *  # noqa: F403 - Import all models
from helitour.models.booking import Booking, BookingType
from helitour.schemas.booking import CreateBookingRequest
from helitour.schemas.catalog import CreateAddonRequest, CreateExperienceRequest
from helitour.services.booking_service import BookingService
from helitour.services.catalog_service import CatalogService

from helpers import CLIENT

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
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
    """Create a test FastAPI application."""
    from fastapi import FastAPI

    from helitour.core.exceptions import register_exception_handlers
    from helitour.core.middleware import setup_middleware
    from helitour.routers import (
        booking_router,
        catalog_router,
        health_router,
        metrics_router,
        pricing_router,
        refund_router,
        transaction_router,
    )

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="Helicopter Booking API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    setup_middleware(app, enable_logging=False)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(booking_router)
    app.include_router(refund_router)
    app.include_router(transaction_router)
    app.include_router(catalog_router)
    app.include_router(pricing_router)
    app.include_router(metrics_router)

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def flight_date():
    """A date safely in the future."""
    return date.today() + timedelta(days=30)


@pytest.fixture
def sample_transport_data(flight_date):
    """Transport booking to a catalog destination (no route quote)."""
    return {
        "booking_type": "transport",
        "destination_id": "dest-lake-house",
        "scheduled_date": flight_date.isoformat(),
        "scheduled_time": "09:30",
        "passenger_count": 2,
    }


@pytest.fixture
def sample_route_data(flight_date):
    """Transport booking between two quotable destination codes."""
    return {
        "booking_type": "transport",
        "from_location": "GUA",
        "to_location": "ANTIGUA",
        "scheduled_date": flight_date.isoformat(),
        "scheduled_time": "14:00",
        "passenger_count": 1,
    }


@pytest.fixture
def create_booking(test_session, flight_date):
    """Create a booking through the service, optionally forcing stored columns afterwards."""

    async def _create(owner: Identity = CLIENT, passenger_count: int = 2, **stored):
        service = BookingService(test_session)
        booking = await service.create_booking(
            CreateBookingRequest(
                booking_type=BookingType.TRANSPORT,
                destination_id="dest-lake-house",
                scheduled_date=flight_date,
                scheduled_time="10:00",
                passenger_count=passenger_count,
            ),
            owner,
        )
        if stored:
            await test_session.execute(
                update(Booking).where(Booking.id == booking.id).values(**stored)
            )
            await test_session.commit()
            booking = await service.store.find_by_id(booking.id)
        return booking

    return _create


@pytest.fixture
def create_addon(test_session):
    """Create a catalog add-on."""

    async def _create(name: str = "Photo package", price: int = 7500, is_active: bool = True):
        return await CatalogService(test_session).create_addon(
            CreateAddonRequest(name=name, price=price, category="media", is_active=is_active)
        )

    return _create


@pytest.fixture
def create_experience(test_session):
    """Create an experience package."""

    async def _create(base_price: int = 95000, is_active: bool = True):
        return await CatalogService(test_session).create_experience(
            CreateExperienceRequest(name="Volcano sunrise", base_price=base_price, is_active=is_active)
        )

    return _create
