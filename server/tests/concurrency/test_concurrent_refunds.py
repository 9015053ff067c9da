"""Concurrency tests for refunds and conditional booking updates."""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from helitour.core.database import Base
from helitour.core.exceptions import (
    BookingConflictError,
    InvalidTransitionError,
    ProblemDetailsException,
    StoreUnavailableError,
)
from helitour.models.booking import Booking, BookingStatus, BookingType
from helitour.models.transaction import Transaction
from helitour.schemas.booking import BookingChanges, CreateBookingRequest, UpdateBookingRequest
from helitour.schemas.refund import IssueRefundRequest
from helitour.services.booking_service import BookingService
from helitour.services.booking_store import BookingStore
from helitour.services.refund_service import RefundService
from helitour.services.state_machine import plan_transition

from helpers import ADMIN, CLIENT, PILOT


@pytest_asyncio.fixture(scope="function")
async def file_session_factory(tmp_path):
    """Sessions on a file database so each one gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_refunds_never_exceed_total(file_session_factory, flight_date):
    """Test that concurrent refunds cannot refund more than the booking total."""
    async with file_session_factory() as session:
        booking = await BookingService(session).create_booking(
            CreateBookingRequest(
                booking_type=BookingType.TRANSPORT,
                destination_id="dest-lake-house",
                scheduled_date=flight_date,
                scheduled_time="10:00",
                passenger_count=2,
            ),
            CLIENT,
        )
        await session.execute(
            update(Booking)
            .where(Booking.id == booking.id)
            .values(base_price=50000, total_price=50000, payment_status="paid")
        )
        await session.commit()
        booking_id = str(booking.id)

    num_concurrent_requests = 8

    async def refund():
        async with file_session_factory() as session:
            return await RefundService(session).issue_refund(
                IssueRefundRequest(booking_id=booking_id, amount=10000),
                ADMIN,
            )

    results = await asyncio.gather(*(refund() for _ in range(num_concurrent_requests)), return_exceptions=True)

    failures = [r for r in results if isinstance(r, Exception)]
    successes = len(results) - len(failures)
    assert all(isinstance(error, ProblemDetailsException) for error in failures)
    assert 1 <= successes <= 5

    async with file_session_factory() as session:
        stored = await BookingStore(session).find_by_id(booking.id)
        entries = await session.scalar(select(func.count()).select_from(Transaction))

    assert stored.refund_amount == 10000 * successes
    assert stored.refund_amount <= stored.total_price
    assert entries == successes


@pytest.mark.asyncio
async def test_lost_conditional_update_is_re_evaluated(test_session, create_booking, monkeypatch):
    """Test a write that loses the version race is re-planned and retried."""
    booking = await create_booking()
    original = BookingStore.conditional_update
    calls = []

    async def lose_first_race(self, booking_id, expected_version, patch):
        calls.append(expected_version)
        if len(calls) == 1:
            return False
        return await original(self, booking_id, expected_version, patch)

    monkeypatch.setattr(BookingStore, "conditional_update", lose_first_race)

    updated, changed = await BookingService(test_session).update_booking(
        UpdateBookingRequest(booking_id=str(booking.id), changes=BookingChanges(notes="Window seat")),
        CLIENT,
    )

    assert len(calls) == 2
    assert changed == ["notes"]
    assert updated.notes == "Window seat"
    assert updated.version == 2


@pytest.mark.asyncio
async def test_client_cancel_loses_to_concurrent_assignment(test_session, create_booking, monkeypatch):
    """Test a client cancel re-planned after an admin assignment is refused."""
    booking = await create_booking()
    booking_id = booking.id
    original = BookingStore.conditional_update
    calls = []

    async def assign_first(self, booking_id, expected_version, patch):
        calls.append(patch)
        if len(calls) > 1:
            return await original(self, booking_id, expected_version, patch)

        assignment = plan_transition(BookingStatus.PENDING, BookingStatus.ASSIGNED, ADMIN.role, pilot_assigned=True)
        await original(
            self,
            booking_id,
            expected_version,
            {"status": BookingStatus.ASSIGNED.value, "pilot_id": PILOT.user_id},
        )
        self.db.add(BookingStore._status_change(booking_id, assignment, ADMIN))
        await self.db.commit()
        return False

    monkeypatch.setattr(BookingStore, "conditional_update", assign_first)

    with pytest.raises(InvalidTransitionError):
        await BookingService(test_session).cancel_booking(str(booking_id), CLIENT)

    store = BookingStore(test_session)
    stored = await store.find_by_id(booking_id)
    history = await store.history(booking_id)

    assert len(calls) == 1
    assert stored.status == BookingStatus.ASSIGNED.value
    assert stored.pilot_id == PILOT.user_id
    assert [(row.from_status, row.to_status) for row in history] == [("pending", "assigned")]


@pytest.mark.asyncio
async def test_gives_up_after_repeated_conflicts(test_session, create_booking, monkeypatch):
    """Test the update fails as retryable once every attempt loses."""
    booking = await create_booking()
    booking_id = booking.id

    async def always_lose(self, *args):
        return False

    monkeypatch.setattr(BookingStore, "conditional_update", always_lose)

    with pytest.raises(BookingConflictError) as exc_info:
        await BookingService(test_session).update_booking(
            UpdateBookingRequest(booking_id=str(booking_id), changes=BookingChanges(notes="Window seat")),
            CLIENT,
        )

    assert exc_info.value.status_code == 409
    assert exc_info.value.problem_details["retryable"] is True

    stored = await BookingStore(test_session).find_by_id(booking_id)
    assert stored.notes is None
    assert stored.version == 1


@pytest.mark.asyncio
async def test_store_failure_is_unavailable(test_session, create_booking, monkeypatch):
    """Test database failures surface as a retryable 503."""
    booking = await create_booking()

    async def failing_execute(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(test_session, "execute", failing_execute)

    with pytest.raises(StoreUnavailableError) as exc_info:
        await BookingStore(test_session).find_by_id(booking.id)

    assert exc_info.value.status_code == 503
    assert exc_info.value.problem_details["retryable"] is True
    assert exc_info.value.headers["Retry-After"] == "1"
