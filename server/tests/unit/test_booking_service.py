"""Unit tests for booking service."""

from datetime import date, timedelta
from uuid import uuid4

import pytest

from helitour.core.exceptions import (
    AuthorizationError,
    InvalidFieldError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from helitour.models.booking import BookingStatus, BookingType, TransitionKind
from helitour.schemas.booking import (
    AddonSelection,
    BookingChanges,
    CreateBookingRequest,
    FinalizePassengerDetailsRequest,
    ListBookingsRequest,
    PassengerDetail,
    UpdateBookingRequest,
)
from helitour.schemas.catalog import UpdateAddonRequest
from helitour.services.booking_service import BookingService
from helitour.services.catalog_service import CatalogService
from helitour.services.pricing import quote_transport

from helpers import ADMIN, CLIENT, OTHER_CLIENT, OTHER_PILOT, PILOT


def changes(booking, **values) -> UpdateBookingRequest:
    return UpdateBookingRequest(booking_id=str(booking.id), changes=BookingChanges(**values))


def two_passengers() -> list[PassengerDetail]:
    return [PassengerDetail(name="Ana Lopez", age=34), PassengerDetail(name="Luis Lopez", age=36)]


@pytest.mark.asyncio
async def test_create_transport_booking(test_session):
    """Test a new booking starts pending and unpaid."""
    service = BookingService(test_session)

    booking = await service.create_booking(
        CreateBookingRequest(
            booking_type=BookingType.TRANSPORT,
            destination_id="dest-lake-house",
            scheduled_date=date.today() + timedelta(days=1),
            scheduled_time="08:00",
            passenger_count=2,
            total_price=1,
        ),
        CLIENT,
    )

    assert booking.id is not None
    assert booking.client_id == CLIENT.user_id
    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == "pending"
    assert booking.refund_status == "none"
    assert booking.total_price == 0
    assert booking.version == 1


@pytest.mark.asyncio
async def test_create_route_booking_is_quoted(test_session, flight_date):
    """Test a booking between known codes is priced from the route quote."""
    service = BookingService(test_session)

    booking = await service.create_booking(
        CreateBookingRequest(
            booking_type=BookingType.TRANSPORT,
            from_location="GUA",
            to_location="ANTIGUA",
            scheduled_date=flight_date,
            scheduled_time="08:00",
            passenger_count=3,
        ),
        CLIENT,
    )

    expected = quote_transport("GUA", "ANTIGUA", passengers=3).total_price_minor
    assert booking.base_price == expected
    assert booking.total_price == expected


@pytest.mark.asyncio
async def test_create_experience_booking(test_session, flight_date, create_experience):
    """Test an experience booking takes the package price."""
    experience = await create_experience(base_price=95000)
    service = BookingService(test_session)

    booking = await service.create_booking(
        CreateBookingRequest(
            booking_type=BookingType.EXPERIENCE,
            experience_id=str(experience.id),
            scheduled_date=flight_date,
            scheduled_time="06:00",
            passenger_count=2,
        ),
        CLIENT,
    )

    assert booking.experience_id == experience.id
    assert booking.total_price == 95000


@pytest.mark.asyncio
async def test_create_booking_for_retired_experience(test_session, flight_date, create_experience):
    """Test retired experiences cannot be booked."""
    experience = await create_experience(is_active=False)
    service = BookingService(test_session)

    with pytest.raises(NotFoundError):
        await service.create_booking(
            CreateBookingRequest(
                booking_type=BookingType.EXPERIENCE,
                experience_id=str(experience.id),
                scheduled_date=flight_date,
                scheduled_time="06:00",
                passenger_count=1,
            ),
            CLIENT,
        )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"scheduled_date": date.today() - timedelta(days=1)},
        {"is_round_trip": True},
        {"is_round_trip": True, "return_date": date.today() + timedelta(days=29), "return_time": "18:00"},
        {"experience_id": str(uuid4())},
        {"destination_id": None, "from_location": "GUA"},
        {"destination_id": None},
    ],
)
async def test_create_booking_validation(test_session, flight_date, overrides):
    """Test schedule and reference validation on creation."""
    values = {
        "booking_type": BookingType.TRANSPORT,
        "destination_id": "dest-lake-house",
        "scheduled_date": flight_date,
        "scheduled_time": "08:00",
        "passenger_count": 1,
    }
    values.update(overrides)
    service = BookingService(test_session)

    with pytest.raises(ValidationError):
        await service.create_booking(CreateBookingRequest(**values), CLIENT)


@pytest.mark.asyncio
async def test_client_updates_notes(test_session, create_booking):
    """Test a client edit bumps the version and reports the changed field."""
    booking = await create_booking()
    service = BookingService(test_session)

    updated, changed_fields = await service.update_booking(changes(booking, notes="Window seat please"), CLIENT)

    assert changed_fields == ["notes"]
    assert updated.notes == "Window seat please"
    assert updated.version == 2


@pytest.mark.asyncio
async def test_unchanged_update_is_noop(test_session, create_booking):
    """Test writing the stored value again changes nothing."""
    booking = await create_booking()
    service = BookingService(test_session)
    await service.update_booking(changes(booking, notes="Hello"), CLIENT)

    updated, changed_fields = await service.update_booking(changes(booking, notes="Hello"), CLIENT)

    assert changed_fields == []
    assert updated.version == 2


@pytest.mark.asyncio
async def test_client_cannot_set_total_price(test_session, create_booking):
    """Test the whole request is rejected when one field is forbidden."""
    booking = await create_booking(base_price=45000, total_price=45000)
    service = BookingService(test_session)

    with pytest.raises(InvalidFieldError) as exc_info:
        await service.update_booking(changes(booking, notes="cheaper please", total_price=1), CLIENT)

    assert exc_info.value.problem_details["fields"] == ["total_price"]
    stored = await service.get_booking(str(booking.id), CLIENT)
    assert stored.total_price == 45000
    assert stored.notes is None
    assert stored.version == 1


@pytest.mark.asyncio
async def test_client_addon_total_is_recomputed(test_session, create_booking):
    """Test a client-sent add-on total never reaches the stored price."""
    booking = await create_booking(base_price=45000, total_price=45000)
    service = BookingService(test_session)

    updated, changed_fields = await service.update_booking(changes(booking, addon_total_price=1), CLIENT)

    assert changed_fields == []
    assert updated.addon_total_price == 0
    assert updated.total_price == 45000


@pytest.mark.asyncio
async def test_unknown_field_rejected(test_session, create_booking):
    """Test keys that are not booking fields are rejected."""
    booking = await create_booking()
    service = BookingService(test_session)

    with pytest.raises(InvalidFieldError) as exc_info:
        await service.update_booking(changes(booking, client_id=OTHER_CLIENT.user_id), CLIENT)

    assert exc_info.value.problem_details["fields"] == ["client_id"]


@pytest.mark.asyncio
async def test_stranger_cannot_update(test_session, create_booking):
    """Test callers unrelated to the booking are forbidden."""
    booking = await create_booking()
    service = BookingService(test_session)

    with pytest.raises(AuthorizationError):
        await service.update_booking(changes(booking, notes="hijack"), OTHER_CLIENT)

    with pytest.raises(AuthorizationError):
        await service.update_booking(changes(booking, status="cancelled"), OTHER_PILOT)


@pytest.mark.asyncio
async def test_full_lifecycle(test_session, create_booking):
    """Test approve, assign, accept and complete with an audit row for each."""
    booking = await create_booking()
    service = BookingService(test_session)

    await service.update_booking(changes(booking, status="approved"), ADMIN)
    updated, changed_fields = await service.update_booking(
        changes(booking, status="assigned", pilot_id=PILOT.user_id, helicopter_id="TG-HEL1"),
        ADMIN,
    )
    assert changed_fields == ["helicopter_id", "pilot_id", "status"]
    assert updated.status == BookingStatus.ASSIGNED

    await service.update_booking(changes(booking, status="accepted", admin_notes="Fuel checked"), PILOT)
    updated, _ = await service.update_booking(changes(booking, status="completed"), PILOT)

    assert updated.status == BookingStatus.COMPLETED
    assert updated.admin_notes == "Fuel checked"

    history = await service.get_history(str(booking.id), CLIENT)
    assert [(h.from_status, h.to_status) for h in history] == [
        ("pending", "approved"),
        ("approved", "assigned"),
        ("assigned", "accepted"),
        ("accepted", "completed"),
    ]
    assert [h.actor_role for h in history] == ["admin", "admin", "pilot", "pilot"]
    assert all(h.kind == TransitionKind.STANDARD for h in history)


@pytest.mark.asyncio
async def test_assign_without_pilot(test_session, create_booking):
    """Test a booking cannot be assigned without a pilot."""
    booking = await create_booking(status="approved")
    service = BookingService(test_session)

    with pytest.raises(InvalidTransitionError):
        await service.update_booking(changes(booking, status="assigned"), ADMIN)


@pytest.mark.asyncio
async def test_assigned_booking_keeps_pilot(test_session, create_booking):
    """Test removing the pilot of an assigned booking is rejected."""
    booking = await create_booking(status="assigned", pilot_id=PILOT.user_id)
    service = BookingService(test_session)

    with pytest.raises(ValidationError):
        await service.update_booking(changes(booking, pilot_id=None), ADMIN)

    updated, _ = await service.update_booking(changes(booking, pilot_id=OTHER_PILOT.user_id), ADMIN)
    assert updated.pilot_id == OTHER_PILOT.user_id


@pytest.mark.asyncio
async def test_client_cannot_cancel_assigned_booking(test_session, create_booking):
    """Test clients may only cancel while the booking is pending."""
    booking = await create_booking(status="assigned", pilot_id=PILOT.user_id)
    service = BookingService(test_session)

    with pytest.raises(InvalidTransitionError):
        await service.cancel_booking(str(booking.id), CLIENT)

    stored = await service.get_booking(str(booking.id), CLIENT)
    assert stored.status == BookingStatus.ASSIGNED


@pytest.mark.asyncio
async def test_client_cancels_pending_booking(test_session, create_booking):
    """Test a client cancel is recorded and repeating it is a no-op."""
    booking = await create_booking()
    service = BookingService(test_session)

    cancelled = await service.cancel_booking(str(booking.id), CLIENT)
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.version == 2

    again = await service.cancel_booking(str(booking.id), CLIENT)
    assert again.version == 2

    history = await service.get_history(str(booking.id), ADMIN)
    assert len(history) == 1
    assert history[0].kind == TransitionKind.CLIENT_CANCEL


@pytest.mark.asyncio
async def test_admin_cancels_accepted_booking(test_session, create_booking):
    """Test admins can cancel any open booking."""
    booking = await create_booking(status="accepted", pilot_id=PILOT.user_id)
    service = BookingService(test_session)

    cancelled = await service.cancel_booking(str(booking.id), ADMIN)

    assert cancelled.status == BookingStatus.CANCELLED
    history = await service.get_history(str(booking.id), ADMIN)
    assert history[0].kind == TransitionKind.ADMIN_OVERRIDE


@pytest.mark.asyncio
async def test_pilot_cannot_cancel(test_session, create_booking):
    """Test an assigned pilot cannot cancel the flight."""
    booking = await create_booking(status="assigned", pilot_id=PILOT.user_id)
    service = BookingService(test_session)

    with pytest.raises(InvalidTransitionError):
        await service.cancel_booking(str(booking.id), PILOT)


@pytest.mark.asyncio
async def test_pilot_cancels_own_pending_booking_assigned_to_them(test_session, create_booking):
    """Test a pilot who booked a flight can still cancel it while pending."""
    booking = await create_booking(owner=PILOT, pilot_id=PILOT.user_id)
    service = BookingService(test_session)

    cancelled = await service.cancel_booking(str(booking.id), PILOT)

    assert cancelled.status == BookingStatus.CANCELLED
    history = await service.get_history(str(booking.id), PILOT)
    assert history[0].kind == TransitionKind.CLIENT_CANCEL
    assert history[0].actor_role == "pilot"


@pytest.mark.asyncio
async def test_pilot_owner_cancels_pending_booking_through_update(test_session, create_booking):
    """Test the status field follows the same owner rule as cancel."""
    booking = await create_booking(owner=PILOT, pilot_id=PILOT.user_id)
    service = BookingService(test_session)

    updated, changed = await service.update_booking(changes(booking, status="cancelled"), PILOT)

    assert updated.status == BookingStatus.CANCELLED
    assert changed == ["status"]


@pytest.mark.asyncio
async def test_admin_total_rebases_price(test_session, create_booking):
    """Test an admin total becomes the new base price."""
    booking = await create_booking()
    service = BookingService(test_session)

    updated, changed_fields = await service.update_booking(changes(booking, total_price=60000), ADMIN)

    assert changed_fields == ["base_price", "total_price"]
    assert updated.base_price == 60000
    assert updated.total_price == 60000


@pytest.mark.asyncio
async def test_admin_cannot_clear_required_field(test_session, create_booking):
    """Test required fields cannot be set to null."""
    booking = await create_booking()
    service = BookingService(test_session)

    with pytest.raises(ValidationError):
        await service.update_booking(changes(booking, scheduled_date=None), ADMIN)


@pytest.mark.asyncio
async def test_admin_reschedule(test_session, create_booking, flight_date):
    """Test rescheduling validates the merged schedule."""
    booking = await create_booking()
    service = BookingService(test_session)

    with pytest.raises(ValidationError):
        await service.update_booking(changes(booking, scheduled_date=date.today() - timedelta(days=2)), ADMIN)

    with pytest.raises(ValidationError):
        await service.update_booking(changes(booking, is_round_trip=True), ADMIN)

    updated, changed_fields = await service.update_booking(
        changes(booking, is_round_trip=True, return_date=flight_date + timedelta(days=2), return_time="17:30"),
        ADMIN,
    )
    assert changed_fields == ["is_round_trip", "return_date", "return_time"]
    assert updated.return_date == flight_date + timedelta(days=2)


@pytest.mark.asyncio
async def test_finalize_passenger_details_recomputes_total(test_session, create_booking, create_addon):
    """Test submitted prices are discarded and the total rebuilt."""
    booking = await create_booking(base_price=45000, total_price=45000)
    addon = await create_addon(price=7500)
    service = BookingService(test_session)

    updated = await service.finalize_passenger_details(
        FinalizePassengerDetailsRequest(
            booking_id=str(booking.id),
            passenger_details=two_passengers(),
            selected_addons=[AddonSelection(addon_id=str(addon.id), quantity=1)],
            total_price=1,
            addon_total_price=1,
        ),
        CLIENT,
    )

    assert updated.base_price == 45000
    assert updated.addon_total_price == 7500
    assert updated.total_price == 52500
    assert updated.selected_addons == [{"addon_id": str(addon.id), "quantity": 1, "unit_price": 7500}]
    assert [p["name"] for p in updated.passenger_details] == ["Ana Lopez", "Luis Lopez"]


@pytest.mark.asyncio
async def test_finalize_rejects_wrong_passenger_count(test_session, create_booking):
    """Test one passenger record is required per passenger."""
    booking = await create_booking(passenger_count=3)
    service = BookingService(test_session)

    with pytest.raises(ValidationError):
        await service.finalize_passenger_details(
            FinalizePassengerDetailsRequest(booking_id=str(booking.id), passenger_details=two_passengers()),
            CLIENT,
        )


@pytest.mark.asyncio
async def test_finalize_owner_only(test_session, create_booking):
    """Test only the owner completes passenger details."""
    booking = await create_booking()
    service = BookingService(test_session)
    request = FinalizePassengerDetailsRequest(booking_id=str(booking.id), passenger_details=two_passengers())

    with pytest.raises(AuthorizationError):
        await service.finalize_passenger_details(request, OTHER_CLIENT)
    with pytest.raises(AuthorizationError):
        await service.finalize_passenger_details(request, ADMIN)


@pytest.mark.asyncio
async def test_finalize_closed_booking(test_session, create_booking):
    """Test passenger details are frozen once a pilot is assigned."""
    booking = await create_booking(status="assigned", pilot_id=PILOT.user_id)
    service = BookingService(test_session)

    with pytest.raises(ValidationError):
        await service.finalize_passenger_details(
            FinalizePassengerDetailsRequest(booking_id=str(booking.id), passenger_details=two_passengers()),
            CLIENT,
        )


@pytest.mark.asyncio
async def test_addon_price_frozen_after_catalog_change(test_session, create_booking, create_addon):
    """Test a catalog price change does not reprice existing selections."""
    booking = await create_booking(base_price=45000, total_price=45000)
    addon = await create_addon(price=7500)
    service = BookingService(test_session)
    selection = [{"addon_id": str(addon.id), "quantity": 1}]

    await service.update_booking(changes(booking, selected_addons=selection), CLIENT)
    await CatalogService(test_session).update_addon(UpdateAddonRequest(addon_id=str(addon.id), price=9900))

    selection[0]["quantity"] = 2
    updated, changed_fields = await service.update_booking(changes(booking, selected_addons=selection), CLIENT)

    assert changed_fields == ["addon_total_price", "selected_addons", "total_price"]
    assert updated.addon_total_price == 15000
    assert updated.total_price == 60000


@pytest.mark.asyncio
async def test_delete_booking(test_session, create_booking):
    """Test hard delete is admin-only."""
    booking = await create_booking()
    service = BookingService(test_session)

    with pytest.raises(AuthorizationError):
        await service.delete_booking(str(booking.id), CLIENT)

    await service.delete_booking(str(booking.id), ADMIN)

    with pytest.raises(NotFoundError):
        await service.get_booking(str(booking.id), ADMIN)
    with pytest.raises(NotFoundError):
        await service.delete_booking(str(booking.id), ADMIN)


@pytest.mark.asyncio
async def test_get_booking_visibility(test_session, create_booking):
    """Test who can read a booking."""
    booking = await create_booking(status="assigned", pilot_id=PILOT.user_id)
    service = BookingService(test_session)

    for identity in (CLIENT, PILOT, ADMIN):
        assert (await service.get_booking(str(booking.id), identity)).id == booking.id

    for identity in (OTHER_CLIENT, OTHER_PILOT):
        with pytest.raises(AuthorizationError):
            await service.get_booking(str(booking.id), identity)

    with pytest.raises(NotFoundError):
        await service.get_booking("not-a-uuid", ADMIN)


@pytest.mark.asyncio
async def test_list_bookings_scoped_and_paginated(test_session, create_booking):
    """Test listing is scoped by role and paginated by cursor."""
    for _ in range(3):
        await create_booking()
    await create_booking(owner=OTHER_CLIENT, status="assigned", pilot_id=PILOT.user_id)
    service = BookingService(test_session)

    own = await service.list_bookings(ListBookingsRequest(), CLIENT)
    assert len(own.items) == 3
    assert own.next_cursor is None

    flown = await service.list_bookings(ListBookingsRequest(), PILOT)
    assert [b.client_id for b in flown.items] == [OTHER_CLIENT.user_id]

    first = await service.list_bookings(ListBookingsRequest(limit=2), ADMIN)
    second = await service.list_bookings(ListBookingsRequest(limit=2, cursor=first.next_cursor), ADMIN)
    assert len(first.items) == 2
    assert len(second.items) == 2
    assert second.next_cursor is None
    assert {b.id for b in first.items}.isdisjoint({b.id for b in second.items})

    assigned = await service.list_bookings(ListBookingsRequest(status=BookingStatus.ASSIGNED), ADMIN)
    assert len(assigned.items) == 1

    with pytest.raises(ValidationError):
        await service.list_bookings(ListBookingsRequest(cursor="garbage"), ADMIN)
