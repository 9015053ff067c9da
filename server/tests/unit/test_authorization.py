"""Unit tests for the field-level authorization policy."""

from uuid import uuid4

import pytest

from helitour.core.dependencies import Role
from helitour.core.exceptions import AuthorizationError, InvalidFieldError
from helitour.models.booking import Booking, BookingStatus
from helitour.schemas.booking import BookingChanges
from helitour.services.authorization import (
    ALLOWED_FIELDS,
    FIELD_PERMISSIONS,
    MutableField,
    authorize_update,
    can_read,
    resolve_acting_role,
    transition_role,
)

from helpers import ADMIN, CLIENT, OTHER_CLIENT, OTHER_PILOT, PILOT


def make_booking(client_id: str = CLIENT.user_id, pilot_id: str | None = PILOT.user_id) -> Booking:
    return Booking(id=uuid4(), client_id=client_id, pilot_id=pilot_id, status="assigned")


def test_every_mutable_field_has_a_decision():
    """Test no writable field is left out of the permission table."""
    assert set(FIELD_PERMISSIONS) == set(MutableField)


def test_mutable_fields_match_request_schema_and_columns():
    """Test the update schema, the field enum and the booking columns agree."""
    field_names = {field.value for field in MutableField}

    assert set(BookingChanges.model_fields) == field_names
    assert field_names <= set(Booking.__table__.columns.keys())


def test_role_allow_lists():
    """Test the allow-list of each role."""
    assert {f.value for f in ALLOWED_FIELDS[Role.CLIENT]} == {
        "notes",
        "status",
        "passenger_details",
        "selected_addons",
        "addon_total_price",
    }
    assert {f.value for f in ALLOWED_FIELDS[Role.PILOT]} == {"status", "admin_notes"}
    assert ALLOWED_FIELDS[Role.ADMIN] >= {
        MutableField.PILOT_ID,
        MutableField.TOTAL_PRICE,
        MutableField.PAYMENT_STATUS,
        MutableField.ADMIN_NOTES,
    }
    assert MutableField.NOTES not in ALLOWED_FIELDS[Role.ADMIN]


def test_resolve_acting_role():
    """Test which policy applies to each caller."""
    booking = make_booking()

    assert resolve_acting_role(ADMIN, booking) == Role.ADMIN
    assert resolve_acting_role(PILOT, booking) == Role.PILOT
    assert resolve_acting_role(CLIENT, booking) == Role.CLIENT


def test_pilot_acts_as_client_on_own_unassigned_booking():
    """Test a pilot who booked a flight for themselves is treated as its client."""
    booking = make_booking(client_id=OTHER_PILOT.user_id, pilot_id=PILOT.user_id)

    assert resolve_acting_role(OTHER_PILOT, booking) == Role.CLIENT


def test_owning_pilot_cancels_pending_booking_as_client():
    """Test a pilot who owns a pending booking cancels it under the client policy."""
    booking = make_booking(client_id=PILOT.user_id, pilot_id=PILOT.user_id)
    booking.status = "pending"

    assert transition_role(PILOT, booking, Role.PILOT, BookingStatus.CANCELLED) == Role.CLIENT
    assert transition_role(PILOT, booking, Role.PILOT, BookingStatus.ASSIGNED) == Role.PILOT

    booking.status = "assigned"
    assert transition_role(PILOT, booking, Role.PILOT, BookingStatus.CANCELLED) == Role.PILOT


def test_transition_role_keeps_non_owner_role():
    booking = make_booking()
    booking.status = "pending"

    assert transition_role(PILOT, booking, Role.PILOT, BookingStatus.CANCELLED) == Role.PILOT
    assert transition_role(ADMIN, booking, Role.ADMIN, BookingStatus.CANCELLED) == Role.ADMIN


@pytest.mark.parametrize("identity", [OTHER_CLIENT, OTHER_PILOT])
def test_unrelated_caller_is_forbidden(identity):
    """Test callers with no relation to the booking are rejected."""
    booking = make_booking()

    with pytest.raises(AuthorizationError):
        resolve_acting_role(identity, booking)
    assert not can_read(identity, booking)


def test_authorize_update_returns_fields():
    """Test an allowed update resolves to field members."""
    role, fields = authorize_update(CLIENT, make_booking(), ["notes", "status"])

    assert role == Role.CLIENT
    assert fields == {MutableField.NOTES, MutableField.STATUS}


def test_client_cannot_write_total_price():
    """Test a client writing the total is rejected by field name."""
    with pytest.raises(InvalidFieldError) as exc_info:
        authorize_update(CLIENT, make_booking(), ["notes", "total_price"])

    assert exc_info.value.status_code == 403
    assert exc_info.value.problem_details["code"] == "INVALID_FIELD"
    assert exc_info.value.problem_details["fields"] == ["total_price"]


def test_unknown_field_rejected():
    """Test keys that are not booking fields are rejected like forbidden ones."""
    with pytest.raises(InvalidFieldError) as exc_info:
        authorize_update(ADMIN, make_booking(), ["pilot_id", "client_id", "version"])

    assert exc_info.value.problem_details["fields"] == ["client_id", "version"]


def test_pilot_limited_to_status_and_admin_notes():
    """Test an assigned pilot cannot re-price or reassign."""
    authorize_update(PILOT, make_booking(), ["status", "admin_notes"])

    with pytest.raises(InvalidFieldError):
        authorize_update(PILOT, make_booking(), ["pilot_id"])
