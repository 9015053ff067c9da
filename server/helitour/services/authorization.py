"""
Field-level authorization for booking updates.

Every writable booking field is a ``MutableField`` member, and every member
must appear in ``FIELD_PERMISSIONS`` with the roles allowed to write it.
The member values double as the API field names and the ``Booking``
column names.
"""

import logging
from enum import Enum
from typing import Iterable

from ..core.dependencies import Identity, Role
from ..core.exceptions import AuthorizationError, InvalidFieldError
from ..models.booking import Booking, BookingStatus

logger = logging.getLogger(__name__)


class MutableField(str, Enum):
    """Booking fields that some role may write after creation."""
    NOTES = "notes"
    STATUS = "status"
    PASSENGER_DETAILS = "passenger_details"
    SELECTED_ADDONS = "selected_addons"
    ADDON_TOTAL_PRICE = "addon_total_price"
    ADMIN_NOTES = "admin_notes"
    PILOT_ID = "pilot_id"
    TOTAL_PRICE = "total_price"
    PAYMENT_STATUS = "payment_status"
    HELICOPTER_ID = "helicopter_id"
    FROM_LOCATION = "from_location"
    TO_LOCATION = "to_location"
    SCHEDULED_DATE = "scheduled_date"
    SCHEDULED_TIME = "scheduled_time"
    RETURN_DATE = "return_date"
    RETURN_TIME = "return_time"
    IS_ROUND_TRIP = "is_round_trip"
    PASSENGER_COUNT = "passenger_count"
    REVISION_REQUESTED = "revision_requested"
    REVISION_NOTES = "revision_notes"
    REVISION_DATA = "revision_data"


_PILOT_AND_ADMIN = frozenset({Role.PILOT, Role.ADMIN})
_ALL_ROLES = frozenset({Role.CLIENT, Role.PILOT, Role.ADMIN})
_ADMIN_ONLY = frozenset({Role.ADMIN})
_CLIENT_ONLY = frozenset({Role.CLIENT})

FIELD_PERMISSIONS: dict[MutableField, frozenset[Role]] = {
    MutableField.NOTES: _CLIENT_ONLY,
    MutableField.STATUS: _ALL_ROLES,
    MutableField.PASSENGER_DETAILS: _CLIENT_ONLY,
    MutableField.SELECTED_ADDONS: _CLIENT_ONLY,
    MutableField.ADDON_TOTAL_PRICE: _CLIENT_ONLY,
    MutableField.ADMIN_NOTES: _PILOT_AND_ADMIN,
    MutableField.PILOT_ID: _ADMIN_ONLY,
    MutableField.TOTAL_PRICE: _ADMIN_ONLY,
    MutableField.PAYMENT_STATUS: _ADMIN_ONLY,
    MutableField.HELICOPTER_ID: _ADMIN_ONLY,
    MutableField.FROM_LOCATION: _ADMIN_ONLY,
    MutableField.TO_LOCATION: _ADMIN_ONLY,
    MutableField.SCHEDULED_DATE: _ADMIN_ONLY,
    MutableField.SCHEDULED_TIME: _ADMIN_ONLY,
    MutableField.RETURN_DATE: _ADMIN_ONLY,
    MutableField.RETURN_TIME: _ADMIN_ONLY,
    MutableField.IS_ROUND_TRIP: _ADMIN_ONLY,
    MutableField.PASSENGER_COUNT: _ADMIN_ONLY,
    MutableField.REVISION_REQUESTED: _ADMIN_ONLY,
    MutableField.REVISION_NOTES: _ADMIN_ONLY,
    MutableField.REVISION_DATA: _ADMIN_ONLY,
}


def _check_every_field_decided() -> None:
    undecided = set(MutableField) - set(FIELD_PERMISSIONS)
    if undecided:
        names = ", ".join(sorted(field.value for field in undecided))
        raise RuntimeError(f"Booking fields without an authorization decision: {names}")


_check_every_field_decided()

ALLOWED_FIELDS: dict[Role, frozenset[MutableField]] = {
    role: frozenset(field for field, roles in FIELD_PERMISSIONS.items() if role in roles)
    for role in Role
}


def resolve_acting_role(identity: Identity, booking: Booking) -> Role:
    """
    Decide which policy applies to ``identity`` for this booking.

    Admins act as admin everywhere. A pilot acts as pilot only on bookings
    assigned to them. Anyone acts as client on a booking they own.

    Raises:
        AuthorizationError: If the caller has no relation to the booking
    """
    if identity.role == Role.ADMIN:
        return Role.ADMIN
    if identity.role == Role.PILOT and booking.pilot_id == identity.user_id:
        return Role.PILOT
    if booking.client_id == identity.user_id:
        return Role.CLIENT

    raise AuthorizationError(
        detail="You are not allowed to act on this booking",
        diagnostics={"booking_id": str(booking.id), "caller_role": identity.role.value},
    )


def transition_role(identity: Identity, booking: Booking, role: Role, requested: BookingStatus) -> Role:
    """
    Role whose guards apply to a status change.

    A pilot who owns a pending booking cancels it under the client policy,
    even when the booking is also assigned to them.
    """
    if (
        role == Role.PILOT
        and booking.client_id == identity.user_id
        and BookingStatus(booking.status) == BookingStatus.PENDING
        and BookingStatus(requested) == BookingStatus.CANCELLED
    ):
        return Role.CLIENT
    return role


def can_read(identity: Identity, booking: Booking) -> bool:
    try:
        resolve_acting_role(identity, booking)
    except AuthorizationError:
        return False
    return True


def authorize_update(
    identity: Identity,
    booking: Booking,
    field_names: Iterable[str],
) -> tuple[Role, frozenset[MutableField]]:
    """
    Check a proposed update against the acting role's allow-list.

    The whole request is rejected if any key is outside the allow-list,
    including keys that are not booking fields at all.

    Returns:
        The acting role and the requested fields as ``MutableField`` members

    Raises:
        AuthorizationError: If the caller has no relation to the booking
        InvalidFieldError: If any requested key is not writable by the role
    """
    role = resolve_acting_role(identity, booking)
    allowed = ALLOWED_FIELDS[role]

    requested = set()
    rejected = []
    for name in field_names:
        try:
            field = MutableField(name)
        except ValueError:
            rejected.append(name)
            continue
        if field not in allowed:
            rejected.append(name)
        else:
            requested.add(field)

    if rejected:
        logger.warning(
            "Booking update rejected - fields outside allow-list",
            extra={
                "booking_id": str(booking.id),
                "actor_id": identity.user_id,
                "acting_role": role.value,
                "rejected_fields": sorted(rejected),
            }
        )
        raise InvalidFieldError(fields=rejected, role=role.value)

    return role, frozenset(requested)
