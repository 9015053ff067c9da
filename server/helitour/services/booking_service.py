"""Booking service for business logic operations."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.dependencies import Identity, Role
from ..core.exceptions import AuthorizationError, InvalidFieldError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..models.booking import (
    Booking,
    BookingStatus,
    BookingStatusChange,
    BookingType,
    PaymentStatus,
    RefundStatus,
)
from ..schemas.booking import (
    AddonSelection,
    CreateBookingRequest,
    FinalizePassengerDetailsRequest,
    ListBookingsRequest,
    UpdateBookingRequest,
)
from . import pricing
from .authorization import MutableField, authorize_update, can_read, resolve_acting_role, transition_role
from .booking_store import BookingMutation, BookingStore
from .catalog_service import CatalogService
from .state_machine import is_terminal, plan_transition

logger = logging.getLogger(__name__)

EDITABLE_STATES = frozenset({BookingStatus.PENDING, BookingStatus.APPROVED})

# Assignment-bound states cannot lose their pilot
PILOT_REQUIRED_STATES = frozenset({BookingStatus.ASSIGNED, BookingStatus.ACCEPTED})

NON_NULLABLE_FIELDS = frozenset({
    MutableField.STATUS,
    MutableField.PASSENGER_DETAILS,
    MutableField.SELECTED_ADDONS,
    MutableField.ADDON_TOTAL_PRICE,
    MutableField.TOTAL_PRICE,
    MutableField.PAYMENT_STATUS,
    MutableField.SCHEDULED_DATE,
    MutableField.SCHEDULED_TIME,
    MutableField.IS_ROUND_TRIP,
    MutableField.PASSENGER_COUNT,
    MutableField.REVISION_REQUESTED,
})

SCHEDULE_FIELDS = frozenset({
    MutableField.SCHEDULED_DATE,
    MutableField.SCHEDULED_TIME,
    MutableField.RETURN_DATE,
    MutableField.RETURN_TIME,
    MutableField.IS_ROUND_TRIP,
})

# Copied as-is once the role may write them
PLAIN_FIELDS = frozenset({
    MutableField.NOTES,
    MutableField.ADMIN_NOTES,
    MutableField.HELICOPTER_ID,
    MutableField.FROM_LOCATION,
    MutableField.TO_LOCATION,
    MutableField.REVISION_REQUESTED,
    MutableField.REVISION_NOTES,
    MutableField.REVISION_DATA,
})


@dataclass
class BookingPage:
    items: list[Booking]
    next_cursor: Optional[str]


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def parse_uuid(value: str, resource_type: str = "booking") -> UUID:
    """Parse an ID from a request body; malformed IDs cannot exist, so they are not found."""
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(resource_type=resource_type, resource_id=str(value)) from None


def validate_schedule(
    scheduled_date: date,
    scheduled_time: str,
    is_round_trip: bool,
    return_date: Optional[date],
    return_time: Optional[str],
    reject_past: bool = True,
) -> None:
    """
    Check the schedule of a booking.

    Raises:
        ValidationError: If the date is in the past or the return leg is inconsistent
    """
    errors = {}
    if reject_past and scheduled_date < today_utc():
        errors["scheduled_date"] = "must not be in the past"

    if is_round_trip:
        if return_date is None:
            errors["return_date"] = "required for a round trip"
        elif return_date < scheduled_date:
            errors["return_date"] = "must not be before the scheduled date"
        if not return_time:
            errors["return_time"] = "required for a round trip"

    if errors:
        raise ValidationError(detail="Invalid booking schedule", errors=errors)


def validate_passenger_details(details: list[dict[str, Any]], passenger_count: int) -> None:
    if details and len(details) != passenger_count:
        raise ValidationError(
            detail=f"Expected {passenger_count} passenger records, got {len(details)}",
            errors={"passenger_details": "length must equal passenger_count"},
        )


def _to_requests(selection: Iterable[Any]) -> list[pricing.AddonRequest]:
    requests = []
    for line in selection:
        if isinstance(line, AddonSelection):
            requests.append(pricing.AddonRequest(addon_id=line.addon_id, quantity=line.quantity))
        else:
            requests.append(pricing.AddonRequest(addon_id=str(line["addon_id"]), quantity=int(line["quantity"])))
    return requests


class BookingService:
    """Service for booking lifecycle operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = BookingStore(db)
        self.catalog = CatalogService(db)

    async def create_booking(self, request: CreateBookingRequest, identity: Identity) -> Booking:
        """
        Create a pending booking owned by the caller.

        The base price is resolved here: a route quote for transport between
        known codes, the package price for experiences, otherwise 0 until an
        admin prices the booking. A submitted ``total_price`` is ignored.

        Raises:
            ValidationError: On an inconsistent reference group or schedule
            NotFoundError: If the experience does not exist or is retired
        """
        self._validate_reference(request)
        validate_schedule(
            request.scheduled_date,
            request.scheduled_time,
            request.is_round_trip,
            request.return_date,
            request.return_time,
        )

        if request.total_price is not None:
            logger.warning(
                "Client-supplied total ignored on booking creation",
                extra={"client_id": identity.user_id, "submitted_total": request.total_price}
            )

        experience_id = None
        if request.booking_type == BookingType.EXPERIENCE:
            experience_id = parse_uuid(request.experience_id, "experience")
            experience = await self.catalog.get_experience_by_id(experience_id)
            if not experience or not experience.is_active:
                raise NotFoundError(resource_type="experience", resource_id=request.experience_id)
            base_price = experience.base_price
        elif pricing.is_known_route(request.from_location, request.to_location):
            quote = pricing.quote_transport(
                request.from_location,
                request.to_location,
                passengers=request.passenger_count,
                round_trip=request.is_round_trip,
            )
            base_price = quote.total_price_minor
        else:
            base_price = 0

        booking = Booking(
            client_id=identity.user_id,
            booking_type=request.booking_type.value,
            from_location=request.from_location,
            to_location=request.to_location,
            experience_id=experience_id,
            destination_id=request.destination_id,
            scheduled_date=request.scheduled_date,
            scheduled_time=request.scheduled_time,
            return_date=request.return_date if request.is_round_trip else None,
            return_time=request.return_time if request.is_round_trip else None,
            is_round_trip=request.is_round_trip,
            passenger_count=request.passenger_count,
            passenger_details=[],
            base_price=base_price,
            selected_addons=[],
            addon_total_price=0,
            total_price=base_price,
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            refund_status=RefundStatus.NONE.value,
            refund_amount=0,
            notes=request.notes,
            version=1,
        )

        booking = await self.store.create(booking)
        metrics_collector.record_booking_created(request.booking_type.value)

        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking.id),
                "client_id": identity.user_id,
                "booking_type": request.booking_type.value,
                "base_price": base_price,
                "scheduled_date": request.scheduled_date.isoformat(),
            }
        )

        return booking

    async def update_booking(self, request: UpdateBookingRequest, identity: Identity) -> tuple[Booking, list[str]]:
        """
        Apply a partial update under the caller's field allow-list.

        The request is rejected as a whole if any field is not writable by
        the acting role. Status changes go through the state machine and any
        price-affecting change is recomputed from the stored base price.

        Returns:
            The updated booking and the names of fields whose value changed

        Raises:
            AuthorizationError: If the caller has no relation to the booking
            InvalidFieldError: If any field is outside the allow-list
            InvalidTransitionError: If the status change is not allowed
            ValidationError: On inconsistent values
            BookingConflictError: If concurrent writers kept winning
        """
        booking_id = parse_uuid(request.booking_id)
        changes = request.changes.model_dump(exclude_unset=True)

        catalog_prices = {}
        if changes.get("selected_addons"):
            catalog_prices = await self.catalog.price_lookup(
                line["addon_id"] for line in changes["selected_addons"]
            )

        def plan(booking: Booking) -> Optional[BookingMutation]:
            return self._plan_update(booking, changes, identity, catalog_prices)

        booking, mutation = await self.store.apply(booking_id, plan, identity, "update")
        changed_fields = mutation.changed_fields if mutation else []

        logger.info(
            "Booking updated",
            extra={
                "booking_id": str(booking.id),
                "actor_id": identity.user_id,
                "actor_role": identity.role.value,
                "changed_fields": changed_fields,
            }
        )

        return booking, changed_fields

    async def finalize_passenger_details(
        self,
        request: FinalizePassengerDetailsRequest,
        identity: Identity,
    ) -> Booking:
        """
        Store passenger records and the add-on selection, then reprice.

        The total is rebuilt from the stored base price and the frozen
        add-ons; price fields in the request body are discarded.

        Raises:
            AuthorizationError: If the caller does not own the booking
            ValidationError: On a wrong passenger count, a closed booking or bad add-ons
            NotFoundError: If a newly selected add-on is unknown or retired
        """
        booking_id = parse_uuid(request.booking_id)

        discarded = {
            name: getattr(request, name)
            for name in ("total_price", "addon_total_price")
            if getattr(request, name) is not None
        }
        if discarded:
            logger.warning(
                "Client-supplied prices discarded on passenger details",
                extra={"booking_id": request.booking_id, "client_id": identity.user_id, "discarded": discarded}
            )

        details = [passenger.model_dump() for passenger in request.passenger_details]
        requested = _to_requests(request.selected_addons)
        catalog_prices = await self.catalog.price_lookup(line.addon_id for line in requested)

        def plan(booking: Booking) -> Optional[BookingMutation]:
            if booking.client_id != identity.user_id:
                raise AuthorizationError(
                    detail="Only the booking owner can complete passenger details",
                    diagnostics={"booking_id": str(booking.id), "caller_role": identity.role.value},
                )
            if BookingStatus(booking.status) not in EDITABLE_STATES:
                raise ValidationError(
                    detail="Passenger details can only be completed while the booking is pending or approved",
                    errors={"status": booking.status},
                )
            validate_passenger_details(details, booking.passenger_count)

            frozen = pricing.freeze_selection(
                requested,
                catalog_prices,
                pricing.load_selection(booking.selected_addons),
            )
            addon_total = pricing.addon_total(frozen)
            patch = {
                "passenger_details": details,
                "selected_addons": pricing.dump_selection(frozen),
                "addon_total_price": addon_total,
                "total_price": pricing.compute_total(booking.base_price, frozen),
            }
            self._reconcile_refund(booking, patch)
            return BookingMutation(patch=patch, changed_fields=self._diff(booking, patch))

        booking, _ = await self.store.apply(booking_id, plan, identity, "finalize_passenger_details")

        logger.info(
            "Passenger details finalized",
            extra={
                "booking_id": str(booking.id),
                "passenger_count": booking.passenger_count,
                "addon_total_price": booking.addon_total_price,
                "total_price": booking.total_price,
            }
        )

        return booking

    async def cancel_booking(self, booking_id: str, identity: Identity) -> Booking:
        """
        Soft-cancel a booking through the state machine.

        Clients may cancel only while pending; admins may cancel any open
        booking. Cancelling an already cancelled booking is a no-op.

        Raises:
            AuthorizationError: If the caller has no relation to the booking
            InvalidTransitionError: If the role may not cancel from the current state
        """
        booking_uuid = parse_uuid(booking_id)

        def plan(booking: Booking) -> Optional[BookingMutation]:
            role = transition_role(identity, booking, resolve_acting_role(identity, booking), BookingStatus.CANCELLED)
            transition = plan_transition(booking.status, BookingStatus.CANCELLED, role)
            if transition is None:
                return None
            return BookingMutation(patch={}, transition=transition, changed_fields=["status"])

        booking, mutation = await self.store.apply(booking_uuid, plan, identity, "cancel")

        logger.info(
            "Booking cancelled" if mutation else "Booking already cancelled - nothing to do",
            extra={"booking_id": booking_id, "actor_id": identity.user_id, "actor_role": identity.role.value}
        )

        return booking

    async def delete_booking(self, booking_id: str, identity: Identity) -> None:
        """
        Permanently remove a booking in any state. Ledger rows survive with
        their booking reference cleared.

        Raises:
            AuthorizationError: If the caller is not an admin
            NotFoundError: If the booking does not exist
        """
        if not identity.is_admin:
            metrics_collector.record_authorization_denied("delete_requires_admin")
            raise AuthorizationError(detail="Admin access required", required_roles=[Role.ADMIN.value])

        booking_uuid = parse_uuid(booking_id)
        booking = await self.store.find_by_id_or_raise(booking_uuid)
        status = booking.status

        if not await self.store.delete(booking_uuid):
            raise NotFoundError(resource_type="booking", resource_id=booking_id)

        metrics_collector.record_booking_deleted()
        logger.info(
            "Booking deleted",
            extra={"booking_id": booking_id, "status_at_deletion": status, "actor_id": identity.user_id}
        )

    async def get_booking(self, booking_id: str, identity: Identity) -> Booking:
        """
        Get a booking the caller may read.

        Raises:
            NotFoundError: If booking not found
            AuthorizationError: If the caller has no relation to the booking
        """
        booking = await self.store.find_by_id_or_raise(parse_uuid(booking_id))
        self._ensure_readable(booking, identity)
        return booking

    async def list_bookings(self, request: ListBookingsRequest, identity: Identity) -> BookingPage:
        """
        List the bookings visible to the caller, newest IDs last.

        Admins see everything, pilots see bookings they own or fly, clients
        see their own.
        """
        limit = request.limit or settings.default_page_size
        stmt = select(Booking)

        if identity.role == Role.PILOT:
            stmt = stmt.where(or_(Booking.client_id == identity.user_id, Booking.pilot_id == identity.user_id))
        elif identity.role == Role.CLIENT:
            stmt = stmt.where(Booking.client_id == identity.user_id)

        if request.status:
            stmt = stmt.where(Booking.status == request.status.value)
        if request.booking_type:
            stmt = stmt.where(Booking.booking_type == request.booking_type.value)

        if request.cursor:
            try:
                cursor_id = UUID(request.cursor)
            except ValueError:
                raise ValidationError(detail="Invalid pagination cursor", errors={"cursor": request.cursor}) from None
            stmt = stmt.where(Booking.id > cursor_id)

        stmt = stmt.order_by(Booking.id).limit(limit + 1)

        result = await self.db.execute(stmt)
        bookings = list(result.scalars())

        has_next_page = len(bookings) > limit
        if has_next_page:
            bookings = bookings[:-1]

        next_cursor = str(bookings[-1].id) if has_next_page and bookings else None

        logger.info(
            "Booking list completed",
            extra={
                "actor_id": identity.user_id,
                "actor_role": identity.role.value,
                "total_found": len(bookings),
                "has_next_page": has_next_page,
            }
        )

        return BookingPage(items=bookings, next_cursor=next_cursor)

    async def get_history(self, booking_id: str, identity: Identity) -> list[BookingStatusChange]:
        """Status-change audit rows of a readable booking, oldest first."""
        booking = await self.get_booking(booking_id, identity)
        return await self.store.history(booking.id)

    def _ensure_readable(self, booking: Booking, identity: Identity) -> None:
        if not can_read(identity, booking):
            metrics_collector.record_authorization_denied("read")
            raise AuthorizationError(
                detail="You are not allowed to view this booking",
                diagnostics={"booking_id": str(booking.id), "caller_role": identity.role.value},
            )

    def _validate_reference(self, request: CreateBookingRequest) -> None:
        has_route = bool(request.from_location or request.to_location)
        groups = {
            "route": has_route,
            "experience_id": bool(request.experience_id),
            "destination_id": bool(request.destination_id),
        }
        present = [name for name, given in groups.items() if given]

        if request.booking_type == BookingType.EXPERIENCE and present != ["experience_id"]:
            raise ValidationError(
                detail="Experience bookings require experience_id and nothing else",
                errors={"experience_id": "required"},
            )
        if request.booking_type == BookingType.TRANSPORT:
            if len(present) != 1 or present == ["experience_id"]:
                raise ValidationError(
                    detail="Transport bookings require either a route or a destination_id",
                    errors={"reference": "exactly one of route or destination_id"},
                )
            if has_route and not (request.from_location and request.to_location):
                raise ValidationError(
                    detail="A route needs both from_location and to_location",
                    errors={"route": "incomplete"},
                )

    def _plan_update(
        self,
        booking: Booking,
        changes: dict[str, Any],
        identity: Identity,
        catalog_prices: dict[str, pricing.CatalogPrice],
    ) -> Optional[BookingMutation]:
        try:
            role, fields = authorize_update(identity, booking, changes.keys())
        except AuthorizationError:
            metrics_collector.record_authorization_denied("not_related")
            raise
        except InvalidFieldError:
            metrics_collector.record_authorization_denied("invalid_field")
            raise

        nulls = sorted(field.value for field in fields & NON_NULLABLE_FIELDS if changes[field.value] is None)
        if nulls:
            raise ValidationError(
                detail="These fields cannot be cleared",
                errors={name: "must not be null" for name in nulls},
            )

        patch: dict[str, Any] = {}
        current_status = BookingStatus(booking.status)

        for field in fields & PLAIN_FIELDS:
            patch[field.value] = changes[field.value]

        if MutableField.PAYMENT_STATUS in fields:
            patch["payment_status"] = PaymentStatus(changes["payment_status"]).value

        # Assignment
        pilot_id = booking.pilot_id
        if MutableField.PILOT_ID in fields:
            pilot_id = changes["pilot_id"]
            if pilot_id != booking.pilot_id and is_terminal(current_status):
                raise ValidationError(
                    detail="The pilot of a closed booking cannot change",
                    errors={"pilot_id": f"booking is {current_status.value}"},
                )
            patch["pilot_id"] = pilot_id

        transition = None
        resulting_status = current_status
        if MutableField.STATUS in fields:
            requested_status = BookingStatus(changes["status"])
            transition = plan_transition(
                current_status,
                requested_status,
                transition_role(identity, booking, role, requested_status),
                pilot_assigned=bool(pilot_id),
            )
            if transition:
                resulting_status = transition.to_status

        if resulting_status in PILOT_REQUIRED_STATES and not pilot_id:
            raise ValidationError(
                detail="An assigned booking must keep a pilot",
                errors={"pilot_id": "required while assigned or accepted"},
            )

        # Party
        passenger_count = booking.passenger_count
        if MutableField.PASSENGER_COUNT in fields:
            passenger_count = changes["passenger_count"]
            patch["passenger_count"] = passenger_count

        passenger_details = booking.passenger_details or []
        if MutableField.PASSENGER_DETAILS in fields:
            self._ensure_editable(booking)
            passenger_details = changes["passenger_details"]
            patch["passenger_details"] = passenger_details

        if {MutableField.PASSENGER_COUNT, MutableField.PASSENGER_DETAILS} & fields:
            validate_passenger_details(passenger_details, passenger_count)

        # Schedule
        if SCHEDULE_FIELDS & fields:
            merged = {
                name.value: changes[name.value] if name in fields else getattr(booking, name.value)
                for name in SCHEDULE_FIELDS
            }
            validate_schedule(
                merged["scheduled_date"],
                merged["scheduled_time"],
                merged["is_round_trip"],
                merged["return_date"],
                merged["return_time"],
                reject_past=MutableField.SCHEDULED_DATE in fields,
            )
            for name in SCHEDULE_FIELDS & fields:
                patch[name.value] = changes[name.value]

        # Pricing
        frozen = pricing.load_selection(booking.selected_addons)
        repriced = False
        if MutableField.SELECTED_ADDONS in fields:
            self._ensure_editable(booking)
            frozen = pricing.freeze_selection(_to_requests(changes["selected_addons"]), catalog_prices, frozen)
            patch["selected_addons"] = pricing.dump_selection(frozen)
            repriced = True

        if MutableField.ADDON_TOTAL_PRICE in fields:
            if changes["addon_total_price"] != pricing.addon_total(frozen):
                logger.warning(
                    "Client-supplied add-on total discarded",
                    extra={"booking_id": str(booking.id), "submitted": changes["addon_total_price"]}
                )
            repriced = True

        base_price = booking.base_price
        if MutableField.TOTAL_PRICE in fields:
            base_price = pricing.rebase_for_total(changes["total_price"], frozen)
            patch["base_price"] = base_price
            repriced = True

        if repriced:
            patch["addon_total_price"] = pricing.addon_total(frozen)
            patch["total_price"] = pricing.compute_total(base_price, frozen)
            self._reconcile_refund(booking, patch)

        changed_fields = self._diff(booking, patch)
        if transition:
            changed_fields = sorted(set(changed_fields) | {"status"})

        if not changed_fields:
            return None

        return BookingMutation(patch=patch, transition=transition, changed_fields=changed_fields)

    @staticmethod
    def _ensure_editable(booking: Booking) -> None:
        if BookingStatus(booking.status) not in EDITABLE_STATES:
            raise ValidationError(
                detail="Passengers and add-ons can only change while the booking is pending or approved",
                errors={"status": booking.status},
            )

    @staticmethod
    def _reconcile_refund(booking: Booking, patch: dict[str, Any]) -> None:
        """Keep the refund and payment state consistent with a repriced total."""
        total_price = patch["total_price"]
        if total_price < booking.refund_amount:
            raise ValidationError(
                detail="Total price cannot drop below the amount already refunded",
                errors={"total_price": f"must be at least {booking.refund_amount}"},
            )
        if not booking.refund_amount:
            return

        fully_refunded = booking.refund_amount >= total_price
        patch["refund_status"] = (RefundStatus.REFUNDED if fully_refunded else RefundStatus.PARTIAL_REFUND).value
        patch["payment_status"] = (PaymentStatus.REFUNDED if fully_refunded else PaymentStatus.PAID).value

    @staticmethod
    def _diff(booking: Booking, patch: dict[str, Any]) -> list[str]:
        return sorted(name for name, value in patch.items() if getattr(booking, name) != value)
