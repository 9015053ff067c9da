"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus, BookingType, PaymentStatus, RefundStatus, TransitionKind
from .common import Money, PaginatedResponse

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class PassengerDetail(BaseModel):
    """Per-passenger record collected before the flight."""

    name: str = Field(..., min_length=1, max_length=255, description="Full name")
    age: int | None = Field(None, ge=0, le=120, description="Age in years")
    passport: str | None = Field(None, max_length=64, description="Passport or ID number")
    emergency_contact: str | None = Field(None, max_length=255, description="Emergency contact")
    dietary_restrictions: str | None = Field(None, max_length=500, description="Dietary restrictions")
    special_requests: str | None = Field(None, max_length=1000, description="Special requests")


class AddonSelection(BaseModel):
    """Requested add-on line. Prices are never taken from the client."""

    addon_id: str = Field(..., description="Catalog add-on ID")
    quantity: int = Field(..., description="Quantity; 0 removes the add-on")


class SelectedAddon(BaseModel):
    """Add-on line frozen on a booking."""

    addon_id: str = Field(..., description="Catalog add-on ID")
    quantity: int = Field(..., ge=1, description="Quantity")
    unit_price: Money = Field(..., description="Unit price captured at selection time")


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    booking_type: BookingType = Field(..., description="transport or experience")
    from_location: str | None = Field(None, max_length=64, description="Origin code (transport)")
    to_location: str | None = Field(None, max_length=64, description="Destination code (transport)")
    experience_id: str | None = Field(None, description="Experience package ID (experience)")
    destination_id: str | None = Field(None, max_length=64, description="Catalog destination ID (transport)")
    scheduled_date: date = Field(..., description="Flight date")
    scheduled_time: str = Field(..., pattern=TIME_PATTERN, description="Flight time (HH:MM)")
    return_date: date | None = Field(None, description="Return date for round trips")
    return_time: str | None = Field(None, pattern=TIME_PATTERN, description="Return time for round trips (HH:MM)")
    is_round_trip: bool = Field(False, description="Whether a return flight is booked")
    passenger_count: int = Field(..., ge=1, le=20, description="Number of passengers")
    notes: str | None = Field(None, max_length=2000, description="Client notes")
    total_price: int | None = Field(None, description="Ignored; the server prices every booking")


class BookingChanges(BaseModel):
    """
    Partial booking update.

    Field names match ``MutableField`` and the booking columns. Unknown keys
    are kept so the authorization policy can reject them by name.
    """

    notes: str | None = Field(None, max_length=2000)
    status: BookingStatus | None = None
    passenger_details: list[PassengerDetail] | None = None
    selected_addons: list[AddonSelection] | None = None
    addon_total_price: int | None = Field(None, description="Accepted but always recomputed")
    admin_notes: str | None = Field(None, max_length=2000)
    pilot_id: str | None = Field(None, max_length=64)
    total_price: int | None = Field(None, ge=0, description="Admin only; re-bases the booking")
    payment_status: PaymentStatus | None = None
    helicopter_id: str | None = Field(None, max_length=64)
    from_location: str | None = Field(None, max_length=64)
    to_location: str | None = Field(None, max_length=64)
    scheduled_date: date | None = None
    scheduled_time: str | None = Field(None, pattern=TIME_PATTERN)
    return_date: date | None = None
    return_time: str | None = Field(None, pattern=TIME_PATTERN)
    is_round_trip: bool | None = None
    passenger_count: int | None = Field(None, ge=1, le=20)
    revision_requested: bool | None = None
    revision_notes: str | None = Field(None, max_length=2000)
    revision_data: dict[str, Any] | None = None

    class Config:
        extra = "allow"


class UpdateBookingRequest(BaseModel):
    """Request schema for a partial booking update."""

    booking_id: str = Field(..., description="Booking to update")
    changes: BookingChanges = Field(..., description="Fields to change")


class FinalizePassengerDetailsRequest(BaseModel):
    """Request schema for completing passenger details and add-ons."""

    booking_id: str = Field(..., description="Booking to finalize")
    passenger_details: list[PassengerDetail] = Field(..., min_length=1, description="One record per passenger")
    selected_addons: list[AddonSelection] = Field(default_factory=list, description="Add-on selection")
    total_price: int | None = Field(None, description="Ignored; the total is recomputed")
    addon_total_price: int | None = Field(None, description="Ignored; the add-on total is recomputed")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: str = Field(..., description="Booking to cancel")


class DeleteBookingRequest(BaseModel):
    """Request schema for permanently deleting a booking."""

    booking_id: str = Field(..., description="Booking to delete")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: str = Field(..., description="Booking to retrieve")


class ListBookingsRequest(BaseModel):
    """Request schema for listing visible bookings."""

    status: BookingStatus | None = Field(None, description="Filter by status")
    booking_type: BookingType | None = Field(None, description="Filter by booking type")
    cursor: str | None = Field(None, description="Pagination cursor")
    limit: int | None = Field(None, ge=1, le=100, description="Results per page")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    client_id: str = Field(..., description="Owning user")
    booking_type: BookingType = Field(..., description="Booking type")
    from_location: str | None = None
    to_location: str | None = None
    experience_id: str | None = None
    destination_id: str | None = None
    scheduled_date: date = Field(..., description="Flight date")
    scheduled_time: str = Field(..., description="Flight time (HH:MM)")
    return_date: date | None = None
    return_time: str | None = None
    is_round_trip: bool = False
    passenger_count: int = Field(..., ge=1)
    passenger_details: list[PassengerDetail] = Field(default_factory=list)
    selected_addons: list[SelectedAddon] = Field(default_factory=list)
    base_price: Money = Field(..., description="Server-held base price")
    addon_total_price: Money = Field(..., description="Sum of the frozen add-on lines")
    total_price: Money = Field(..., description="base_price + addon_total_price")
    status: BookingStatus = Field(..., description="Lifecycle state")
    payment_status: PaymentStatus = Field(..., description="Payment state")
    refund_status: RefundStatus = Field(..., description="Refund state")
    refund_amount: Money = Field(..., description="Cumulative refunded amount")
    refund_reason: str | None = None
    refund_date: datetime | None = None
    pilot_id: str | None = None
    helicopter_id: str | None = None
    revision_requested: bool = False
    revision_notes: str | None = None
    revision_data: dict[str, Any] | None = None
    notes: str | None = None
    admin_notes: str | None = None
    version: int = Field(..., description="Concurrency token")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class UpdateBookingResponse(BaseModel):
    """Response schema for a booking update."""

    changed_fields: list[str] = Field(..., description="Fields whose stored value changed")
    booking: Booking


class ListBookingsResponse(PaginatedResponse):
    """Response schema for booking listing."""

    items: list[Booking] = Field(..., description="Bookings visible to the caller")


class BookingStatusChange(BaseModel):
    """Audit row for one status change."""

    from_status: BookingStatus
    to_status: BookingStatus
    kind: TransitionKind
    actor_id: str
    actor_role: str
    created_at: datetime | None = None


class BookingHistoryResponse(BaseModel):
    """Response schema for a booking's status history."""

    booking_id: str
    changes: list[BookingStatusChange]


class DeleteBookingResponse(BaseModel):
    """Response schema for a hard delete."""

    booking_id: str
    deleted: bool = True
