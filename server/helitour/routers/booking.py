"""Booking router for booking lifecycle operations."""

import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import Identity, IdempotencyKey, RequiredIdentity
from ..core.exceptions import ProblemDetailsException
from ..schemas.booking import (
    Booking,
    BookingHistoryResponse,
    BookingStatusChange,
    CancelBookingRequest,
    CreateBookingRequest,
    DeleteBookingRequest,
    DeleteBookingResponse,
    FinalizePassengerDetailsRequest,
    GetBookingRequest,
    ListBookingsRequest,
    ListBookingsResponse,
    PassengerDetail,
    SelectedAddon,
    UpdateBookingRequest,
    UpdateBookingResponse,
)
from ..schemas.common import Money
from ..services.booking_service import BookingService
from ..services.idempotency_service import IdempotencyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


def convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        client_id=booking_model.client_id,
        booking_type=booking_model.booking_type,
        from_location=booking_model.from_location,
        to_location=booking_model.to_location,
        experience_id=str(booking_model.experience_id) if booking_model.experience_id else None,
        destination_id=booking_model.destination_id,
        scheduled_date=booking_model.scheduled_date,
        scheduled_time=booking_model.scheduled_time,
        return_date=booking_model.return_date,
        return_time=booking_model.return_time,
        is_round_trip=booking_model.is_round_trip,
        passenger_count=booking_model.passenger_count,
        passenger_details=[PassengerDetail(**record) for record in booking_model.passenger_details or []],
        selected_addons=[
            SelectedAddon(
                addon_id=line["addon_id"],
                quantity=line["quantity"],
                unit_price=Money.of(line["unit_price"]),
            )
            for line in booking_model.selected_addons or []
        ],
        base_price=Money.of(booking_model.base_price),
        addon_total_price=Money.of(booking_model.addon_total_price),
        total_price=Money.of(booking_model.total_price),
        status=booking_model.status,
        payment_status=booking_model.payment_status,
        refund_status=booking_model.refund_status,
        refund_amount=Money.of(booking_model.refund_amount),
        refund_reason=booking_model.refund_reason,
        refund_date=booking_model.refund_date,
        pilot_id=booking_model.pilot_id,
        helicopter_id=booking_model.helicopter_id,
        revision_requested=booking_model.revision_requested,
        revision_notes=booking_model.revision_notes,
        revision_data=booking_model.revision_data,
        notes=booking_model.notes,
        admin_notes=booking_model.admin_notes,
        version=booking_model.version,
        created_at=booking_model.created_at,
        updated_at=booking_model.updated_at,
    )


async def handle_idempotent_operation(
    operation: str,
    idempotency_key: Optional[str],
    identity: Identity,
    request_body: dict[str, Any],
    operation_func: Callable[[], Awaitable[tuple[int, dict[str, Any]]]],
    db: AsyncSession
) -> JSONResponse:
    """
    Run ``operation_func`` once per idempotency key and replay its result.

    Without a key the operation simply runs. Business-rule failures are
    replayed like successes; retryable failures are not stored.
    """
    if not idempotency_key:
        status_code, response_body = await operation_func()
        return JSONResponse(status_code=status_code, content=response_body)

    idempotency_service = IdempotencyService(db)

    cached_response = await idempotency_service.check_idempotency(
        idempotency_key=idempotency_key,
        operation=operation,
        user_id=identity.user_id,
        request_body=request_body
    )

    if cached_response:
        status_code, response_body = cached_response
        return JSONResponse(
            status_code=status_code,
            content=response_body,
            headers={"Idempotent-Replayed": "true"}
        )

    try:
        status_code, response_body = await operation_func()

    except ProblemDetailsException as e:
        if not e.problem_details.get("retryable"):
            await db.rollback()
            await idempotency_service.store_response(
                idempotency_key=idempotency_key,
                operation=operation,
                user_id=identity.user_id,
                request_body=request_body,
                status_code=e.status_code,
                response_body=e.problem_details
            )
        raise

    await idempotency_service.store_response(
        idempotency_key=idempotency_key,
        operation=operation,
        user_id=identity.user_id,
        request_body=request_body,
        status_code=status_code,
        response_body=response_body
    )

    return JSONResponse(status_code=status_code, content=response_body)


def _unexpected(action: str, error: Exception, **context) -> HTTPException:
    logger.error(
        f"Unexpected error in {action}",
        extra={**context, "error": str(error)},
        exc_info=True
    )
    return HTTPException(status_code=500, detail="Internal server error")


@router.post("/create", response_model=Booking, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity,
    idempotency_key: Optional[str] = IdempotencyKey
) -> JSONResponse:
    """
    Create a pending booking owned by the caller.

    The price is computed by the server. Supplying an Idempotency-Key
    header makes retries return the original booking.
    """
    booking_service = BookingService(db)

    async def operation():
        booking = await booking_service.create_booking(request, identity)
        return 201, convert_booking_to_schema(booking).model_dump(mode="json")

    try:
        return await handle_idempotent_operation(
            operation="booking/create",
            idempotency_key=idempotency_key,
            identity=identity,
            request_body=request.model_dump(mode="json"),
            operation_func=operation,
            db=db
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking creation", e, client_id=identity.user_id) from e


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """Get a booking the caller owns, flies, or administers."""
    booking_service = BookingService(db)

    try:
        booking = await booking_service.get_booking(request.booking_id, identity)
        return JSONResponse(
            status_code=200,
            content=convert_booking_to_schema(booking).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking retrieval", e, booking_id=request.booking_id) from e


@router.post("/list", response_model=ListBookingsResponse)
async def list_bookings(
    request: ListBookingsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """
    List bookings visible to the caller.

    Supports filtering by status and booking type.
    Uses cursor-based pagination.
    """
    booking_service = BookingService(db)

    try:
        page = await booking_service.list_bookings(request, identity)
        response_data = ListBookingsResponse(
            items=[convert_booking_to_schema(booking) for booking in page.items],
            next_cursor=page.next_cursor
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking listing", e, actor_id=identity.user_id) from e


@router.post("/update", response_model=UpdateBookingResponse)
async def update_booking(
    request: UpdateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """
    Partially update a booking.

    The whole request is rejected if it names any field the caller's role
    may not write. Returns the fields that actually changed.
    """
    booking_service = BookingService(db)

    try:
        booking, changed_fields = await booking_service.update_booking(request, identity)
        response_data = UpdateBookingResponse(
            changed_fields=changed_fields,
            booking=convert_booking_to_schema(booking)
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking update", e, booking_id=request.booking_id) from e


@router.post("/passenger-details", response_model=Booking)
async def finalize_passenger_details(
    request: FinalizePassengerDetailsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """
    Complete passenger records and add-ons for the caller's booking.

    Any price sent in the body is ignored; the total is recomputed.
    """
    booking_service = BookingService(db)

    try:
        booking = await booking_service.finalize_passenger_details(request, identity)
        return JSONResponse(
            status_code=200,
            content=convert_booking_to_schema(booking).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("passenger details", e, booking_id=request.booking_id) from e


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    request: CancelBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """
    Cancel a booking without deleting it.

    Clients may cancel only pending bookings; admins any open booking.
    """
    booking_service = BookingService(db)

    try:
        booking = await booking_service.cancel_booking(request.booking_id, identity)
        return JSONResponse(
            status_code=200,
            content=convert_booking_to_schema(booking).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking cancellation", e, booking_id=request.booking_id) from e


@router.post("/delete", response_model=DeleteBookingResponse)
async def delete_booking(
    request: DeleteBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """Permanently delete a booking (admin only)."""
    booking_service = BookingService(db)

    try:
        await booking_service.delete_booking(request.booking_id, identity)
        response_data = DeleteBookingResponse(booking_id=request.booking_id)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking deletion", e, booking_id=request.booking_id) from e


@router.post("/history", response_model=BookingHistoryResponse)
async def booking_history(
    request: GetBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    identity: Identity = RequiredIdentity
) -> JSONResponse:
    """Status changes of a booking, oldest first."""
    booking_service = BookingService(db)

    try:
        changes = await booking_service.get_history(request.booking_id, identity)
        response_data = BookingHistoryResponse(
            booking_id=request.booking_id,
            changes=[
                BookingStatusChange(
                    from_status=change.from_status,
                    to_status=change.to_status,
                    kind=change.kind,
                    actor_id=change.actor_id,
                    actor_role=change.actor_role,
                    created_at=change.created_at,
                )
                for change in changes
            ]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("booking history", e, booking_id=request.booking_id) from e
