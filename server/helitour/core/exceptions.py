"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://helitour.example.com/problems"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt

    ``diagnostics`` carries the state that explains the failure (current
    status, acting role, amounts). It is kept out of ``problem_details`` and
    only rendered for admin callers.
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        code: Optional[str] = None,
        retryable: bool = False,
        extensions: Optional[Dict[str, Any]] = None,
        diagnostics: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            code: Stable machine-readable error code
            retryable: Whether resubmitting the same request may succeed
            extensions: Additional problem-specific information
            diagnostics: Admin-only context about the failure
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.code = code
        self.extensions = extensions or {}
        self.diagnostics = diagnostics or {}

        # Create the problem details object
        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
            "retryable": retryable,
        }

        if self.code:
            self.problem_details["code"] = self.code

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        # Add extensions
        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class ValidationError(ProblemDetailsException):
    """Malformed schedule, passenger count, add-on quantity or amount."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/validation-error",
            instance=instance,
            code="VALIDATION_ERROR",
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Missing or invalid credential."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/authentication-required",
            instance=instance,
            code="UNAUTHENTICATED",
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(ProblemDetailsException):
    """Authenticated caller is not permitted to act on this booking."""

    def __init__(
        self,
        detail: str = "Insufficient permissions to access this resource",
        required_roles: Optional[list] = None,
        instance: Optional[str] = None,
        diagnostics: Optional[Dict[str, Any]] = None,
    ):
        extensions = {}
        if required_roles:
            extensions["required_roles"] = required_roles

        super().__init__(
            status_code=403,
            title="Access Forbidden",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/access-forbidden",
            instance=instance,
            code="FORBIDDEN",
            extensions=extensions,
            diagnostics=diagnostics,
        )


class InvalidFieldError(ProblemDetailsException):
    """Write attempted on a field outside the caller's allow-list."""

    def __init__(
        self,
        fields: Iterable[str],
        role: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        field_list = sorted(fields)
        super().__init__(
            status_code=403,
            title="Field Not Writable",
            detail=f"You may not change: {', '.join(field_list)}",
            type_uri=f"{PROBLEM_BASE_URI}/invalid-field",
            instance=instance,
            code="INVALID_FIELD",
            extensions={"fields": field_list},
            diagnostics={"acting_role": role} if role else None,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-not-found",
            instance=instance,
            code="NOT_FOUND",
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        title: str = "Resource Conflict",
        detail: str = "The request conflicts with the current state of the resource",
        code: str = "CONFLICT",
        retryable: bool = False,
        type_slug: str = "resource-conflict",
        instance: Optional[str] = None,
        diagnostics: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=409,
            title=title,
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/{type_slug}",
            instance=instance,
            code=code,
            retryable=retryable,
            diagnostics=diagnostics,
        )


class InvalidTransitionError(ConflictError):
    """A state machine guard rejected the requested status change."""

    def __init__(
        self,
        current_status: str,
        requested_status: str,
        role: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        detail = f"A booking that is {current_status} cannot be moved to {requested_status}"
        if reason:
            detail += f": {reason}"
        super().__init__(
            title="Invalid Status Transition",
            detail=detail,
            code="INVALID_TRANSITION",
            type_slug="invalid-transition",
            diagnostics={
                "current_status": current_status,
                "requested_status": requested_status,
                "acting_role": role,
            },
        )


class BookingConflictError(ConflictError):
    """Concurrent writers kept winning the conditional update."""

    def __init__(self, booking_id: str, attempts: int):
        super().__init__(
            title="Concurrent Modification",
            detail=f"Booking {booking_id} was modified concurrently, please retry",
            code="CONFLICT",
            retryable=True,
            type_slug="concurrent-modification",
            diagnostics={"booking_id": booking_id, "attempts": attempts},
        )


class NotPaidError(ConflictError):
    """Refund requested for a booking whose payment is not settled."""

    def __init__(self, booking_id: str, payment_status: str):
        super().__init__(
            title="Booking Not Paid",
            detail="Booking has not been paid yet",
            code="NOT_PAID",
            type_slug="not-paid",
            diagnostics={"booking_id": booking_id, "payment_status": payment_status},
        )


class AlreadyRefundedError(ConflictError):
    """Refund requested for a booking that is fully refunded."""

    def __init__(self, booking_id: str, refund_amount: int):
        super().__init__(
            title="Already Refunded",
            detail="Booking has already been refunded",
            code="ALREADY_REFUNDED",
            type_slug="already-refunded",
            diagnostics={"booking_id": booking_id, "refund_amount": refund_amount},
        )


class ExceedsBookingTotalError(ConflictError):
    """Refund would push the cumulative refund above the booking total."""

    def __init__(self, requested_amount: int, refunded_amount: int, total_price: int):
        super().__init__(
            title="Refund Exceeds Booking Total",
            detail="Refund amount cannot exceed booking price",
            code="EXCEEDS_BOOKING_TOTAL",
            type_slug="exceeds-booking-total",
            diagnostics={
                "requested_amount": requested_amount,
                "refunded_amount": refunded_amount,
                "total_price": total_price,
                "remaining_amount": total_price - refunded_amount,
            },
        )


class StoreUnavailableError(ProblemDetailsException):
    """The booking store failed (connectivity, timeout); the request may be resent unchanged."""

    def __init__(self, operation: str):
        super().__init__(
            status_code=503,
            title="Store Unavailable",
            detail="The booking store is temporarily unavailable, please retry",
            type_uri=f"{PROBLEM_BASE_URI}/store-unavailable",
            code="STORE_UNAVAILABLE",
            retryable=True,
            diagnostics={"operation": operation},
            headers={"Retry-After": "1"},
        )


def _caller_is_admin(request: Request) -> bool:
    identity = getattr(request.state, "identity", None)
    return identity is not None and identity.is_admin


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    content = dict(exc.problem_details)
    content.setdefault("instance", request.url.path)
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        content["request_id"] = request_id
    if exc.diagnostics and _caller_is_admin(request):
        content["diagnostics"] = exc.diagnostics

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI body/query validation failures as a problem with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{PROBLEM_BASE_URI}/request-validation",
            "title": "Request Validation Failed",
            "status": 422,
            "code": "VALIDATION_ERROR",
            "retryable": False,
            "detail": "The request body or parameters are malformed",
            "instance": request.url.path,
            "violations": violations,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path, "error": str(exc)},
        exc_info=exc,
    )

    problem_details = {
        "type": f"{PROBLEM_BASE_URI}/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "retryable": False,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
    )


def register_exception_handlers(app) -> None:
    """Attach every problem-details handler to a FastAPI app."""
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
