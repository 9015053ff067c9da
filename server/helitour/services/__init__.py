"""Service layer package."""

from .booking_service import BookingService
from .booking_store import BookingStore
from .catalog_service import CatalogService
from .idempotency_service import IdempotencyService
from .refund_service import RefundService

__all__ = [
    "BookingService",
    "BookingStore",
    "CatalogService",
    "IdempotencyService",
    "RefundService",
]
