"""Models module exporting all database models."""

from .addon import Addon
from .booking import (
    Booking,
    BookingStatus,
    BookingStatusChange,
    BookingType,
    PaymentStatus,
    RefundStatus,
    TransitionKind,
)
from .experience import Experience
from .idempotency import IdempotencyRecord
from .transaction import PaymentMethod, Transaction, TransactionStatus, TransactionType

__all__ = [
    # Catalog entities
    "Addon",
    "Experience",

    # Booking entities
    "Booking",
    "BookingStatus",
    "BookingStatusChange",
    "BookingType",
    "PaymentStatus",
    "RefundStatus",
    "TransitionKind",

    # Ledger entities
    "Transaction",
    "TransactionType",
    "TransactionStatus",
    "PaymentMethod",

    # Idempotency entity
    "IdempotencyRecord",
]
