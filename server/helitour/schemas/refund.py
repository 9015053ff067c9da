"""Refund and ledger Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus, PaymentStatus, RefundStatus
from ..models.transaction import PaymentMethod, TransactionStatus, TransactionType
from .common import Money


class RefundMethod(str, Enum):
    """Where refunded money goes."""
    ORIGINAL = "original"
    WALLET = "wallet"


class IssueRefundRequest(BaseModel):
    """Request schema for refunding a booking."""

    booking_id: str = Field(..., description="Booking to refund")
    amount: int | None = Field(None, description="Amount in minor units; defaults to the remaining balance")
    reason: str | None = Field(None, max_length=1000, description="Reason shown on the ledger entry")
    method: RefundMethod = Field(RefundMethod.ORIGINAL, description="original payment method or account wallet")


class RefundStatusRequest(BaseModel):
    """Request schema for reading a booking's refund state."""

    booking_id: str = Field(..., description="Booking to inspect")


class RefundSummary(BaseModel):
    """Refund read model."""

    booking_id: str
    status: RefundStatus
    amount: Money = Field(..., description="Cumulative refunded amount")
    reason: str | None = None
    date: datetime | None = None
    total_price: Money
    remaining_amount: Money


class IssueRefundResponse(BaseModel):
    """Response schema for an issued refund."""

    refund: RefundSummary
    refunded_now: Money = Field(..., description="Amount refunded by this request")
    transaction_id: str
    booking_status: BookingStatus
    payment_status: PaymentStatus


class ListTransactionsRequest(BaseModel):
    """Request schema for listing ledger entries."""

    booking_id: str | None = Field(None, description="Only entries for this booking")


class Transaction(BaseModel):
    """Ledger entry response schema."""

    id: str
    transaction_id: str
    user_id: str
    booking_id: str | None = None
    type: TransactionType
    amount: Money
    status: TransactionStatus
    payment_method: PaymentMethod
    reference: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class ListTransactionsResponse(BaseModel):
    """Response schema for ledger listing."""

    items: list[Transaction]
