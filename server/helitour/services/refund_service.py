"""Refund service: refund planning, the ledger and refund read models."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Identity, Role
from ..core.exceptions import (
    AlreadyRefundedError,
    AuthorizationError,
    ExceedsBookingTotalError,
    NotPaidError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, PaymentStatus, RefundStatus
from ..models.transaction import PaymentMethod, Transaction, TransactionStatus, TransactionType
from ..schemas.refund import IssueRefundRequest, RefundMethod
from .booking_service import parse_uuid
from .booking_store import BookingMutation, BookingStore
from .state_machine import refund_override

logger = logging.getLogger(__name__)

REFUND_PAYMENT_METHODS = {
    RefundMethod.WALLET: PaymentMethod.ACCOUNT_BALANCE,
    RefundMethod.ORIGINAL: PaymentMethod.BANK_TRANSFER,
}


@dataclass(frozen=True)
class RefundPlan:
    """Outcome of a refund that passed every precondition."""

    amount: int
    refund_amount: int
    refund_status: RefundStatus
    payment_status: PaymentStatus


@dataclass(frozen=True)
class RefundSummary:
    booking_id: str
    status: RefundStatus
    amount: int
    reason: Optional[str]
    date: Optional[datetime]
    total_price: int
    remaining_amount: int


@dataclass(frozen=True)
class RefundResult:
    summary: RefundSummary
    refunded_now: int
    transaction: Transaction
    booking: Booking


def plan_refund(
    booking_id: str,
    total_price: int,
    refund_amount: int,
    payment_status: str,
    refund_status: str,
    requested_amount: Optional[int] = None,
) -> RefundPlan:
    """
    Decide a refund against the stored refund state.

    The amount defaults to whatever has not been refunded yet. A refund that
    reaches the total marks the booking (and its payment) refunded.

    Raises:
        AlreadyRefundedError: If the booking is fully refunded
        NotPaidError: If the booking has not been paid
        ValidationError: If the amount is not positive
        ExceedsBookingTotalError: If the cumulative refund would exceed the total
    """
    if RefundStatus(refund_status) == RefundStatus.REFUNDED:
        raise AlreadyRefundedError(booking_id=booking_id, refund_amount=refund_amount)

    if PaymentStatus(payment_status) != PaymentStatus.PAID:
        raise NotPaidError(booking_id=booking_id, payment_status=str(payment_status))

    amount = total_price - refund_amount if requested_amount is None else requested_amount
    if amount <= 0:
        raise ValidationError(
            detail="Refund amount must be positive",
            errors={"amount": "must be greater than 0"},
        )

    if refund_amount + amount > total_price:
        raise ExceedsBookingTotalError(
            requested_amount=amount,
            refunded_amount=refund_amount,
            total_price=total_price,
        )

    new_refund_amount = refund_amount + amount
    fully_refunded = new_refund_amount >= total_price

    return RefundPlan(
        amount=amount,
        refund_amount=new_refund_amount,
        refund_status=RefundStatus.REFUNDED if fully_refunded else RefundStatus.PARTIAL_REFUND,
        payment_status=PaymentStatus.REFUNDED if fully_refunded else PaymentStatus.PAID,
    )


def summarize(booking: Booking) -> RefundSummary:
    return RefundSummary(
        booking_id=str(booking.id),
        status=RefundStatus(booking.refund_status or RefundStatus.NONE),
        amount=booking.refund_amount or 0,
        reason=booking.refund_reason,
        date=booking.refund_date,
        total_price=booking.total_price,
        remaining_amount=booking.total_price - (booking.refund_amount or 0),
    )


def _transaction_reference(booking_id: str, reason: Optional[str]) -> str:
    return f"Refund: {booking_id} - {reason}" if reason else f"Refund: {booking_id}"


class RefundService:
    """Service for refunds and ledger reads."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = BookingStore(db)

    async def issue_refund(self, request: IssueRefundRequest, identity: Identity) -> RefundResult:
        """
        Refund a paid booking, fully or in part.

        The refund increment, the ledger entry and the forced cancellation
        are written in one transaction guarded by the booking version.

        Raises:
            AuthorizationError: If the caller is not an admin
            NotFoundError: If the booking does not exist
            AlreadyRefundedError, NotPaidError, ExceedsBookingTotalError,
            ValidationError: If a refund precondition fails
        """
        if not identity.is_admin:
            metrics_collector.record_authorization_denied("refund_requires_admin")
            raise AuthorizationError(detail="Admin access required", required_roles=[Role.ADMIN.value])

        booking_id = parse_uuid(request.booking_id)
        payment_method = REFUND_PAYMENT_METHODS[request.method]
        ledger: dict[str, Transaction] = {}

        def plan(booking: Booking) -> Optional[BookingMutation]:
            refund = plan_refund(
                booking_id=str(booking.id),
                total_price=booking.total_price,
                refund_amount=booking.refund_amount,
                payment_status=booking.payment_status,
                refund_status=booking.refund_status,
                requested_amount=request.amount,
            )

            transaction = Transaction(
                transaction_id=f"RF-{secrets.token_hex(8).upper()}",
                user_id=booking.client_id,
                booking_id=booking.id,
                type=TransactionType.REFUND.value,
                amount=refund.amount,
                status=TransactionStatus.COMPLETED.value,
                payment_method=payment_method.value,
                reference=_transaction_reference(str(booking.id), request.reason),
                created_at=datetime.now(timezone.utc),
            )
            ledger["entry"] = transaction

            patch = {
                "refund_amount": refund.refund_amount,
                "refund_status": refund.refund_status.value,
                "payment_status": refund.payment_status.value,
                "refund_reason": request.reason,
                "refund_date": datetime.now(timezone.utc),
            }
            return BookingMutation(
                patch=patch,
                transition=refund_override(booking.status),
                related=[transaction],
                changed_fields=sorted(patch),
            )

        booking, mutation = await self.store.apply(booking_id, plan, identity, "refund")
        transaction = ledger["entry"]
        refunded_now = transaction.amount

        metrics_collector.record_refund(booking.refund_status, refunded_now)
        logger.info(
            "Refund issued",
            extra={
                "booking_id": str(booking.id),
                "amount": refunded_now,
                "refund_amount": booking.refund_amount,
                "refund_status": booking.refund_status,
                "payment_method": payment_method.value,
                "transaction_id": transaction.transaction_id,
                "actor_id": identity.user_id,
            }
        )

        return RefundResult(
            summary=summarize(booking),
            refunded_now=refunded_now,
            transaction=transaction,
            booking=booking,
        )

    async def get_refund_status(self, booking_id: str, identity: Identity) -> RefundSummary:
        """
        Refund read model for the booking owner or an admin.

        Raises:
            NotFoundError: If the booking does not exist
            AuthorizationError: If the caller is neither owner nor admin
        """
        booking = await self.store.find_by_id_or_raise(parse_uuid(booking_id))
        if not identity.is_admin and booking.client_id != identity.user_id:
            metrics_collector.record_authorization_denied("refund_status")
            raise AuthorizationError(
                detail="You are not allowed to view this refund",
                diagnostics={"booking_id": booking_id, "caller_role": identity.role.value},
            )
        return summarize(booking)

    async def list_transactions(self, identity: Identity, booking_id: Optional[str] = None) -> list[Transaction]:
        """Ledger entries, newest first. Non-admins only see their own."""
        stmt = select(Transaction)
        if not identity.is_admin:
            stmt = stmt.where(Transaction.user_id == identity.user_id)
        if booking_id:
            stmt = stmt.where(Transaction.booking_id == parse_uuid(booking_id))
        stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id)

        result = await self.db.execute(stmt)
        return list(result.scalars())
