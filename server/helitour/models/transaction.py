"""Ledger transaction model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class TransactionType(str, Enum):
    """Ledger entry type."""
    PAYMENT = "payment"
    REFUND = "refund"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class PaymentMethod(str, Enum):
    """How money moved for a ledger entry."""
    CARD = "card"
    BANK = "bank"
    BANK_TRANSFER = "bank_transfer"
    ACCOUNT_BALANCE = "account_balance"
    DEPOSIT = "deposit"


class TransactionStatus(str, Enum):
    """Ledger entry status."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    APPROVED = "approved"
    REJECTED = "rejected"


class Transaction(Base):
    """Append-only ledger entry. Rows are never updated once written."""

    __tablename__ = "transactions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Kept when the booking is hard-deleted
    booking_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    type: Mapped[TransactionType] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(String(20), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)
    reference: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, type={self.type}, amount={self.amount}, "
            f"booking_id={self.booking_id}, status={self.status})>"
        )
