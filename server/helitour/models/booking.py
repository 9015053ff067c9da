"""Booking and status-change model definitions."""

from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base


class BookingType(str, Enum):
    """Booking type enumeration."""
    TRANSPORT = "transport"
    EXPERIENCE = "experience"


class BookingStatus(str, Enum):
    """Lifecycle state of a booking."""
    PENDING = "pending"
    APPROVED = "approved"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status enumeration. Payment itself happens off-platform."""
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class RefundStatus(str, Enum):
    """Refund status enumeration."""
    NONE = "none"
    PARTIAL_REFUND = "partial_refund"
    REFUNDED = "refunded"


class TransitionKind(str, Enum):
    """How a status change was authorized."""
    STANDARD = "standard"
    CLIENT_CANCEL = "client_cancel"
    ADMIN_OVERRIDE = "admin_override"
    REFUND_OVERRIDE = "refund_override"


class Booking(Base):
    """Booking entity for a helicopter transport flight or experience package."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Ownership and classification, fixed at creation
    client_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    booking_type: Mapped[BookingType] = mapped_column(String(20), nullable=False, index=True)

    # Route or experience reference
    from_location: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_location: Mapped[str | None] = mapped_column(String(64), nullable=True)
    experience_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("experiences.id", ondelete="SET NULL"),
        nullable=True
    )
    destination_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Schedule
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    scheduled_time: Mapped[str] = mapped_column(String(5), nullable=False)
    return_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    return_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    is_round_trip: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Party
    passenger_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    passenger_details: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Commercial (minor units)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    selected_addons: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    addon_total_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Lifecycle
    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING
    )

    # Refund state
    refund_status: Mapped[RefundStatus] = mapped_column(
        String(20),
        nullable=False,
        default=RefundStatus.NONE
    )
    refund_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    refund_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Assignment
    pilot_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    helicopter_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Revision flow
    revision_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revision_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    revision_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Notes
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Optimistic concurrency token, bumped by every conditional update
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("passenger_count >= 1", name="ck_booking_passenger_count_positive"),
        CheckConstraint("base_price >= 0", name="ck_booking_base_price_non_negative"),
        CheckConstraint("addon_total_price >= 0", name="ck_booking_addon_total_non_negative"),
        CheckConstraint("total_price = base_price + addon_total_price", name="ck_booking_total_consistency"),
        CheckConstraint("refund_amount >= 0", name="ck_booking_refund_amount_non_negative"),
        CheckConstraint("refund_amount <= total_price", name="ck_booking_refund_lte_total"),
        CheckConstraint("length(client_id) > 0", name="ck_booking_client_id_not_empty"),
    )

    # Relationships
    status_changes: Mapped[list["BookingStatusChange"]] = relationship(
        "BookingStatusChange",
        back_populates="booking",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BookingStatusChange.created_at",
    )

    @property
    def remaining_refundable(self) -> int:
        return self.total_price - self.refund_amount

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, type={self.booking_type}, status={self.status}, "
            f"total_price={self.total_price}, version={self.version})>"
        )


class BookingStatusChange(Base):
    """Append-only audit row written alongside every status change."""

    __tablename__ = "booking_status_changes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    from_status: Mapped[BookingStatus] = mapped_column(String(20), nullable=False)
    to_status: Mapped[BookingStatus] = mapped_column(String(20), nullable=False)
    kind: Mapped[TransitionKind] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="status_changes")

    def __repr__(self) -> str:
        return (
            f"<BookingStatusChange(booking_id={self.booking_id}, {self.from_status}->{self.to_status}, "
            f"kind={self.kind}, actor={self.actor_role}:{self.actor_id})>"
        )
