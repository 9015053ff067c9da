"""Add-on catalog model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class Addon(Base):
    """Optional extra (photo package, champagne, transfer) sold with a booking."""

    __tablename__ = "addons"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Current catalog price in minor units; bookings freeze their own copy
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general", index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_addon_price_non_negative"),
        CheckConstraint("length(name) > 0", name="ck_addon_name_not_empty"),
    )

    def __repr__(self) -> str:
        return f"<Addon(id={self.id}, name='{self.name}', price={self.price}, active={self.is_active})>"
