"""Experience package model definition."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class Experience(Base):
    """Packaged sightseeing flight with a fixed base price."""

    __tablename__ = "experiences"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(64), nullable=True)

    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_hours: Mapped[Decimal] = mapped_column(Numeric(4, 1), nullable=False, default=Decimal("1.0"))
    max_passengers: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
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
        CheckConstraint("base_price >= 0", name="ck_experience_base_price_non_negative"),
        CheckConstraint("duration_hours > 0", name="ck_experience_duration_positive"),
        CheckConstraint("max_passengers >= 1", name="ck_experience_max_passengers_positive"),
        CheckConstraint("length(name) > 0", name="ck_experience_name_not_empty"),
    )

    def __repr__(self) -> str:
        return f"<Experience(id={self.id}, name='{self.name}', base_price={self.base_price})>"
