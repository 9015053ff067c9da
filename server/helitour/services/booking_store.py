"""Persistence for bookings with version-guarded conditional updates."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import Base
from ..core.dependencies import Identity
from ..core.exceptions import BookingConflictError, NotFoundError, StoreUnavailableError
from ..core.observability import get_logger, metrics_collector
from ..models.booking import Booking, BookingStatusChange
from .state_machine import Transition

logger = logging.getLogger(__name__)
transition_log = get_logger("helitour.transitions")

STORE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


@dataclass
class BookingMutation:
    """
    Everything one write to a booking changes.

    ``patch`` holds column values; ``transition`` adds an audit row and
    ``related`` rows (ledger entries) are inserted in the same transaction.
    """

    patch: dict[str, Any]
    transition: Optional[Transition] = None
    related: list[Base] = field(default_factory=list)
    changed_fields: list[str] = field(default_factory=list)


MutationPlan = Callable[[Booking], Optional[BookingMutation]]


class BookingStore:
    """Booking record store over an async session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, booking_id: UUID) -> Booking | None:
        """Read the current stored state, bypassing anything cached in the session."""
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.db.execute(stmt)
        except STORE_ERRORS as e:
            raise self._unavailable("find_by_id", e) from e
        return result.scalar_one_or_none()

    async def find_by_id_or_raise(self, booking_id: UUID) -> Booking:
        booking = await self.find_by_id(booking_id)
        if not booking:
            logger.warning(
                "Booking not found",
                extra={"booking_id": str(booking_id)}
            )
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def create(self, booking: Booking) -> Booking:
        try:
            self.db.add(booking)
            await self.db.commit()
            await self.db.refresh(booking)
        except STORE_ERRORS as e:
            await self.db.rollback()
            raise self._unavailable("create", e) from e
        return booking

    async def conditional_update(
        self,
        booking_id: UUID,
        expected_version: int,
        patch: dict[str, Any],
    ) -> bool:
        """
        Write ``patch`` only if the booking still carries ``expected_version``.

        The version is bumped in the same statement. Nothing is committed
        here so callers can add related rows to the same transaction.

        Returns:
            True if exactly one row was updated
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.version == expected_version)
            .values(**patch, version=Booking.version + 1)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
        except STORE_ERRORS as e:
            await self.db.rollback()
            raise self._unavailable("conditional_update", e) from e
        return result.rowcount == 1

    async def delete(self, booking_id: UUID) -> bool:
        stmt = delete(Booking).where(Booking.id == booking_id)
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except STORE_ERRORS as e:
            await self.db.rollback()
            raise self._unavailable("delete", e) from e
        return result.rowcount == 1

    async def apply(
        self,
        booking_id: UUID,
        plan: MutationPlan,
        actor: Identity,
        operation: str,
    ) -> tuple[Booking, Optional[BookingMutation]]:
        """
        Read, plan and conditionally write a booking until the write lands.

        ``plan`` is called with the freshly read booking on every attempt and
        must re-check every guard; it returns None when there is nothing to
        write. Exceptions raised by ``plan`` propagate unchanged.

        Raises:
            NotFoundError: If the booking does not exist (or vanished mid-retry)
            BookingConflictError: If every attempt lost to a concurrent writer
            StoreUnavailableError: If the database fails
        """
        max_attempts = settings.booking_update_max_attempts

        for attempt in range(1, max_attempts + 1):
            booking = await self.find_by_id_or_raise(booking_id)
            mutation = plan(booking)
            if mutation is None:
                return booking, None

            patch = dict(mutation.patch)
            if mutation.transition:
                patch["status"] = mutation.transition.to_status.value

            if await self.conditional_update(booking.id, booking.version, patch):
                if mutation.transition:
                    self.db.add(self._status_change(booking.id, mutation.transition, actor))
                for row in mutation.related:
                    self.db.add(row)

                try:
                    await self.db.commit()
                except STORE_ERRORS as e:
                    await self.db.rollback()
                    raise self._unavailable(operation, e) from e

                if mutation.transition:
                    self._record_transition(booking.id, mutation.transition, actor)

                return await self.find_by_id_or_raise(booking_id), mutation

            await self.db.rollback()
            metrics_collector.record_update_conflict(operation)
            logger.info(
                "Booking changed concurrently - re-evaluating",
                extra={
                    "booking_id": str(booking_id),
                    "operation": operation,
                    "attempt": attempt,
                    "read_version": booking.version,
                }
            )

        logger.warning(
            "Booking update gave up after repeated conflicts",
            extra={"booking_id": str(booking_id), "operation": operation, "attempts": max_attempts}
        )
        raise BookingConflictError(booking_id=str(booking_id), attempts=max_attempts)

    async def history(self, booking_id: UUID) -> list[BookingStatusChange]:
        stmt = (
            select(BookingStatusChange)
            .where(BookingStatusChange.booking_id == booking_id)
            .order_by(BookingStatusChange.created_at, BookingStatusChange.id)
        )
        try:
            result = await self.db.execute(stmt)
        except STORE_ERRORS as e:
            raise self._unavailable("history", e) from e
        return list(result.scalars())

    @staticmethod
    def _status_change(booking_id: UUID, transition: Transition, actor: Identity) -> BookingStatusChange:
        return BookingStatusChange(
            booking_id=booking_id,
            from_status=transition.from_status.value,
            to_status=transition.to_status.value,
            kind=transition.kind.value,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
            created_at=datetime.now(timezone.utc),
        )

    @staticmethod
    def _record_transition(booking_id: UUID, transition: Transition, actor: Identity) -> None:
        transition_log.info(
            "booking_status_changed",
            booking_id=str(booking_id),
            from_status=transition.from_status.value,
            to_status=transition.to_status.value,
            kind=transition.kind.value,
            actor_id=actor.user_id,
            actor_role=actor.role.value,
        )
        metrics_collector.record_transition(
            transition.from_status.value,
            transition.to_status.value,
            transition.kind.value,
        )

    @staticmethod
    def _unavailable(operation: str, error: Exception) -> StoreUnavailableError:
        logger.error(
            "Booking store operation failed",
            extra={"operation": operation, "error": str(error)}
        )
        return StoreUnavailableError(operation=operation)
