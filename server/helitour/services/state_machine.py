"""Booking lifecycle graph and the role guards on each edge."""

from dataclasses import dataclass
from typing import Optional

from ..core.dependencies import Role
from ..core.exceptions import InvalidTransitionError
from ..models.booking import BookingStatus, TransitionKind

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.APPROVED, BookingStatus.ASSIGNED, BookingStatus.CANCELLED}),
    BookingStatus.APPROVED: frozenset({BookingStatus.ASSIGNED, BookingStatus.CANCELLED}),
    BookingStatus.ASSIGNED: frozenset({BookingStatus.ACCEPTED, BookingStatus.CANCELLED}),
    BookingStatus.ACCEPTED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# Edges a pilot may take on a booking assigned to them
PILOT_EDGES = frozenset({
    (BookingStatus.ASSIGNED, BookingStatus.ACCEPTED),
    (BookingStatus.ACCEPTED, BookingStatus.COMPLETED),
})

# Edges an admin takes as ordinary progress; cancellation is handled separately
ADMIN_EDGES = frozenset({
    (BookingStatus.PENDING, BookingStatus.APPROVED),
    (BookingStatus.PENDING, BookingStatus.ASSIGNED),
    (BookingStatus.APPROVED, BookingStatus.ASSIGNED),
    (BookingStatus.ACCEPTED, BookingStatus.COMPLETED),
})


@dataclass(frozen=True)
class Transition:
    """An approved status change, ready to be written with its audit row."""

    from_status: BookingStatus
    to_status: BookingStatus
    kind: TransitionKind


def is_terminal(status: BookingStatus) -> bool:
    return BookingStatus(status) in TERMINAL_STATES


def plan_transition(
    current: BookingStatus,
    requested: BookingStatus,
    role: Role,
    pilot_assigned: bool = False,
) -> Optional[Transition]:
    """
    Validate a requested status change for the acting role.

    ``pilot_assigned`` tells whether the booking will have a pilot once the
    surrounding update is applied, which the move to ``assigned`` requires.

    Returns:
        The transition to apply, or None when the booking already sits in the
        requested terminal state

    Raises:
        InvalidTransitionError: If the graph or the role guard rejects the change
    """
    current = BookingStatus(current)
    requested = BookingStatus(requested)

    def reject(reason: str) -> InvalidTransitionError:
        return InvalidTransitionError(
            current_status=current.value,
            requested_status=requested.value,
            role=role.value,
            reason=reason,
        )

    if requested == current:
        if current in TERMINAL_STATES:
            return None
        raise reject("the booking is already in that state")

    if requested not in TRANSITIONS[current]:
        raise reject("that is not a valid next state")

    if role == Role.CLIENT:
        if current == BookingStatus.PENDING and requested == BookingStatus.CANCELLED:
            return Transition(current, requested, TransitionKind.CLIENT_CANCEL)
        raise reject("clients may only cancel a pending booking")

    if role == Role.PILOT:
        if (current, requested) in PILOT_EDGES:
            return Transition(current, requested, TransitionKind.STANDARD)
        raise reject("pilots may only accept or complete their assigned flights")

    if requested == BookingStatus.CANCELLED:
        return Transition(current, requested, TransitionKind.ADMIN_OVERRIDE)

    if (current, requested) not in ADMIN_EDGES:
        raise reject("only the assigned pilot may accept a flight")

    if requested == BookingStatus.ASSIGNED and not pilot_assigned:
        raise reject("a pilot must be assigned first")

    return Transition(current, requested, TransitionKind.STANDARD)


def refund_override(current: BookingStatus) -> Optional[Transition]:
    """Forced cancellation applied by a refund from any state."""
    current = BookingStatus(current)
    if current == BookingStatus.CANCELLED:
        return None
    return Transition(current, BookingStatus.CANCELLED, TransitionKind.REFUND_OVERRIDE)
