"""
Booking status transitions.
"""

from typing import Dict, FrozenSet, Union

from ..errors import AlreadyFinalized, InvalidTransition, TooLateToCancel
from ..models import BookingStatus

TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CHECKED_IN, BookingStatus.CANCELLED}),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.CHECKED_OUT}),
    BookingStatus.CHECKED_OUT: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

StatusLike = Union[BookingStatus, str]


def can_transition(from_status: StatusLike, to_status: StatusLike) -> bool:
    return BookingStatus(to_status) in TRANSITIONS[BookingStatus(from_status)]


def ensure_cancellable(status: StatusLike) -> None:
    status = BookingStatus(status)
    if status in TERMINAL_STATUSES:
        raise AlreadyFinalized(
            f"Booking is already {status.value}",
            {"status": status.value}
        )
    if status == BookingStatus.CHECKED_IN:
        raise TooLateToCancel(
            "Booking cannot be cancelled after check-in",
            {"status": status.value}
        )


def apply_transition(booking, to_status: StatusLike) -> BookingStatus:
    """
    Move ``booking`` to ``to_status`` in memory.

    Returns the previous status. Raises InvalidTransition (or one of its
    cancellation-specific subclasses) when the table denies the move.
    """
    to_status = BookingStatus(to_status)
    from_status = BookingStatus(booking.status)

    if to_status == BookingStatus.CANCELLED:
        ensure_cancellable(from_status)

    if not can_transition(from_status, to_status):
        raise InvalidTransition(
            f"Cannot move booking from {from_status.value} to {to_status.value}",
            {"from_status": from_status.value, "to_status": to_status.value}
        )

    booking.status = to_status
    return from_status
