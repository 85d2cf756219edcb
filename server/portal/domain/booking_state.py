"""Booking state machine."""

from ..core.exceptions import InvalidTransitionError
from ..models.booking import BookingStatus

BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

TERMINAL_BOOKING_STATUSES = frozenset(
    status for status, targets in BOOKING_TRANSITIONS.items() if not targets
)


def assert_booking_transition(booking_id: str, current: str | None, target: str) -> None:
    # Legacy rows may carry a NULL status; they are read as pending.
    current_status = BookingStatus(current or BookingStatus.PENDING.value)
    target_status = BookingStatus(target)
    if target_status not in BOOKING_TRANSITIONS[current_status]:
        raise InvalidTransitionError(
            entity="booking",
            entity_id=booking_id,
            current_status=current_status.value,
            target_status=target_status.value,
        )
