"""Lifecycle state machines and derived values."""

from .booking_state import BOOKING_TRANSITIONS, TERMINAL_BOOKING_STATUSES, assert_booking_transition
from .payment_state import PAYMENT_TRANSITIONS, assert_payment_transition
from .trip import trip_length_days

__all__ = [
    "BOOKING_TRANSITIONS",
    "TERMINAL_BOOKING_STATUSES",
    "assert_booking_transition",
    "PAYMENT_TRANSITIONS",
    "assert_payment_transition",
    "trip_length_days",
]
