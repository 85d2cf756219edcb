"""Models module exporting all database models."""

from .booking import Booking, BookingStatus, PaymentStatus
from .catalog import Destination, Event
from .idempotency import IdempotencyRecord
from .itinerary import Itinerary, ItineraryDestination
from .payment import Payment

__all__ = [
    # Lifecycle entities
    "Booking",
    "BookingStatus",
    "Payment",
    "PaymentStatus",

    # Itinerary entities
    "Itinerary",
    "ItineraryDestination",

    # Read-only catalog
    "Destination",
    "Event",

    # Idempotency entity
    "IdempotencyRecord",
]
