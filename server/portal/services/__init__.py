"""Service layer package."""

from .booking_service import BookingService
from .idempotency_service import IdempotencyMismatchError, IdempotencyService
from .invoice_service import InvoiceService
from .itinerary_service import ItineraryService
from .lifecycle_service import LifecycleService
from .payment_service import PaymentService

__all__ = [
    "BookingService",
    "IdempotencyMismatchError",
    "IdempotencyService",
    "InvoiceService",
    "ItineraryService",
    "LifecycleService",
    "PaymentService",
]
