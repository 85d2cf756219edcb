"""FastAPI routers package."""

from .booking import router as booking_router
from .health import router as health_router
from .invoice import router as invoice_router
from .itinerary import router as itinerary_router
from .metrics import router as metrics_router
from .payment import router as payment_router

__all__ = [
    "booking_router",
    "health_router",
    "invoice_router",
    "itinerary_router",
    "metrics_router",
    "payment_router",
]
