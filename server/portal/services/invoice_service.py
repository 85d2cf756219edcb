"""Invoice assembler: read-only billing projection of a booking."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import bounded, utcnow
from ..models.booking import Booking, PaymentStatus
from ..models.catalog import Destination, Event
from ..schemas.booking import Booking as BookingSchema
from ..schemas.invoice import InvoiceItem, InvoicePayment, InvoiceView
from .lifecycle_service import LifecycleService

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

# Shown when no payment row is linked yet; never persisted
PLACEHOLDER_PAYMENT_METHOD = "Online Payment"


class InvoiceService:
    """Assembles invoices; performs no writes."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.lifecycle = LifecycleService(db)

    async def assemble_invoice(self, booking_id: str) -> InvoiceView:
        """
        Combine a booking, its payment and item details into an invoice.

        Item name and location come from ``booking_details`` when present,
        otherwise from the catalog row. Payment status is read through the
        payment.

        Raises:
            NotFoundError: If booking not found
        """
        booking = await self.lifecycle.bookings.get_booking_or_raise(booking_id)
        payment = await self.lifecycle.get_linked_payment(booking)
        resolution = await self.lifecycle.resolve_payment_status(booking)
        catalog_entry = await self._catalog_entry(booking)
        details: dict[str, Any] = booking.booking_details or {}

        if payment is not None:
            invoice_payment = InvoicePayment(
                id=payment.id,
                status=PaymentStatus(payment.status),
                payment_method=payment.payment_method,
                payment_gateway=payment.payment_gateway,
                amount=payment.amount,
            )
        else:
            invoice_payment = InvoicePayment(
                status=PaymentStatus.PENDING,
                payment_method=PLACEHOLDER_PAYMENT_METHOD,
                persisted=False,
            )

        total_price = Decimal(booking.total_price).quantize(CENTS)
        item = InvoiceItem(
            item_type=booking.reference_type,
            name=self._item_name(details, catalog_entry),
            location=self._item_location(details, catalog_entry),
            unit_price=self._unit_price(details, booking),
            quantity=booking.number_of_people,
            line_total=total_price,
        )

        payment_url = (
            details.get("payment_url")
            or getattr(catalog_entry, "payment_url", None)
            or (payment.payment_gateway_reference if payment is not None else None)
        )

        if resolution.stale:
            logger.warning(
                "Booking payment status is stale",
                extra={
                    "booking_id": booking.id,
                    "cached_payment_status": resolution.cached_payment_status.value,
                    "payment_status": resolution.payment_status.value
                }
            )

        return InvoiceView(
            invoice_number=booking.id[:8],
            issued_at=utcnow(),
            booking=BookingSchema.model_validate(booking),
            payment=invoice_payment,
            item=item,
            payment_status=resolution.payment_status,
            payment_status_stale=resolution.stale,
            payment_url=payment_url,
            total_amount=total_price,
        )

    async def _catalog_entry(self, booking: Booking) -> Destination | Event | None:
        if booking.destination_id:
            stmt = select(Destination).where(Destination.id == booking.destination_id)
        elif booking.event_id:
            stmt = select(Event).where(Event.id == booking.event_id)
        else:
            return None
        result = await bounded(self.db.execute(stmt), "invoice.catalog_lookup")
        return result.scalar_one_or_none()

    @staticmethod
    def _item_name(details: dict[str, Any], catalog_entry: Destination | Event | None) -> str:
        name = details.get("destination_name") or details.get("event_name")
        if name:
            return str(name)
        if isinstance(catalog_entry, Destination):
            return catalog_entry.name
        if isinstance(catalog_entry, Event):
            return catalog_entry.title
        return "Unknown item"

    @staticmethod
    def _item_location(details: dict[str, Any], catalog_entry: Destination | Event | None) -> str | None:
        location = details.get("destination_location") or details.get("event_location")
        if location:
            return str(location)
        return getattr(catalog_entry, "location", None)

    @staticmethod
    def _unit_price(details: dict[str, Any], booking: Booking) -> Decimal:
        """Per-person price from booking_details, else total divided by party size."""
        price_per_person = details.get("price_per_person")
        if price_per_person is not None:
            try:
                return Decimal(str(price_per_person)).quantize(CENTS)
            except InvalidOperation:
                logger.warning(
                    "Ignoring malformed price_per_person in booking details",
                    extra={"booking_id": booking.id, "price_per_person": str(price_per_person)}
                )
        people = booking.number_of_people or 1
        return (Decimal(booking.total_price) / people).quantize(CENTS)
