"""Invoice projection schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from ..models.booking import PaymentStatus
from .booking import Booking


class InvoiceRequest(BaseModel):
    """Request schema for assembling a booking's invoice."""

    booking_id: str


class InvoicePayment(BaseModel):
    """Payment as shown on an invoice; ``persisted`` is False for the placeholder."""

    id: Optional[str] = None
    status: PaymentStatus
    payment_method: Optional[str] = None
    payment_gateway: Optional[str] = None
    amount: Optional[Decimal] = None
    persisted: bool = True


class InvoiceItem(BaseModel):
    """The booked destination or event line."""

    item_type: Literal["destination", "event", "unknown"]
    name: str
    location: Optional[str] = None
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class InvoiceView(BaseModel):
    """Read-only billing document for one booking."""

    invoice_number: str = Field(..., description="First 8 characters of the booking ID")
    issued_at: datetime
    booking: Booking
    payment: InvoicePayment
    item: InvoiceItem
    payment_status: PaymentStatus = Field(..., description="Resolved through the payment when one exists")
    payment_status_stale: bool = Field(..., description="True when the booking's cached status disagrees")
    payment_url: Optional[str] = None
    total_amount: Decimal
