"""Payment-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.booking import PaymentStatus
from .booking import Booking


class GatewayInfo(BaseModel):
    """Where and how the payment is settled; no gateway API is ever called."""

    payment_method: Optional[str] = Field(None, max_length=64)
    payment_gateway: str = Field("manual", max_length=64)
    payment_gateway_reference: Optional[str] = Field(
        None, max_length=2048, description="Externally hosted payment page or gateway reference"
    )
    payment_intent_id: Optional[str] = Field(None, max_length=255)
    payment_details: Optional[dict[str, Any]] = Field(None, description="Initial details bag")


class CreatePaymentRequest(BaseModel):
    """Request schema for creating a booking's payment."""

    booking_id: str = Field(..., description="Booking being paid")
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2, description="Must equal the booking total")
    gateway: GatewayInfo = Field(default_factory=GatewayInfo)


class PaymentRef(BaseModel):
    """Request schema addressing a single payment."""

    payment_id: str = Field(..., description="Payment ID")


class MarkProcessingRequest(PaymentRef):
    """Request schema for recording a proof of payment."""

    proof_url: str = Field(..., min_length=1)


class MarkFailedRequest(PaymentRef):
    """Request schema for failing a payment."""

    reason: Optional[str] = Field(None, max_length=2000)


class Payment(BaseModel):
    """Payment response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    amount: Decimal
    status: PaymentStatus
    payment_method: Optional[str]
    payment_gateway: Optional[str]
    payment_gateway_reference: Optional[str]
    payment_intent_id: Optional[str]
    payment_details: Optional[dict[str, Any]]
    created_at: datetime
    updated_at: datetime


class PlacedBooking(BaseModel):
    """A booking together with its linked payment."""

    booking: Booking
    payment: Payment
