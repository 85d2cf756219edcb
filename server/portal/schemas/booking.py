"""Booking-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.booking import BookingStatus, PaymentStatus

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking.

    The caller supplies the already computed ``total_price``; nothing is
    derived from the catalog here.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1, max_length=64, description="Owner of the booking")
    destination_id: Optional[str] = Field(None, max_length=64, description="Booked destination")
    event_id: Optional[str] = Field(None, max_length=64, description="Booked event")
    number_of_people: int = Field(..., ge=1, description="Party size")
    total_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2, description="People x unit price")
    booking_date: Optional[datetime] = Field(None, description="Request timestamp; defaults to now")
    preferred_date: Optional[datetime] = Field(None, description="Requested visit/event date")
    contact_name: str = Field(..., min_length=1, max_length=255)
    contact_email: str = Field(..., max_length=320, pattern=EMAIL_PATTERN)
    contact_phone: str = Field(..., min_length=1, max_length=64)
    booking_details: Optional[dict[str, Any]] = Field(None, description="Opaque display data")
    selected_ticket_type: Optional[dict[str, Any]] = Field(None, description="Chosen ticket tier for events")

    @model_validator(mode="after")
    def check_single_reference(self) -> "CreateBookingRequest":
        if bool(self.destination_id) == bool(self.event_id):
            raise ValueError("Exactly one of destination_id or event_id must be provided")
        return self


class BookingChanges(BaseModel):
    """Fields that may be merged into an existing booking.

    Commercial terms and item references are fixed at creation and are
    rejected here.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    preferred_date: Optional[datetime] = None
    contact_name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_email: Optional[str] = Field(None, max_length=320, pattern=EMAIL_PATTERN)
    contact_phone: Optional[str] = Field(None, min_length=1, max_length=64)
    booking_details: Optional[dict[str, Any]] = None
    selected_ticket_type: Optional[dict[str, Any]] = None
    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None
    payment_id: Optional[str] = Field(None, max_length=36)
    payment_proof_url: Optional[str] = None
    payment_proof_uploaded_at: Optional[datetime] = None
    confirmation_date: Optional[datetime] = None
    cancellation_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    completion_date: Optional[datetime] = None


class UpdateBookingRequest(BaseModel):
    """Request schema for a partial booking update."""

    booking_id: str = Field(..., description="Booking to update")
    changes: BookingChanges = Field(..., description="Fields to merge")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: str = Field(..., description="Booking to cancel")
    reason: Optional[str] = Field(None, max_length=2000, description="Why the booking is cancelled")


class BookingRef(BaseModel):
    """Request schema addressing a single booking."""

    booking_id: str = Field(..., description="Booking ID")


class ListBookingsRequest(BaseModel):
    """Request schema for listing a user's bookings."""

    user_id: str = Field(..., min_length=1, description="Owner of the bookings")


class UploadProofRequest(BaseModel):
    """Request schema for attaching a proof of payment."""

    booking_id: str = Field(..., description="Booking the proof belongs to")
    proof_url: str = Field(..., min_length=1, description="Location of the uploaded proof document")


class Booking(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str]
    destination_id: Optional[str]
    event_id: Optional[str]
    number_of_people: int
    total_price: Decimal
    booking_date: datetime
    preferred_date: Optional[datetime]
    contact_name: str
    contact_email: str
    contact_phone: str
    booking_details: Optional[dict[str, Any]]
    selected_ticket_type: Optional[dict[str, Any]]
    status: BookingStatus
    payment_status: PaymentStatus
    payment_id: Optional[str]
    payment_proof_url: Optional[str]
    payment_proof_uploaded_at: Optional[datetime]
    confirmation_date: Optional[datetime]
    cancellation_date: Optional[datetime]
    cancellation_reason: Optional[str]
    completion_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class PaymentStatusResolution(BaseModel):
    """Payment status read through the payment, with the booking's cached copy alongside."""

    booking_id: str
    payment_id: Optional[str]
    payment_status: PaymentStatus = Field(..., description="Authoritative status")
    cached_payment_status: PaymentStatus = Field(..., description="Booking.payment_status as stored")
    stale: bool = Field(..., description="True when the cached copy lags the payment")
