"""Booking router for booking lifecycle operations."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.booking import (
    Booking,
    BookingRef,
    CancelBookingRequest,
    CreateBookingRequest,
    ListBookingsRequest,
    PaymentStatusResolution,
    UpdateBookingRequest,
    UploadProofRequest,
)
from ..schemas.payment import GatewayInfo, Payment, PlacedBooking
from ..services.lifecycle_service import LifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
IDEMPOTENCY_KEY_DEPENDENCY = Header(None, alias="Idempotency-Key")


class PlaceBookingRequest(CreateBookingRequest):
    """Booking request with optional gateway details for the payment created alongside it."""

    gateway: GatewayInfo = Field(default_factory=GatewayInfo)


def _booking_response(booking_model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=Booking.model_validate(booking_model).model_dump(mode="json")
    )


@router.post("/create", response_model=PlacedBooking, status_code=201)
async def create_booking(
    request: PlaceBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    idempotency_key: Optional[str] = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Create a pending booking together with its pending payment.

    Supplying an Idempotency-Key makes retries return the original booking.
    """
    lifecycle = LifecycleService(db)
    booking_request = CreateBookingRequest.model_validate(request.model_dump(exclude={"gateway"}))

    booking, payment = await lifecycle.place_booking(booking_request, request.gateway, idempotency_key)
    response_data = PlacedBooking(
        booking=Booking.model_validate(booking),
        payment=Payment.model_validate(payment)
    )

    logger.info(
        "Booking request handled",
        extra={
            "booking_id": booking.id,
            "payment_id": payment.id,
            "idempotency_key": idempotency_key
        }
    )

    return JSONResponse(status_code=201, content=response_data.model_dump(mode="json"))


@router.post("/get", response_model=Booking)
async def get_booking(request: BookingRef, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Get booking details."""
    booking = await LifecycleService(db).bookings.get_booking_or_raise(request.booking_id)
    return _booking_response(booking)


@router.post("/list", response_model=list[Booking])
async def list_bookings(request: ListBookingsRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """List a user's bookings, newest first."""
    bookings = await LifecycleService(db).bookings.list_user_bookings(request.user_id)
    return JSONResponse(
        status_code=200,
        content=[Booking.model_validate(b).model_dump(mode="json") for b in bookings]
    )


@router.post("/update", response_model=Booking)
async def update_booking(request: UpdateBookingRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Merge updatable fields into a booking."""
    booking = await LifecycleService(db).bookings.update_booking(request.booking_id, request.changes)
    return _booking_response(booking)


@router.post("/cancel", response_model=Booking)
async def cancel_booking(request: CancelBookingRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Cancel a pending or confirmed booking; the payment is left as it is."""
    booking = await LifecycleService(db).cancel_booking(request.booking_id, request.reason)

    logger.info(
        "Booking cancelled",
        extra={"booking_id": booking.id, "cancellation_reason": request.reason}
    )

    return _booking_response(booking)


@router.post("/confirm", response_model=Booking)
async def confirm_booking(request: BookingRef, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Confirm a pending booking."""
    booking = await LifecycleService(db).bookings.confirm_booking(request.booking_id)
    return _booking_response(booking)


@router.post("/complete", response_model=Booking)
async def complete_booking(request: BookingRef, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Mark a confirmed booking as completed."""
    booking = await LifecycleService(db).bookings.complete_booking(request.booking_id)
    return _booking_response(booking)


@router.post("/upload-proof", response_model=PlacedBooking)
async def upload_proof(request: UploadProofRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Attach a proof of payment and move the payment to processing."""
    booking, payment = await LifecycleService(db).upload_payment_proof(request.booking_id, request.proof_url)
    response_data = PlacedBooking(
        booking=Booking.model_validate(booking),
        payment=Payment.model_validate(payment)
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/payment-status", response_model=PaymentStatusResolution)
async def payment_status(request: BookingRef, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Resolve a booking's payment status through its payment."""
    lifecycle = LifecycleService(db)
    booking = await lifecycle.bookings.get_booking_or_raise(request.booking_id)
    resolution = await lifecycle.resolve_payment_status(booking)
    return JSONResponse(status_code=200, content=resolution.model_dump(mode="json"))


@router.post("/reconcile", response_model=Booking)
async def reconcile_booking(request: BookingRef, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Repair a booking whose cached payment state drifted from its payment."""
    booking = await LifecycleService(db).reconcile_booking(request.booking_id)
    return _booking_response(booking)
