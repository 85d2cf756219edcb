"""Payment router for payment operations."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.payment import (
    CreatePaymentRequest,
    MarkFailedRequest,
    MarkProcessingRequest,
    Payment,
    PaymentRef,
)
from ..services.lifecycle_service import LifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
IDEMPOTENCY_KEY_DEPENDENCY = Header(None, alias="Idempotency-Key")


def _payment_response(payment_model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=Payment.model_validate(payment_model).model_dump(mode="json")
    )


@router.post("/create", response_model=Payment, status_code=201)
async def create_payment(
    request: CreatePaymentRequest,
    db: AsyncSession = DB_DEPENDENCY,
    idempotency_key: Optional[str] = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Create a pending payment for a booking's total and link it to the booking.

    Supplying an Idempotency-Key makes retries return the original payment.
    """
    payment = await LifecycleService(db).create_payment(
        request.booking_id,
        request.amount,
        request.gateway,
        idempotency_key
    )

    logger.info(
        "Payment request handled",
        extra={
            "payment_id": payment.id,
            "booking_id": request.booking_id,
            "idempotency_key": idempotency_key
        }
    )

    return _payment_response(payment, status_code=201)


@router.post("/get", response_model=Payment)
async def get_payment(request: PaymentRef, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Get payment details."""
    payment = await LifecycleService(db).payments.get_payment_or_raise(request.payment_id)
    return _payment_response(payment)


@router.post("/processing", response_model=Payment)
async def mark_processing(request: MarkProcessingRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Record a proof for a pending payment and mirror the status onto the booking."""
    _, payment = await LifecycleService(db).mark_payment_processing(request.payment_id, request.proof_url)
    return _payment_response(payment)


@router.post("/complete", response_model=Payment)
async def mark_completed(request: PaymentRef, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Complete a pending or processing payment."""
    payment = await LifecycleService(db).complete_payment(request.payment_id)
    return _payment_response(payment)


@router.post("/fail", response_model=Payment)
async def mark_failed(request: MarkFailedRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Fail a pending or processing payment."""
    payment = await LifecycleService(db).fail_payment(request.payment_id, request.reason)
    return _payment_response(payment)


@router.post("/refund", response_model=Payment)
async def mark_refunded(request: PaymentRef, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Refund a completed payment."""
    payment = await LifecycleService(db).refund_payment(request.payment_id)
    return _payment_response(payment)
