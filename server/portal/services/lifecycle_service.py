"""Lifecycle coordinator keeping bookings and their payments consistent.

Booking and payment rows are written in separate commits. The payment is
the source of truth for payment state; ``Booking.payment_status`` is a
cached copy that is refreshed after every payment transition and can be
repaired with :meth:`LifecycleService.reconcile_booking`.
"""

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import InvariantViolationError
from ..core.observability import metrics_collector
from ..models.booking import Booking, PaymentStatus
from ..models.payment import Payment
from ..schemas.booking import CreateBookingRequest, PaymentStatusResolution
from ..schemas.common import coerce_request
from ..schemas.payment import GatewayInfo
from .booking_service import BookingService
from .idempotency_service import IdempotencyService
from .payment_service import PaymentService

logger = logging.getLogger(__name__)

IN_FLIGHT_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value})


class LifecycleService:
    """The only service that writes both a booking and its payment in one operation."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.bookings = BookingService(db)
        self.payments = PaymentService(db)
        self.idempotency = IdempotencyService(db)

    async def place_booking(
        self,
        request: CreateBookingRequest | Mapping[str, Any],
        gateway_info: GatewayInfo | Mapping[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[Booking, Payment]:
        """
        Create a booking, its payment for the full total, and link the two.

        With an idempotency key, replaying the same request returns the
        booking and payment created the first time.

        Raises:
            ValidationError, DuplicateBookingError: From the booking ledger
            IdempotencyMismatchError: If the key was used with another body
        """
        request = coerce_request(CreateBookingRequest, request)
        gateway = coerce_request(GatewayInfo, gateway_info or {})
        request_body = {
            "booking": request.model_dump(mode="json"),
            "gateway": gateway.model_dump(mode="json"),
        }

        if idempotency_key:
            booking_id = await self.idempotency.check(idempotency_key, "booking.place", request_body)
            if booking_id is not None:
                booking = await self.bookings.get_booking_or_raise(booking_id)
                payment = await self.get_linked_payment(booking)
                if payment is None:
                    # The first attempt stopped after the booking was stored
                    payment = await self._create_and_link(booking.id, booking.total_price, gateway)
                    booking = await self.bookings.get_booking_or_raise(booking.id)
                return booking, payment

        booking = await self.bookings.create_booking(request)
        booking_id, total_price = booking.id, booking.total_price
        if idempotency_key:
            await self.idempotency.store(idempotency_key, "booking.place", request_body, booking_id)

        payment = await self._create_and_link(booking_id, total_price, gateway)
        booking = await self.bookings.get_booking_or_raise(booking_id)

        logger.info(
            "Booking placed",
            extra={
                "booking_id": booking.id,
                "payment_id": payment.id,
                "user_id": booking.user_id,
                "total_price": str(booking.total_price)
            }
        )
        return booking, payment

    async def create_payment(
        self,
        booking_id: str,
        amount: Decimal | int | float | str,
        gateway_info: GatewayInfo | Mapping[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> Payment:
        """
        Create a payment for a booking and link it via ``Booking.payment_id``.

        Raises:
            NotFoundError: If booking not found
            InvariantViolationError: If amount differs from the booking total
            IdempotencyMismatchError: If the key was used with another body
        """
        gateway = coerce_request(GatewayInfo, gateway_info or {})
        request_body = {
            "booking_id": booking_id,
            "amount": str(amount),
            "gateway": gateway.model_dump(mode="json"),
        }

        if idempotency_key:
            payment_id = await self.idempotency.check(idempotency_key, "payment.create", request_body)
            if payment_id is not None:
                return await self.payments.get_payment_or_raise(payment_id)

        payment = await self._create_and_link(booking_id, amount, gateway)
        if not idempotency_key:
            return payment

        payment_id = payment.id
        await self.idempotency.store(idempotency_key, "payment.create", request_body, payment_id)
        return await self.payments.get_payment_or_raise(payment_id)

    async def upload_payment_proof(self, booking_id: str, proof_url: str) -> tuple[Booking, Payment]:
        """
        Record a proof of payment on the booking and move its payment to processing.

        Raises:
            NotFoundError: If booking not found
            InvariantViolationError: If the booking has no payment yet
            InvalidTransitionError: If the payment is no longer pending
        """
        booking = await self.bookings.get_booking_or_raise(booking_id)
        payment = await self.get_linked_payment(booking)
        if payment is None:
            raise InvariantViolationError(
                detail=f"Booking {booking_id} has no payment to attach a proof to",
                invariant="proof_requires_payment",
                context={"booking_id": booking_id},
            )

        return await self._record_proof(payment, proof_url)

    async def mark_payment_processing(self, payment_id: str, proof_url: str) -> tuple[Booking, Payment]:
        """Same as :meth:`upload_payment_proof`, addressed by payment."""
        payment = await self.payments.get_payment_or_raise(payment_id)
        return await self._record_proof(payment, proof_url)

    async def _record_proof(self, payment: Payment, proof_url: str) -> tuple[Booking, Payment]:
        payment = await self.payments.mark_processing(payment.id, proof_url)
        await self.bookings.record_payment_proof(payment.booking_id, proof_url)
        booking = await self._mirror(payment)

        logger.info(
            "Payment proof uploaded",
            extra={"booking_id": booking.id, "payment_id": payment.id}
        )
        return booking, payment

    async def complete_payment(self, payment_id: str) -> Payment:
        """Complete a payment and mirror the status onto its booking."""
        payment = await self.payments.mark_completed(payment_id)
        await self._mirror(payment)
        return payment

    async def fail_payment(self, payment_id: str, reason: str | None = None) -> Payment:
        """Fail a payment and mirror the status onto its booking."""
        payment = await self.payments.mark_failed(payment_id, reason)
        await self._mirror(payment)
        return payment

    async def refund_payment(self, payment_id: str) -> Payment:
        """Refund a completed payment and mirror the status onto its booking."""
        payment = await self.payments.mark_refunded(payment_id)
        await self._mirror(payment)
        return payment

    async def cancel_booking(self, booking_id: str, reason: str | None = None) -> Booking:
        """
        Cancel a booking without touching its payment.

        A payment that is still pending or processing stays as it is; the
        cancellation is logged and counted so it can be followed up.
        """
        booking = await self.bookings.cancel_booking(booking_id, reason)
        payment = await self.get_linked_payment(booking)

        in_flight = payment is not None and payment.status in IN_FLIGHT_PAYMENT_STATUSES
        metrics_collector.record_booking_cancelled(in_flight)
        if in_flight:
            logger.warning(
                "Booking cancelled while payment in flight",
                extra={
                    "booking_id": booking_id,
                    "payment_id": payment.id,
                    "payment_status": payment.status
                }
            )
        return booking

    async def reconcile_booking(self, booking_id: str) -> Booking:
        """Re-mirror the payment's id and status onto the booking if they drifted."""
        booking = await self.bookings.get_booking_or_raise(booking_id)
        payment = await self.get_linked_payment(booking)
        if payment is None:
            return booking

        if booking.payment_id == payment.id and booking.payment_status == payment.status:
            return booking

        logger.warning(
            "Reconciling booking payment state",
            extra={
                "booking_id": booking_id,
                "payment_id": payment.id,
                "cached_payment_status": booking.payment_status,
                "payment_status": payment.status
            }
        )
        return await self.bookings.update_booking(
            booking_id,
            {"payment_id": payment.id, "payment_status": payment.status},
        )

    async def resolve_payment_status(self, booking: Booking) -> PaymentStatusResolution:
        """Read payment status through the payment; the booking copy is advisory."""
        payment = await self.get_linked_payment(booking)
        cached = PaymentStatus(booking.payment_status or PaymentStatus.PENDING.value)
        resolved = PaymentStatus(payment.status) if payment is not None else cached
        return PaymentStatusResolution(
            booking_id=booking.id,
            payment_id=payment.id if payment is not None else booking.payment_id,
            payment_status=resolved,
            cached_payment_status=cached,
            stale=resolved != cached,
        )

    async def get_linked_payment(self, booking: Booking) -> Payment | None:
        """The payment referenced by payment_id, else the newest payment for the booking."""
        if booking.payment_id:
            payment = await self.payments.get_payment(booking.payment_id)
            if payment is not None:
                return payment
        return await self.payments.get_payment_by_booking_id(booking.id)

    async def _create_and_link(
        self,
        booking_id: str,
        amount: Decimal | int | float | str,
        gateway: GatewayInfo,
    ) -> Payment:
        payment = await self.payments.create_payment(booking_id, amount, gateway)
        await self._mirror(payment)
        return payment

    async def _mirror(self, payment: Payment) -> Booking:
        """Copy the payment's id and status onto its booking."""
        link = {"payment_id": payment.id, "payment_status": payment.status}
        booking_id = payment.booking_id
        try:
            return await self.bookings.update_booking(booking_id, link)
        except Exception:
            metrics_collector.record_mirror_failure()
            logger.error(
                "Failed to mirror payment status onto booking",
                extra={"booking_id": booking_id, **link}
            )
            raise
