"""Payment tracker: payment creation and the payment state machine."""

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import bounded, utcnow
from ..core.exceptions import ConcurrentModificationError, InvariantViolationError, NotFoundError
from ..core.observability import metrics_collector
from ..domain.payment_state import assert_payment_transition
from ..models.booking import Booking, PaymentStatus
from ..models.payment import Payment
from ..schemas.common import coerce_request
from ..schemas.payment import GatewayInfo

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class PaymentService:
    """Service for payment-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_payment(self, payment_id: str) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        result = await bounded(self.db.execute(stmt), "payment.get")
        return result.scalar_one_or_none()

    async def get_payment_or_raise(self, payment_id: str) -> Payment:
        """
        Get a payment by ID.

        Raises:
            NotFoundError: If payment not found
        """
        payment = await self.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(resource_type="payment", resource_id=payment_id)
        return payment

    async def get_payment_by_booking_id(self, booking_id: str) -> Payment | None:
        """Most recently created payment for a booking, if any."""
        stmt = (
            select(Payment)
            .where(Payment.booking_id == booking_id)
            .order_by(Payment.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await bounded(self.db.execute(stmt), "payment.get_by_booking")
        return result.scalar_one_or_none()

    async def create_payment(
        self,
        booking_id: str,
        amount: Decimal | int | float | str,
        gateway_info: GatewayInfo | Mapping[str, Any] | None = None,
    ) -> Payment:
        """
        Create a pending payment for a booking's full total.

        Args:
            booking_id: Booking being paid
            amount: Must equal the booking's total_price
            gateway_info: Method, gateway and external payment page reference

        Returns:
            Persisted payment with status ``pending``

        Raises:
            NotFoundError: If booking not found
            InvariantViolationError: If amount differs from the booking total
        """
        gateway = coerce_request(GatewayInfo, gateway_info or {})

        stmt = select(Booking.total_price).where(Booking.id == booking_id)
        result = await bounded(self.db.execute(stmt), "payment.booking_lookup")
        total_price = result.scalar_one_or_none()
        if total_price is None:
            raise NotFoundError(resource_type="booking", resource_id=booking_id)

        requested = Decimal(str(amount)).quantize(CENTS)
        if requested != Decimal(total_price).quantize(CENTS):
            logger.warning(
                "Payment amount does not match booking total",
                extra={"booking_id": booking_id, "amount": str(requested), "total_price": str(total_price)}
            )
            raise InvariantViolationError(
                detail=f"Payment amount {requested} does not equal booking total {total_price}",
                invariant="payment_amount_equals_booking_total",
                context={"booking_id": booking_id, "amount": str(requested), "total_price": str(total_price)},
            )

        payment = Payment(
            booking_id=booking_id,
            amount=requested,
            status=PaymentStatus.PENDING.value,
            payment_method=gateway.payment_method,
            payment_gateway=gateway.payment_gateway,
            payment_gateway_reference=gateway.payment_gateway_reference,
            payment_intent_id=gateway.payment_intent_id,
            payment_details=dict(gateway.payment_details or {}),
        )
        self.db.add(payment)
        await bounded(self.db.commit(), "payment.create")

        logger.info(
            "Payment created",
            extra={
                "payment_id": payment.id,
                "booking_id": booking_id,
                "amount": str(requested),
                "payment_gateway": payment.payment_gateway
            }
        )
        return payment

    async def mark_processing(self, payment_id: str, proof_url: str) -> Payment:
        """Record an uploaded proof; only valid from ``pending``."""
        return await self._transition(
            payment_id,
            PaymentStatus.PROCESSING,
            {
                "proof_uploaded": True,
                "proof_uploaded_at": utcnow().isoformat(),
                "proof_url": proof_url,
            },
        )

    async def mark_completed(self, payment_id: str) -> Payment:
        """Complete a pending or processing payment."""
        return await self._transition(
            payment_id,
            PaymentStatus.COMPLETED,
            {"completed_at": utcnow().isoformat()},
        )

    async def mark_failed(self, payment_id: str, reason: str | None = None) -> Payment:
        """Fail a pending or processing payment."""
        return await self._transition(
            payment_id,
            PaymentStatus.FAILED,
            {"failed_at": utcnow().isoformat(), "failure_reason": reason},
        )

    async def mark_refunded(self, payment_id: str) -> Payment:
        """Refund a completed payment."""
        return await self._transition(
            payment_id,
            PaymentStatus.REFUNDED,
            {"refunded_at": utcnow().isoformat()},
        )

    async def _transition(self, payment_id: str, target: PaymentStatus, details: dict[str, Any]) -> Payment:
        """
        Move a payment to ``target`` and merge ``details`` into payment_details.

        The write is conditional on the status read here, so a transition
        that raced with another one fails instead of overwriting it.

        Raises:
            NotFoundError: If payment not found
            InvalidTransitionError: If the state machine has no such edge
            ConcurrentModificationError: If the status changed since it was read
        """
        payment = await self.get_payment_or_raise(payment_id)
        current = payment.status
        assert_payment_transition(payment_id, current, target.value)

        merged = {**(payment.payment_details or {}), **details}
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == current)
            .values(status=target.value, payment_details=merged)
            .execution_options(synchronize_session=False)
        )
        result = await bounded(self.db.execute(stmt), "payment.transition")
        if result.rowcount == 0:
            await self.db.rollback()
            if await self.get_payment(payment_id) is None:
                raise NotFoundError(resource_type="payment", resource_id=payment_id)
            logger.warning(
                "Payment changed concurrently",
                extra={"payment_id": payment_id, "expected_status": current}
            )
            raise ConcurrentModificationError(entity="payment", entity_id=payment_id, expected_status=current)

        await bounded(self.db.commit(), "payment.transition")

        metrics_collector.record_payment_transition(current, target.value)
        logger.info(
            "Payment status changed",
            extra={
                "payment_id": payment_id,
                "booking_id": payment.booking_id,
                "from_status": current,
                "to_status": target.value
            }
        )
        return await self.get_payment_or_raise(payment_id)
