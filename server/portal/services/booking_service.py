"""Booking ledger: creation, duplicate suppression and status transitions."""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import bounded, utcnow
from ..core.exceptions import (
    ConcurrentModificationError,
    DuplicateBookingError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..domain.booking_state import assert_booking_transition
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.payment import Payment
from ..schemas.booking import BookingChanges, CreateBookingRequest
from ..schemas.common import coerce_request

logger = logging.getLogger(__name__)

# Date field stamped when a booking enters each status
STATUS_DATE_FIELDS = {
    BookingStatus.CONFIRMED: "confirmation_date",
    BookingStatus.CANCELLED: "cancellation_date",
    BookingStatus.COMPLETED: "completion_date",
}

REQUIRED_FIELDS = frozenset({"contact_name", "contact_email", "contact_phone", "payment_status"})


def _column_values(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in fields.items()}


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_booking(self, booking_id: str) -> Booking | None:
        """Get a booking by ID, always reading the persisted row."""
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        result = await bounded(self.db.execute(stmt), "booking.get")
        return result.scalar_one_or_none()

    async def get_booking_or_raise(self, booking_id: str) -> Booking:
        """
        Get a booking by ID.

        Raises:
            NotFoundError: If booking not found
        """
        booking = await self.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=booking_id)
        return booking

    async def list_user_bookings(self, user_id: str) -> list[Booking]:
        """List a user's bookings, newest first."""
        stmt = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc())
        )
        result = await bounded(self.db.execute(stmt), "booking.list")
        return list(result.scalars().all())

    async def find_unpaid_duplicate(
        self,
        user_id: str,
        destination_id: str | None,
        event_id: str | None,
    ) -> Booking | None:
        """
        Find an open unpaid booking for the same user and item.

        Matches on destination OR event; cancelled bookings never block a
        new one.
        """
        references = []
        if destination_id:
            references.append(Booking.destination_id == destination_id)
        if event_id:
            references.append(Booking.event_id == event_id)
        if not references:
            return None

        stmt = (
            select(Booking)
            .where(
                Booking.user_id == user_id,
                or_(*references),
                Booking.payment_status == PaymentStatus.PENDING.value,
                Booking.status != BookingStatus.CANCELLED.value,
            )
            .order_by(Booking.created_at.desc())
            .limit(1)
        )
        result = await bounded(self.db.execute(stmt), "booking.duplicate_check")
        return result.scalar_one_or_none()

    async def create_booking(self, request: CreateBookingRequest | Mapping[str, Any]) -> Booking:
        """
        Create a pending booking after the duplicate guard.

        Args:
            request: Booking creation request; ``total_price`` is stored as given

        Returns:
            Persisted booking with status and payment_status ``pending``

        Raises:
            ValidationError: If the request is malformed
            DuplicateBookingError: If an unpaid booking for the same item exists
        """
        request = coerce_request(CreateBookingRequest, request)

        existing = await self.find_unpaid_duplicate(request.user_id, request.destination_id, request.event_id)
        if existing is not None:
            logger.warning(
                "Booking rejected by duplicate guard",
                extra={
                    "user_id": request.user_id,
                    "destination_id": request.destination_id,
                    "event_id": request.event_id,
                    "existing_booking_id": existing.id
                }
            )
            metrics_collector.record_duplicate_rejected("application")
            raise DuplicateBookingError(
                user_id=request.user_id,
                destination_id=request.destination_id,
                event_id=request.event_id,
                existing_booking_id=existing.id,
            )

        booking = Booking(
            **request.model_dump(exclude={"booking_date"}),
            booking_date=request.booking_date or utcnow(),
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
        )
        self.db.add(booking)

        try:
            await bounded(self.db.commit(), "booking.create")
        except IntegrityError as e:
            await self.db.rollback()
            # The partial unique index closes the window between check and insert
            winner = await self.find_unpaid_duplicate(request.user_id, request.destination_id, request.event_id)
            if winner is None:
                raise
            logger.warning(
                "Booking rejected by unique index",
                extra={
                    "user_id": request.user_id,
                    "destination_id": request.destination_id,
                    "event_id": request.event_id,
                    "existing_booking_id": winner.id
                }
            )
            metrics_collector.record_duplicate_rejected("storage")
            raise DuplicateBookingError(
                user_id=request.user_id,
                destination_id=request.destination_id,
                event_id=request.event_id,
                existing_booking_id=winner.id,
            ) from e

        metrics_collector.record_booking_created(booking.reference_type)
        logger.info(
            "Booking created",
            extra={
                "booking_id": booking.id,
                "user_id": booking.user_id,
                "reference_type": booking.reference_type,
                "number_of_people": booking.number_of_people,
                "total_price": str(booking.total_price)
            }
        )
        return booking

    async def update_booking(self, booking_id: str, changes: BookingChanges | Mapping[str, Any]) -> Booking:
        """
        Merge updatable fields into a booking.

        A ``status`` change is checked against the booking state machine and
        written conditionally on the status that was read; entering
        confirmed, cancelled or completed stamps the matching date unless
        the caller supplies one. A ``status`` equal to the current one is not
        a transition; the other fields are written guarded on it.

        Raises:
            ValidationError: If a fixed field (price, party size, references) is included
            NotFoundError: If booking not found
            InvalidTransitionError: If the status change is not allowed
            InvariantViolationError: If payment_id belongs to another booking
            DuplicateBookingError: If reopening payment collides with another unpaid booking
            ConcurrentModificationError: If the status changed since it was read
        """
        changes = coerce_request(BookingChanges, changes)
        fields = changes.model_dump(exclude_unset=True)
        if fields.get("status", ...) is None:
            fields.pop("status")
        cleared = sorted(key for key in REQUIRED_FIELDS if key in fields and fields[key] is None)
        if cleared:
            raise ValidationError(
                detail=f"Required booking fields cannot be cleared: {', '.join(cleared)}",
                errors=[{"path": key, "message": "Field cannot be null"} for key in cleared],
            )

        booking = await self.get_booking_or_raise(booking_id)
        if not fields:
            return booking

        if fields.get("payment_id") is not None:
            await self._check_payment_belongs(booking_id, fields["payment_id"])

        target = fields.get("status")
        if target is None:
            return await self._write(booking, _column_values(fields), expected_status=None)

        if BookingStatus(target).value == booking.status:
            # Unchanged status rides along with other edits; only guard on it
            fields.pop("status")
            if not fields:
                return booking
            return await self._write(booking, _column_values(fields), expected_status=booking.status)

        date_field = STATUS_DATE_FIELDS.get(BookingStatus(target))
        if date_field and fields.get(date_field) is None:
            fields[date_field] = utcnow()
        return await self._transition(booking, BookingStatus(target), _column_values(fields))

    async def cancel_booking(self, booking_id: str, reason: str | None = None) -> Booking:
        """
        Cancel a pending or confirmed booking.

        The linked payment is left untouched.

        Raises:
            NotFoundError: If booking not found
            InvalidTransitionError: If the booking is already cancelled or completed
        """
        booking = await self.get_booking_or_raise(booking_id)
        return await self._transition(
            booking,
            BookingStatus.CANCELLED,
            {"cancellation_date": utcnow(), "cancellation_reason": reason},
        )

    async def confirm_booking(self, booking_id: str) -> Booking:
        """Move a pending booking to confirmed."""
        booking = await self.get_booking_or_raise(booking_id)
        return await self._transition(booking, BookingStatus.CONFIRMED, {"confirmation_date": utcnow()})

    async def complete_booking(self, booking_id: str) -> Booking:
        """Move a confirmed booking to completed."""
        booking = await self.get_booking_or_raise(booking_id)
        return await self._transition(booking, BookingStatus.COMPLETED, {"completion_date": utcnow()})

    async def record_payment_proof(self, booking_id: str, proof_url: str) -> Booking:
        """Attach an uploaded proof of payment to the booking."""
        if not proof_url:
            raise ValidationError(detail="proof_url is required")
        booking = await self.get_booking_or_raise(booking_id)
        return await self._write(
            booking,
            {"payment_proof_url": proof_url, "payment_proof_uploaded_at": utcnow()},
            expected_status=None,
        )

    async def _check_payment_belongs(self, booking_id: str, payment_id: str) -> None:
        stmt = select(Payment.booking_id).where(Payment.id == payment_id)
        result = await bounded(self.db.execute(stmt), "booking.payment_link_check")
        owner = result.scalar_one_or_none()
        if owner != booking_id:
            raise InvariantViolationError(
                detail=f"Payment {payment_id} does not belong to booking {booking_id}",
                invariant="payment_links_back_to_booking",
                context={"booking_id": booking_id, "payment_id": payment_id, "payment_booking_id": owner},
            )

    async def _transition(self, booking: Booking, target: BookingStatus, values: dict[str, Any]) -> Booking:
        current = booking.status
        assert_booking_transition(booking.id, current, target.value)

        updated = await self._write(booking, {**values, "status": target.value}, expected_status=current)

        metrics_collector.record_booking_transition(current or BookingStatus.PENDING.value, target.value)
        logger.info(
            "Booking status changed",
            extra={
                "booking_id": updated.id,
                "from_status": current,
                "to_status": target.value
            }
        )
        return updated

    async def _write(self, booking: Booking, values: dict[str, Any], expected_status: str | None) -> Booking:
        """Issue an UPDATE for one booking, guarded on the status read when one is given."""
        # Rollback expires the instance, so keep the key as a plain value
        booking_id = booking.id
        user_id, destination_id, event_id = booking.user_id, booking.destination_id, booking.event_id
        stmt = update(Booking).where(Booking.id == booking_id)
        if expected_status is not None:
            stmt = stmt.where(Booking.status == expected_status)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        try:
            result = await bounded(self.db.execute(stmt), "booking.update")
        except IntegrityError as e:
            await self.db.rollback()
            # Reopening an unpaid booking can collide with another unpaid one
            winner = await self.find_unpaid_duplicate(user_id, destination_id, event_id)
            if winner is None:
                raise
            logger.warning(
                "Booking update rejected by unique index",
                extra={"booking_id": booking_id, "existing_booking_id": winner.id}
            )
            metrics_collector.record_duplicate_rejected("storage")
            raise DuplicateBookingError(
                user_id=user_id,
                destination_id=destination_id,
                event_id=event_id,
                existing_booking_id=winner.id,
            ) from e

        if result.rowcount == 0:
            await self.db.rollback()
            if await self.get_booking(booking_id) is None:
                raise NotFoundError(resource_type="booking", resource_id=booking_id)
            logger.warning(
                "Booking changed concurrently",
                extra={"booking_id": booking_id, "expected_status": expected_status}
            )
            raise ConcurrentModificationError(
                entity="booking",
                entity_id=booking_id,
                expected_status=expected_status,
            )

        await bounded(self.db.commit(), "booking.update")
        return await self.get_booking_or_raise(booking_id)
