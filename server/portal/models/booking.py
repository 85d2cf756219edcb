"""Booking model and lifecycle status enumerations."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, utcnow

PENDING_UNCANCELLED = text("payment_status = 'pending' AND status <> 'cancelled'")


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    """Payment status enumeration, shared by payments and the booking's cached copy."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Booking(Base):
    """A user's reservation of a destination visit or an event ticket."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Owner and booked item; exactly one of destination_id / event_id is set on creation
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    destination_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    event_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    # Commercial terms, fixed at creation
    number_of_people: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Scheduling
    booking_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    preferred_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Contact
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(320), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(64), nullable=False)

    # Opaque display data, echoed back but never interpreted by the lifecycle
    booking_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    selected_ticket_type: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING.value,
        index=True
    )
    payment_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING.value,
        index=True
    )
    payment_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    payment_proof_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_proof_uploaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmation_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("number_of_people >= 1", name="ck_booking_people_positive"),
        CheckConstraint("total_price >= 0", name="ck_booking_total_price_non_negative"),
        CheckConstraint(
            "destination_id IS NULL OR event_id IS NULL",
            name="ck_booking_single_reference"
        ),
        # Storage-level backing for the duplicate guard: one unpaid booking per user and item
        Index(
            "uq_bookings_unpaid_user_destination",
            "user_id",
            "destination_id",
            unique=True,
            postgresql_where=PENDING_UNCANCELLED,
            sqlite_where=PENDING_UNCANCELLED,
        ),
        Index(
            "uq_bookings_unpaid_user_event",
            "user_id",
            "event_id",
            unique=True,
            postgresql_where=PENDING_UNCANCELLED,
            sqlite_where=PENDING_UNCANCELLED,
        ),
    )

    @property
    def reference_type(self) -> str:
        """'destination', 'event', or 'unknown' for legacy rows with neither."""
        if self.destination_id:
            return "destination"
        if self.event_id:
            return "event"
        return "unknown"

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, user_id={self.user_id}, status={self.status}, "
            f"payment_status={self.payment_status}, total_price={self.total_price})>"
        )
