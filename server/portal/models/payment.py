"""Payment model definition."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, utcnow
from .booking import PaymentStatus


class Payment(Base):
    """Settlement record for a booking's total price."""

    __tablename__ = "payments"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Owning booking
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING.value,
        index=True
    )

    # Pointer to an externally hosted payment page; no gateway API is called
    payment_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_gateway: Mapped[str | None] = mapped_column(String(64), nullable=True, default="manual")
    payment_gateway_reference: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Accumulates proof metadata and timestamps; merged, never replaced
    payment_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payment_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, booking_id={self.booking_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
