"""Itinerary and itinerary destination models."""

from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow


class Itinerary(Base):
    """An ordered trip plan owned by a user."""

    __tablename__ = "itineraries"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Sharing; share_code is issued on first publication and kept from then on
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    share_code: Mapped[str | None] = mapped_column(String(32), nullable=True, unique=True, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    # Relationships; rows are removed by the store's ON DELETE CASCADE
    destinations: Mapped[list["ItineraryDestination"]] = relationship(
        "ItineraryDestination",
        back_populates="itinerary",
        order_by=lambda: [ItineraryDestination.order, ItineraryDestination.created_at],
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("length(title) > 0", name="ck_itinerary_title_not_empty"),
    )

    def __repr__(self) -> str:
        return (
            f"<Itinerary(id={self.id}, user_id={self.user_id}, title='{self.title}', "
            f"is_public={self.is_public})>"
        )


class ItineraryDestination(Base):
    """A catalog destination placed at a position in an itinerary."""

    __tablename__ = "itinerary_destinations"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    itinerary_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("itineraries.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    destination_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Assigned as max + 1 on insert and never renumbered, so gaps are expected
    order: Mapped[int] = mapped_column("order", Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    itinerary: Mapped["Itinerary"] = relationship("Itinerary", back_populates="destinations")

    __table_args__ = (
        UniqueConstraint("itinerary_id", "order", name="uq_itinerary_destination_order"),
        CheckConstraint('"order" >= 0', name="ck_itinerary_destination_order_non_negative"),
        CheckConstraint("end_date >= start_date", name="ck_itinerary_destination_dates"),
    )

    def __repr__(self) -> str:
        return (
            f"<ItineraryDestination(id={self.id}, itinerary_id={self.itinerary_id}, "
            f"name='{self.name}', order={self.order})>"
        )
