"""Read-only catalog entries referenced by bookings and itineraries."""

from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class Destination(Base):
    """Bookable destination; only the fields the lifecycle denormalises are mapped."""

    __tablename__ = "destinations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Destination(id={self.id}, name='{self.name}')>"


class Event(Base):
    """Ticketed event."""

    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payment_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title='{self.title}')>"
