"""Idempotency record model definition."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, utcnow


class IdempotencyRecord(Base):
    """Remembers which resource a client idempotency key produced for an operation."""

    __tablename__ = "idempotency_records"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Key + operation identify the logical request
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(100), nullable=False)

    # SHA-256 of the canonical request body, to detect key reuse with a different payload
    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # What the first request created
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("length(idempotency_key) > 0", name="ck_idempotency_key_not_empty"),
        CheckConstraint("length(request_hash) = 64", name="ck_idempotency_hash_length"),
        UniqueConstraint("idempotency_key", "operation", name="uq_idempotency_key_operation"),
    )

    def __repr__(self) -> str:
        return (
            f"<IdempotencyRecord(key='{self.idempotency_key}', operation='{self.operation}', "
            f"resource_id={self.resource_id}, expires_at={self.expires_at})>"
        )
