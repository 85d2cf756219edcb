"""Idempotency service for client-retried create operations."""

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import bounded, utcnow
from ..core.exceptions import PROBLEM_BASE_URI, ProblemDetailsException
from ..models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)


class IdempotencyMismatchError(ProblemDetailsException):
    """Exception when idempotency key is reused with different request body."""

    def __init__(self, idempotency_key: str, operation: str):
        super().__init__(
            status_code=422,
            title="Idempotency Key Mismatch",
            detail=(
                f"Idempotency key '{idempotency_key}' was already used for '{operation}' "
                "with a different request body"
            ),
            type_uri=f"{PROBLEM_BASE_URI}/idempotency-key-mismatch",
            extensions={
                "code": "IDEMPOTENCY_KEY_MISMATCH",
                "idempotency_key": idempotency_key,
                "operation": operation,
            },
        )


class IdempotencyService:
    """Maps (idempotency key, operation) to the resource the first request created."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def compute_request_hash(request_body: dict[str, Any]) -> str:
        """Compute SHA-256 hash of normalized request body."""
        normalized = json.dumps(request_body, sort_keys=True, separators=(',', ':'), default=str)
        return hashlib.sha256(normalized.encode('utf-8')).hexdigest()

    async def check(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any],
    ) -> str | None:
        """
        Look up an unexpired record for this key and operation.

        Args:
            idempotency_key: Client-supplied key
            operation: Logical operation name, e.g. "booking.place"
            request_body: Request body to hash and compare

        Returns:
            ID of the resource created by the first request, or None if the
            key has not been seen

        Raises:
            IdempotencyMismatchError: If the key was used with a different body
        """
        request_hash = self.compute_request_hash(request_body)

        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.idempotency_key == idempotency_key,
            IdempotencyRecord.operation == operation,
            IdempotencyRecord.expires_at > utcnow()
        )
        result = await bounded(self.db.execute(stmt), "idempotency.check")
        existing_record = result.scalar_one_or_none()

        if existing_record is None:
            return None

        if existing_record.request_hash != request_hash:
            logger.warning(
                "Idempotency key mismatch",
                extra={
                    "idempotency_key": idempotency_key,
                    "operation": operation,
                    "existing_hash": existing_record.request_hash[:8],
                    "new_hash": request_hash[:8]
                }
            )
            raise IdempotencyMismatchError(idempotency_key, operation)

        logger.info(
            "Replaying idempotent request",
            extra={
                "idempotency_key": idempotency_key,
                "operation": operation,
                "resource_id": existing_record.resource_id
            }
        )
        return existing_record.resource_id

    async def store(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any],
        resource_id: str,
    ) -> None:
        """Remember the resource created for this key and operation."""
        expires_at = utcnow() + timedelta(seconds=settings.idempotency_ttl_seconds)
        record = IdempotencyRecord(
            idempotency_key=idempotency_key,
            operation=operation,
            request_hash=self.compute_request_hash(request_body),
            resource_id=resource_id,
            expires_at=expires_at
        )

        try:
            self.db.add(record)
            await bounded(self.db.commit(), "idempotency.store")
        except IntegrityError as e:
            # A concurrent request with the same key stored first; its record wins
            await self.db.rollback()
            logger.info(
                "Idempotency record already exists (race condition)",
                extra={
                    "idempotency_key": idempotency_key,
                    "operation": operation,
                    "error": str(e.orig)
                }
            )
            return

        logger.info(
            "Stored idempotency record",
            extra={
                "idempotency_key": idempotency_key,
                "operation": operation,
                "resource_id": resource_id,
                "expires_at": expires_at.isoformat()
            }
        )

    async def cleanup_expired_records(self) -> int:
        """
        Delete expired idempotency records.

        Returns:
            Number of records deleted
        """
        stmt = (
            delete(IdempotencyRecord)
            .where(IdempotencyRecord.expires_at <= utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await bounded(self.db.execute(stmt), "idempotency.cleanup")
        await bounded(self.db.commit(), "idempotency.cleanup")

        if result.rowcount:
            logger.info(
                "Cleaned up expired idempotency records",
                extra={"deleted_count": result.rowcount}
            )
        return result.rowcount
