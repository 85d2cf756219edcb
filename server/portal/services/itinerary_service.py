"""Itinerary sequencer: ordered destinations and public share codes."""

import logging
import secrets
import string
from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.config import settings
from ..core.database import bounded, utcnow
from ..core.exceptions import ConcurrentModificationError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..models.itinerary import Itinerary, ItineraryDestination
from ..schemas.common import coerce_request
from ..schemas.itinerary import (
    AddDestinationRequest,
    CreateItineraryRequest,
    UpdateDestinationRequest,
    UpdateItineraryRequest,
)

logger = logging.getLogger(__name__)

SHARE_CODE_ALPHABET = string.ascii_lowercase + string.digits


class ItineraryService:
    """Service for itinerary-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _generate_share_code(self) -> str:
        """Generate a random share code."""
        return ''.join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(settings.share_code_length))

    async def create_itinerary(self, request: CreateItineraryRequest | Mapping[str, Any]) -> Itinerary:
        """Create a private itinerary with no destinations."""
        request = coerce_request(CreateItineraryRequest, request)

        itinerary = Itinerary(
            user_id=request.user_id,
            title=request.title,
            description=request.description,
            is_public=False,
        )
        self.db.add(itinerary)
        await bounded(self.db.commit(), "itinerary.create")

        logger.info(
            "Itinerary created",
            extra={"itinerary_id": itinerary.id, "user_id": itinerary.user_id}
        )
        return await self.get_itinerary(itinerary.id)

    async def get_itinerary(self, itinerary_id: str) -> Itinerary:
        """
        Get an itinerary with its destinations in ascending order.

        Raises:
            NotFoundError: If itinerary not found
        """
        stmt = (
            select(Itinerary)
            .options(selectinload(Itinerary.destinations))
            .where(Itinerary.id == itinerary_id)
            .execution_options(populate_existing=True)
        )
        result = await bounded(self.db.execute(stmt), "itinerary.get")
        itinerary = result.scalar_one_or_none()
        if itinerary is None:
            raise NotFoundError(resource_type="itinerary", resource_id=itinerary_id)
        return itinerary

    async def get_itinerary_by_share_code(self, share_code: str) -> Itinerary:
        """
        Resolve a share code to a public itinerary.

        A code whose itinerary has been made private again resolves to
        not-found, exactly like an unknown code.
        """
        stmt = (
            select(Itinerary)
            .options(selectinload(Itinerary.destinations))
            .where(Itinerary.share_code == share_code, Itinerary.is_public.is_(True))
            .execution_options(populate_existing=True)
        )
        result = await bounded(self.db.execute(stmt), "itinerary.get_shared")
        itinerary = result.scalar_one_or_none()
        if itinerary is None:
            raise NotFoundError(resource_type="shared itinerary", resource_id=share_code)
        return itinerary

    async def list_user_itineraries(self, user_id: str) -> list[Itinerary]:
        """List a user's itineraries, newest first."""
        stmt = (
            select(Itinerary)
            .options(selectinload(Itinerary.destinations))
            .where(Itinerary.user_id == user_id)
            .order_by(Itinerary.created_at.desc())
        )
        result = await bounded(self.db.execute(stmt), "itinerary.list")
        return list(result.scalars().all())

    async def update_itinerary(self, request: UpdateItineraryRequest | Mapping[str, Any]) -> Itinerary:
        """
        Update title, description and visibility.

        Publishing issues a share code in the same UPDATE unless one already
        exists; making the itinerary private keeps the code.

        Raises:
            NotFoundError: If itinerary not found
            ConcurrentModificationError: If no unique share code could be issued
        """
        request = coerce_request(UpdateItineraryRequest, request)
        values = request.model_dump(exclude_unset=True, exclude={"itinerary_id"})
        if "title" in values and values["title"] is None:
            raise ValidationError(
                detail="title cannot be cleared",
                errors=[{"path": "title", "message": "Field cannot be null"}],
            )
        if "is_public" in values and values["is_public"] is None:
            values.pop("is_public")
        if not values:
            return await self.get_itinerary(request.itinerary_id)

        attempts = settings.order_assignment_attempts
        for _ in range(attempts):
            if values.get("is_public"):
                values["share_code"] = func.coalesce(Itinerary.share_code, self._generate_share_code())

            stmt = (
                update(Itinerary)
                .where(Itinerary.id == request.itinerary_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            try:
                result = await bounded(self.db.execute(stmt), "itinerary.update")
            except IntegrityError:
                # Share code collision with another itinerary; draw a new one
                await self.db.rollback()
                continue

            if result.rowcount == 0:
                await self.db.rollback()
                raise NotFoundError(resource_type="itinerary", resource_id=request.itinerary_id)
            await bounded(self.db.commit(), "itinerary.update")
            break
        else:
            raise ConcurrentModificationError(
                entity="itinerary",
                entity_id=request.itinerary_id,
                detail=f"Could not issue a unique share code after {attempts} attempts",
            )

        itinerary = await self.get_itinerary(request.itinerary_id)
        logger.info(
            "Itinerary updated",
            extra={
                "itinerary_id": itinerary.id,
                "is_public": itinerary.is_public,
                "has_share_code": itinerary.share_code is not None
            }
        )
        return itinerary

    async def delete_itinerary(self, itinerary_id: str) -> None:
        """Delete an itinerary; the store cascades to its destinations."""
        stmt = delete(Itinerary).where(Itinerary.id == itinerary_id)
        result = await bounded(self.db.execute(stmt), "itinerary.delete")
        if result.rowcount == 0:
            await self.db.rollback()
            raise NotFoundError(resource_type="itinerary", resource_id=itinerary_id)
        await bounded(self.db.commit(), "itinerary.delete")
        logger.info("Itinerary deleted", extra={"itinerary_id": itinerary_id})

    async def add_destination(self, request: AddDestinationRequest | Mapping[str, Any]) -> ItineraryDestination:
        """
        Append a destination at ``max(order) + 1``.

        The order is computed inside the INSERT itself; if a concurrent
        insert took the same position, the unique (itinerary_id, order)
        constraint rejects this one and it is retried.

        Raises:
            ValidationError: If end_date precedes start_date
            NotFoundError: If itinerary not found
            ConcurrentModificationError: If no order could be assigned
        """
        request = coerce_request(AddDestinationRequest, request)
        await self.get_itinerary(request.itinerary_id)

        next_order = (
            select(func.coalesce(func.max(ItineraryDestination.order), -1) + 1)
            .where(ItineraryDestination.itinerary_id == request.itinerary_id)
            .scalar_subquery()
        )

        attempts = settings.order_assignment_attempts
        for attempt in range(1, attempts + 1):
            entry_id = str(uuid4())
            now = utcnow()
            stmt = insert(ItineraryDestination).values(
                id=entry_id,
                itinerary_id=request.itinerary_id,
                destination_id=request.destination_id,
                name=request.name,
                start_date=request.start_date,
                end_date=request.end_date,
                notes=request.notes,
                order=next_order,
                created_at=now,
                updated_at=now,
            )
            try:
                await bounded(self.db.execute(stmt), "itinerary.add_destination")
                await bounded(self.db.commit(), "itinerary.add_destination")
            except IntegrityError:
                await self.db.rollback()
                # The itinerary may have been deleted in the meantime
                await self.get_itinerary(request.itinerary_id)
                metrics_collector.record_order_retry()
                logger.info(
                    "Destination order taken, retrying",
                    extra={"itinerary_id": request.itinerary_id, "attempt": attempt}
                )
                continue

            entry = await self._get_destination_or_raise(entry_id)
            metrics_collector.record_destination_added()
            logger.info(
                "Destination added to itinerary",
                extra={
                    "itinerary_id": request.itinerary_id,
                    "entry_id": entry.id,
                    "destination_id": entry.destination_id,
                    "order": entry.order
                }
            )
            return entry

        raise ConcurrentModificationError(
            entity="itinerary",
            entity_id=request.itinerary_id,
            detail=f"Could not assign a destination order after {attempts} attempts",
        )

    async def update_destination(
        self,
        request: UpdateDestinationRequest | Mapping[str, Any],
    ) -> ItineraryDestination:
        """Change an entry's dates or notes; its order is never touched."""
        request = coerce_request(UpdateDestinationRequest, request)
        entry = await self._get_destination_or_raise(request.id)

        values = request.model_dump(exclude_unset=True, exclude={"id"})
        start_date = values.get("start_date") or entry.start_date
        end_date = values.get("end_date") or entry.end_date
        if end_date < start_date:
            raise ValidationError(
                detail="end_date must be on or after start_date",
                errors=[{"path": "end_date", "message": "Must be on or after start_date"}],
            )
        values["start_date"] = start_date
        values["end_date"] = end_date

        stmt = (
            update(ItineraryDestination)
            .where(ItineraryDestination.id == request.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await bounded(self.db.execute(stmt), "itinerary.update_destination")
        if result.rowcount == 0:
            await self.db.rollback()
            raise NotFoundError(resource_type="itinerary destination", resource_id=request.id)
        await bounded(self.db.commit(), "itinerary.update_destination")
        return await self._get_destination_or_raise(request.id)

    async def remove_destination(self, entry_id: str) -> None:
        """Delete one itinerary destination; remaining orders keep their gaps."""
        stmt = delete(ItineraryDestination).where(ItineraryDestination.id == entry_id)
        result = await bounded(self.db.execute(stmt), "itinerary.remove_destination")
        if result.rowcount == 0:
            await self.db.rollback()
            raise NotFoundError(resource_type="itinerary destination", resource_id=entry_id)
        await bounded(self.db.commit(), "itinerary.remove_destination")
        logger.info("Destination removed from itinerary", extra={"entry_id": entry_id})

    async def _get_destination_or_raise(self, entry_id: str) -> ItineraryDestination:
        stmt = (
            select(ItineraryDestination)
            .where(ItineraryDestination.id == entry_id)
            .execution_options(populate_existing=True)
        )
        result = await bounded(self.db.execute(stmt), "itinerary.get_destination")
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError(resource_type="itinerary destination", resource_id=entry_id)
        return entry
