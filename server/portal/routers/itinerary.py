"""Itinerary router for trip planning operations."""

import logging

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.itinerary import (
    AddDestinationRequest,
    CreateItineraryRequest,
    DestinationRef,
    Itinerary,
    ItineraryDestination,
    ItineraryRef,
    ListItinerariesRequest,
    ShareCodeRef,
    UpdateDestinationRequest,
    UpdateItineraryRequest,
)
from ..services.itinerary_service import ItineraryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/itinerary", tags=["itinerary"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


def _itinerary_response(itinerary_model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=Itinerary.model_validate(itinerary_model).model_dump(mode="json", by_alias=True)
    )


def _destination_response(entry_model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ItineraryDestination.model_validate(entry_model).model_dump(mode="json", by_alias=True)
    )


@router.post("/create", response_model=Itinerary, status_code=201)
async def create_itinerary(request: CreateItineraryRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Create an empty, private itinerary."""
    itinerary = await ItineraryService(db).create_itinerary(request)
    return _itinerary_response(itinerary, status_code=201)


@router.post("/get", response_model=Itinerary)
async def get_itinerary(request: ItineraryRef, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Get an itinerary with destinations in ascending order."""
    itinerary = await ItineraryService(db).get_itinerary(request.itinerary_id)
    return _itinerary_response(itinerary)


@router.post("/list", response_model=list[Itinerary])
async def list_itineraries(request: ListItinerariesRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """List a user's itineraries, newest first."""
    itineraries = await ItineraryService(db).list_user_itineraries(request.user_id)
    return JSONResponse(
        status_code=200,
        content=[Itinerary.model_validate(i).model_dump(mode="json", by_alias=True) for i in itineraries]
    )


@router.post("/update", response_model=Itinerary)
async def update_itinerary(request: UpdateItineraryRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Update title, description or visibility; publishing issues a share code once."""
    itinerary = await ItineraryService(db).update_itinerary(request)
    return _itinerary_response(itinerary)


@router.post("/delete", status_code=204)
async def delete_itinerary(request: ItineraryRef, db: AsyncSession = DB_DEPENDENCY) -> Response:
    """Delete an itinerary and its destinations."""
    await ItineraryService(db).delete_itinerary(request.itinerary_id)
    return Response(status_code=204)


@router.post("/add-destination", response_model=ItineraryDestination, status_code=201)
async def add_destination(request: AddDestinationRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Append a destination after the current last one."""
    entry = await ItineraryService(db).add_destination(request)
    return _destination_response(entry, status_code=201)


@router.post("/update-destination", response_model=ItineraryDestination)
async def update_destination(request: UpdateDestinationRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Change a destination's dates or notes."""
    entry = await ItineraryService(db).update_destination(request)
    return _destination_response(entry)


@router.post("/remove-destination", status_code=204)
async def remove_destination(request: DestinationRef, db: AsyncSession = DB_DEPENDENCY) -> Response:
    """Remove one destination; the others keep their order values."""
    await ItineraryService(db).remove_destination(request.id)
    return Response(status_code=204)


@router.post("/shared", response_model=Itinerary)
async def get_shared_itinerary(request: ShareCodeRef, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Resolve a share code to a public itinerary."""
    itinerary = await ItineraryService(db).get_itinerary_by_share_code(request.share_code)

    logger.info(
        "Shared itinerary viewed",
        extra={"itinerary_id": itinerary.id, "share_code": request.share_code}
    )

    return _itinerary_response(itinerary)
