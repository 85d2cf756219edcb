"""Itinerary-related Pydantic schemas.

Field names are exposed in camelCase (``isPublic``, ``shareCode``,
``startDate``) to match the stored itinerary documents; snake_case names are
accepted on input as well.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

from ..domain.trip import trip_length_days


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateItineraryRequest(CamelModel):
    """Request schema for creating an empty itinerary."""

    user_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)


class UpdateItineraryRequest(CamelModel):
    """Request schema for updating an itinerary; omitted fields are left untouched."""

    itinerary_id: str = Field(..., description="Itinerary to update")
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    is_public: Optional[bool] = Field(None, description="Publishing issues a share code once")


class AddDestinationRequest(CamelModel):
    """Request schema for appending a destination to an itinerary."""

    itinerary_id: str
    destination_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    start_date: date
    end_date: date
    notes: Optional[str] = Field(None, max_length=5000)

    @model_validator(mode="after")
    def check_dates(self) -> "AddDestinationRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class UpdateDestinationRequest(CamelModel):
    """Request schema for editing an itinerary destination's dates or notes."""

    id: str = Field(..., description="Itinerary destination ID")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=5000)


class ItineraryRef(CamelModel):
    """Request schema addressing a single itinerary."""

    itinerary_id: str


class DestinationRef(CamelModel):
    """Request schema addressing a single itinerary destination."""

    id: str


class ShareCodeRef(CamelModel):
    """Request schema for resolving a public share code."""

    share_code: str = Field(..., min_length=1, max_length=32)


class ListItinerariesRequest(CamelModel):
    """Request schema for listing a user's itineraries."""

    user_id: str = Field(..., min_length=1)


class ItineraryDestination(CamelModel):
    """Itinerary destination response schema."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    itinerary_id: str
    destination_id: str
    name: str
    start_date: date
    end_date: date
    notes: Optional[str]
    order: int
    created_at: datetime
    updated_at: datetime


class Itinerary(CamelModel):
    """Itinerary response schema with destinations in ascending order."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    user_id: str
    title: str
    description: Optional[str]
    is_public: bool
    share_code: Optional[str]
    destinations: list[ItineraryDestination] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @computed_field(alias="totalDays")
    @property
    def total_days(self) -> int:
        return trip_length_days(self.destinations)
