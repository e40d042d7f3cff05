# =============================================================================
# app/routers/availability.py - Slot Availability Endpoints
# =============================================================================
# Public endpoints: anyone browsing a venue can see its free slots.
# =============================================================================

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel, ConfigDict, Field

from core.models.venue import Slot
from core.services.availability_service import AvailabilityService

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class AvailabilityRequest(BaseModel):
    """Venue and date to compute slots for."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"venueId": "550e8400-e29b-41d4-a716-446655440000", "date": "2026-01-19"}},
    )

    venue_id: str = Field(..., alias="venueId", min_length=1)
    on_date: date = Field(..., alias="date")


class AvailabilityResponse(BaseModel):
    availability: list[Slot]


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/availability", response_model=AvailabilityResponse)
async def get_availability(request: AvailabilityRequest):
    """
    Get bookable slots for a venue on a date.

    Closed weekdays, blocked dates and dates outside the venue's booking
    window return an empty list.
    """
    slots = AvailabilityService.get_availability(request.venue_id, request.on_date)
    return AvailabilityResponse(availability=slots)


@router.get("/venues/{venue_id}/availability", response_model=AvailabilityResponse)
async def get_venue_availability(
    venue_id: Annotated[str, Path(description="Venue UUID")],
    on_date: Annotated[date, Query(alias="date", description="Date as YYYY-MM-DD")],
):
    """Same as POST /availability, addressable by URL."""
    slots = AvailabilityService.get_availability(venue_id, on_date)
    return AvailabilityResponse(availability=slots)
