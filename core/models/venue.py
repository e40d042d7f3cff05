# =============================================================================
# core/models/venue.py - Venue Scheduling Schemas
# =============================================================================
# Rows the availability engine reads:
# - VenueHours: weekly open/close schedule (one row per weekday)
# - BlockedDate: a calendar date the venue is fully closed
# - VenuePolicy: scheduling parameters (defaults apply when a venue has none)
# - Slot: derived, never persisted
# =============================================================================

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

TIME_PATTERN = r"^\d{2}:\d{2}(:\d{2})?$"


class Venue(BaseModel):
    """The subset of a venue row the booking flow needs."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    owner_id: str | None = None
    location: str | None = None
    price_per_hour: float = Field(default=0, ge=0)
    make_webhook_url: str | None = None
    make_webhook_events: list[str] = Field(default_factory=list)


class VenueHours(BaseModel):
    """
    Operating hours for one weekday.

    day_of_week follows the database convention: 0 = Sunday ... 6 = Saturday.
    Times stay strings ("HH:MM" or "HH:MM:SS") because closing time may be
    "24:00", which datetime.time cannot hold.
    """

    model_config = ConfigDict(extra="ignore")

    venue_id: str | None = None
    day_of_week: int = Field(..., ge=0, le=6)
    open_time: str = Field(..., pattern=TIME_PATTERN, examples=["09:00"])
    close_time: str = Field(..., pattern=TIME_PATTERN, examples=["17:00"])
    is_closed: bool = False


class BlockedDate(BaseModel):
    """A date on which the venue takes no bookings."""

    model_config = ConfigDict(extra="ignore")

    venue_id: str | None = None
    blocked_date: date
    reason: str | None = None


class VenuePolicy(BaseModel):
    """
    Per-venue scheduling parameters.

    A venue without a policy row behaves as `VenuePolicy()`.
    """

    model_config = ConfigDict(extra="ignore")

    min_duration_hours: float = Field(default=1, description="Shortest bookable duration")
    max_duration_hours: float = Field(default=8, description="Longest bookable duration")
    time_slot_increment: int = Field(default=60, description="Minutes between candidate start times")
    cancellation_hours: int = Field(default=24, ge=0, description="Free cancellation cut-off before start")
    buffer_minutes: int = Field(default=0, ge=0)
    grace_period_minutes: int = Field(default=0, ge=0)
    booking_window_days: int = Field(default=90, ge=0, description="How far ahead bookings are accepted")
    refund_type: str = "full"


class Slot(BaseModel):
    """A candidate start time and whether it can currently be booked."""

    time: str = Field(..., pattern=r"^\d{2}:\d{2}$", examples=["09:00"])
    available: bool
