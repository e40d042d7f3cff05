# =============================================================================
# core/services/availability_service.py - Slot Availability
# =============================================================================
# Loads a venue's schedule inputs from Supabase and hands them to the pure
# availability engine. Separates data access from the slot computation.
# =============================================================================

import logging
from dataclasses import dataclass
from datetime import date

from lib.supabase_client import SupabaseClient, SupabaseClientError
from core.availability import (
    compute_availability,
    day_of_week,
    is_within_booking_window,
)
from core.models.booking import Booking
from core.models.venue import Slot, Venue, VenueHours, VenuePolicy
from app.exceptions import UpstreamProviderError, VenueNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ScheduleInputs:
    """Everything the engine needs for one venue on one date."""
    venue: Venue
    hours: VenueHours | None
    policy: VenuePolicy
    bookings: list[Booking]
    is_blocked: bool


class AvailabilityService:
    """Service for computing bookable slots."""

    @staticmethod
    def load_schedule(venue_id: str, on_date: date) -> ScheduleInputs:
        """
        Load hours, policy, blocked flag and active bookings for one date.

        Raises:
            VenueNotFoundError: If the venue doesn't exist
            UpstreamProviderError: If Supabase fails
        """
        try:
            venue_row = SupabaseClient.fetch_venue(venue_id)
            if not venue_row:
                raise VenueNotFoundError(venue_id)

            hours_row = SupabaseClient.fetch_venue_hours(venue_id, day_of_week(on_date))
            policy_row = SupabaseClient.fetch_venue_policy(venue_id)
            is_blocked = SupabaseClient.is_date_blocked(venue_id, on_date)
            booking_rows = SupabaseClient.fetch_bookings_for_date(venue_id, on_date)

        except SupabaseClientError as e:
            logger.error(f"Failed to load schedule for venue {venue_id} on {on_date}: {e}")
            raise UpstreamProviderError("supabase", {"venue_id": venue_id})

        return ScheduleInputs(
            venue=Venue(**venue_row),
            hours=VenueHours(**hours_row) if hours_row else None,
            policy=VenuePolicy(**policy_row) if policy_row else VenuePolicy(),
            bookings=[Booking(**row) for row in booking_rows],
            is_blocked=is_blocked,
        )

    @staticmethod
    def get_availability(
        venue_id: str,
        on_date: date,
        today: date | None = None,
    ) -> list[Slot]:
        """
        Get the slot list for a venue on a date.

        Dates in the past or beyond the venue's booking window have no slots.

        Args:
            venue_id: The venue UUID
            on_date: Calendar date to compute
            today: Reference date for the booking window (defaults to today)

        Returns:
            Ordered slots with availability flags
        """
        today = today or date.today()
        inputs = AvailabilityService.load_schedule(venue_id, on_date)

        if not is_within_booking_window(on_date, today, inputs.policy.booking_window_days):
            logger.debug(f"Date {on_date} outside booking window for venue {venue_id}")
            return []

        slots = compute_availability(
            inputs.hours,
            inputs.policy,
            inputs.bookings,
            is_blocked=inputs.is_blocked,
        )
        logger.debug(
            f"Venue {venue_id} on {on_date}: "
            f"{sum(s.available for s in slots)}/{len(slots)} slots available"
        )
        return slots
