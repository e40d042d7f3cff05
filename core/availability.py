# =============================================================================
# core/availability.py - Availability Engine
# =============================================================================
# Turns a venue's weekday hours, its policy, the day's bookings and the
# blocked-date flag into the ordered list of bookable start times.
#
# Everything here is a pure function of its arguments: no database access,
# no clock reads, no caching. AvailabilityService does the loading.
#
# Usage:
#   slots = compute_availability(hours, policy, bookings, is_blocked=False)
#   [{"time": "09:00", "available": True}, ...]
# =============================================================================

from __future__ import annotations

from datetime import date, time, timedelta
from typing import Iterable

from core.models.booking import Booking
from core.models.venue import Slot, VenueHours, VenuePolicy


# =============================================================================
# Time Helpers
# =============================================================================

def parse_time_to_minutes(value: str | time) -> int:
    """
    Convert "HH:MM" / "HH:MM:SS" (or a time) to minutes since midnight.

    "24:00" is accepted as end of day (1440), since Postgres time columns
    allow it for closing times.

    Raises:
        ValueError: If the string is not a valid time of day
    """
    if isinstance(value, time):
        return value.hour * 60 + value.minute

    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time of day: {value!r}")

    hours, minutes = int(parts[0]), int(parts[1])
    if hours == 24 and minutes == 0:
        return 24 * 60
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time of day: {value!r}")
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_of_week(value: date) -> int:
    """Weekday index with Sunday = 0, as stored in venue_hours."""
    return (value.weekday() + 1) % 7


def is_within_booking_window(value: date, today: date, window_days: int) -> bool:
    """True if `value` is between today and today + window_days (inclusive)."""
    return today <= value <= today + timedelta(days=window_days)


# =============================================================================
# Overlap Detection
# =============================================================================

def find_overlapping_booking(
    bookings: Iterable[Booking],
    start_minutes: int,
    duration_hours: float,
) -> Booking | None:
    """
    Return the first active booking whose time range overlaps the request.

    Ranges are half-open: a booking ending at 11:00 does not overlap one
    starting at 11:00.
    """
    end_minutes = start_minutes + int(round(duration_hours * 60))
    for booking in bookings:
        if not booking.is_active:
            continue
        if booking.start_minutes < end_minutes and start_minutes < booking.end_minutes:
            return booking
    return None


def _is_blocked_by(bookings: list[Booking], minute: int) -> bool:
    return any(b.start_minutes <= minute < b.end_minutes for b in bookings)


# =============================================================================
# Slot Generation
# =============================================================================

def compute_availability(
    hours: VenueHours | None,
    policy: VenuePolicy | None,
    bookings: Iterable[Booking],
    is_blocked: bool = False,
) -> list[Slot]:
    """
    Compute the slot list for one venue on one date.

    Args:
        hours: The venue's hours for the date's weekday (None if not set)
        policy: The venue's policy, or None for defaults
        bookings: Bookings on that date; cancelled ones are ignored
        is_blocked: Whether the date is in the venue's blocked dates

    Returns:
        Slots in ascending time order, one per increment step. Each slot
        starts early enough to fit the minimum duration before closing.
        Empty when the date is blocked, the weekday is closed, or the
        policy cannot produce any slot.
    """
    if is_blocked:
        return []
    if hours is None or hours.is_closed:
        return []

    policy = policy or VenuePolicy()
    increment = policy.time_slot_increment
    min_duration = int(round(policy.min_duration_hours * 60))

    if increment <= 0 or min_duration <= 0:
        return []

    open_minutes = parse_time_to_minutes(hours.open_time)
    close_minutes = parse_time_to_minutes(hours.close_time)

    active = [b for b in bookings if b.is_active]

    slots: list[Slot] = []
    start = open_minutes
    while start + min_duration <= close_minutes:
        slots.append(Slot(
            time=format_minutes(start),
            available=not _is_blocked_by(active, start),
        ))
        start += increment

    return slots


def is_on_slot_grid(
    hours: VenueHours | None,
    policy: VenuePolicy | None,
    start_minutes: int,
    duration_hours: float,
) -> bool:
    """
    Check that a requested start time is one the engine would offer and that
    the requested duration fits before closing.
    """
    if hours is None or hours.is_closed:
        return False

    policy = policy or VenuePolicy()
    if policy.time_slot_increment <= 0 or policy.min_duration_hours <= 0:
        return False

    open_minutes = parse_time_to_minutes(hours.open_time)
    close_minutes = parse_time_to_minutes(hours.close_time)
    end_minutes = start_minutes + int(round(duration_hours * 60))

    return (
        start_minutes >= open_minutes
        and (start_minutes - open_minutes) % policy.time_slot_increment == 0
        and end_minutes <= close_minutes
    )
