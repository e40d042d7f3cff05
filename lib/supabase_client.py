# =============================================================================
# lib/supabase_client.py - Supabase Client Wrapper
# =============================================================================
# This module provides a typed wrapper for Supabase database operations.
# It implements the singleton pattern to reuse a single client connection
# and provides specialized methods for:
# - Venue schedule reads (hours, blocked dates, policy)
# - Booking reads and the guarded booking insert
# - Game participation
# - Profiles (owner email, Stripe Connect account)
# - Notifications and platform settings
#
# The bookings table carries a unique partial index on
# (venue_id, booking_date, booking_time) WHERE status <> 'cancelled', and
# game_participants a unique index on (game_id, user_id). Inserts that hit
# either raise UniqueViolationError.
#
# Usage:
#   from lib.supabase_client import SupabaseClient
#   hours = SupabaseClient.fetch_venue_hours(venue_id, day_of_week=1)
# =============================================================================

from __future__ import annotations

import logging
from datetime import date, time
from typing import Any
from uuid import UUID

from supabase import create_client, Client

from app.config import settings
from lib.utils import normalize_uuid

# Set up logging for this module
logger = logging.getLogger(__name__)

# PostgREST code for "no rows" on .single()
NO_ROWS_CODE = "PGRST116"
# Postgres SQLSTATE for unique_violation
UNIQUE_VIOLATION_CODE = "23505"


class SupabaseClientError(Exception):
    """
    Error during Supabase operations.

    Carries a code and the identifiers involved so callers can log with
    context before mapping it to an API error.
    """

    def __init__(
        self,
        message: str,
        code: str = "SUPABASE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result


class UniqueViolationError(SupabaseClientError):
    """An insert lost against a uniqueness constraint."""

    def __init__(self, table: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Unique constraint violated on {table}",
            code="UNIQUE_VIOLATION",
            details={"table": table, **(details or {})},
        )


def _is_no_rows(error: Exception) -> bool:
    return NO_ROWS_CODE in str(error)


def _is_unique_violation(error: Exception) -> bool:
    code = getattr(error, "code", None)
    if code == UNIQUE_VIOLATION_CODE:
        return True
    text = str(error)
    return UNIQUE_VIOLATION_CODE in text or "duplicate key value" in text


def _fmt_date(value: date | str) -> str:
    return value.isoformat() if isinstance(value, date) else value


def _fmt_time(value: time | str) -> str:
    return value.strftime("%H:%M") if isinstance(value, time) else value


class SupabaseClient:
    """
    Typed wrapper for Supabase database operations.

    Implements singleton pattern - one client instance is shared across
    the application. All methods are class methods for easy access without
    instantiation.

    Example:
        bookings = SupabaseClient.fetch_bookings_for_date(venue_id, date(2026, 1, 19))
        policy = SupabaseClient.fetch_venue_policy(venue_id)
    """

    _instance: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """
        Get or create the singleton Supabase client.

        Uses service_role key which bypasses Row Level Security (RLS).
        This is appropriate for server-side operations.

        Raises:
            SupabaseClientError: If client creation fails
        """
        if cls._instance is None:
            try:
                cls._instance = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_KEY
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                raise SupabaseClientError(
                    message=f"Failed to create Supabase client: {e}",
                    code="CLIENT_INIT_FAILED",
                    suggestion="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file"
                )
        return cls._instance

    @classmethod
    def _normalize_uuid(cls, uuid_value: str | UUID) -> str:
        """Convert UUID to string for queries."""
        return normalize_uuid(uuid_value)

    @classmethod
    def _fetch_single(
        cls,
        table: str,
        filters: dict[str, Any],
        columns: str = "*",
        error_code: str = "FETCH_FAILED",
    ) -> dict[str, Any] | None:
        """Fetch exactly one row matching all equality filters, or None."""
        client = cls.get_client()

        try:
            query = client.table(table).select(columns)
            for column, value in filters.items():
                query = query.eq(column, value)
            response = query.single().execute()
            return response.data

        except Exception as e:
            if _is_no_rows(e):
                return None
            raise SupabaseClientError(
                message=f"Failed to fetch from {table}: {e}",
                code=error_code,
                details={"table": table, **filters}
            )

    # -------------------------------------------------------------------------
    # Venue Schedule
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_venue(cls, venue_id: str | UUID) -> dict[str, Any] | None:
        """Fetch a venue row by ID, or None if it doesn't exist."""
        return cls._fetch_single(
            "venues",
            {"id": cls._normalize_uuid(venue_id)},
            error_code="FETCH_VENUE_FAILED",
        )

    @classmethod
    def fetch_venue_hours(
        cls,
        venue_id: str | UUID,
        day_of_week: int,
    ) -> dict[str, Any] | None:
        """
        Fetch the hours row for one weekday.

        Args:
            venue_id: The venue UUID
            day_of_week: 0 = Sunday ... 6 = Saturday

        Returns:
            Row with open_time, close_time, is_closed; None if the owner
            never configured that day
        """
        return cls._fetch_single(
            "venue_hours",
            {"venue_id": cls._normalize_uuid(venue_id), "day_of_week": day_of_week},
            error_code="FETCH_HOURS_FAILED",
        )

    @classmethod
    def fetch_venue_policy(cls, venue_id: str | UUID) -> dict[str, Any] | None:
        """Fetch the venue's policy row, or None when defaults apply."""
        return cls._fetch_single(
            "venue_policies",
            {"venue_id": cls._normalize_uuid(venue_id)},
            error_code="FETCH_POLICY_FAILED",
        )

    @classmethod
    def is_date_blocked(cls, venue_id: str | UUID, on_date: date) -> bool:
        """Check whether the owner blocked this date."""
        client = cls.get_client()
        venue_id_str = cls._normalize_uuid(venue_id)

        try:
            response = (
                client.table("blocked_dates")
                .select("id")
                .eq("venue_id", venue_id_str)
                .eq("blocked_date", _fmt_date(on_date))
                .limit(1)
                .execute()
            )
            return bool(response.data)

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to check blocked dates: {e}",
                code="FETCH_BLOCKED_DATES_FAILED",
                details={"venue_id": venue_id_str, "date": _fmt_date(on_date)}
            )

    # -------------------------------------------------------------------------
    # Bookings
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_bookings_for_date(
        cls,
        venue_id: str | UUID,
        on_date: date,
    ) -> list[dict[str, Any]]:
        """
        Fetch non-cancelled bookings for a venue on one date.

        Returns:
            Booking rows ordered by start time
        """
        client = cls.get_client()
        venue_id_str = cls._normalize_uuid(venue_id)

        try:
            response = (
                client.table("bookings")
                .select("*")
                .eq("venue_id", venue_id_str)
                .eq("booking_date", _fmt_date(on_date))
                .neq("status", "cancelled")
                .order("booking_time")
                .execute()
            )
            bookings = response.data or []
            logger.debug(f"Fetched {len(bookings)} bookings for venue {venue_id_str} on {on_date}")
            return bookings

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to fetch bookings: {e}",
                code="FETCH_BOOKINGS_FAILED",
                details={"venue_id": venue_id_str, "date": _fmt_date(on_date)}
            )

    @classmethod
    def fetch_confirmed_bookings_on(cls, on_date: date) -> list[dict[str, Any]]:
        """Fetch confirmed bookings across all venues for one date."""
        client = cls.get_client()

        try:
            response = (
                client.table("bookings")
                .select("*")
                .eq("booking_date", _fmt_date(on_date))
                .eq("status", "confirmed")
                .order("booking_time")
                .execute()
            )
            return response.data or []

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to fetch bookings: {e}",
                code="FETCH_BOOKINGS_FAILED",
                details={"date": _fmt_date(on_date)}
            )

    @classmethod
    def fetch_booking(cls, booking_id: str | UUID) -> dict[str, Any] | None:
        """Fetch a booking by ID."""
        return cls._fetch_single(
            "bookings",
            {"id": cls._normalize_uuid(booking_id)},
            error_code="FETCH_BOOKING_FAILED",
        )

    @classmethod
    def find_active_booking(
        cls,
        venue_id: str | UUID,
        on_date: date,
        at_time: time,
        user_id: str | UUID | None = None,
    ) -> dict[str, Any] | None:
        """
        Find the non-cancelled booking holding an exact slot.

        Args:
            venue_id: The venue UUID
            on_date: Booking date
            at_time: Booking start time
            user_id: If provided, only match this user's booking

        Returns:
            The booking row, or None
        """
        client = cls.get_client()
        filters = {
            "venue_id": cls._normalize_uuid(venue_id),
            "booking_date": _fmt_date(on_date),
            "booking_time": _fmt_time(at_time),
        }
        if user_id is not None:
            filters["user_id"] = cls._normalize_uuid(user_id)

        try:
            query = client.table("bookings").select("*")
            for column, value in filters.items():
                query = query.eq(column, value)
            response = query.neq("status", "cancelled").limit(1).execute()
            rows = response.data or []
            return rows[0] if rows else None

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to look up booking: {e}",
                code="FIND_BOOKING_FAILED",
                details=filters
            )

    @classmethod
    def insert_booking(cls, data: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a booking row.

        This insert is the serialization point for a slot: concurrent
        inserts for the same (venue, date, time) race here and exactly one
        wins.

        Returns:
            Inserted booking row with generated id

        Raises:
            UniqueViolationError: If an active booking already holds the slot
            SupabaseClientError: If the insert fails for any other reason
        """
        client = cls.get_client()
        context = {
            "venue_id": data.get("venue_id"),
            "booking_date": data.get("booking_date"),
            "booking_time": data.get("booking_time"),
        }

        try:
            response = client.table("bookings").insert(data).execute()

            if response.data:
                return response.data[0]
            raise SupabaseClientError(
                message="Insert returned no data",
                code="INSERT_NO_DATA",
                details=context
            )

        except SupabaseClientError:
            raise
        except Exception as e:
            if _is_unique_violation(e):
                raise UniqueViolationError("bookings", context)
            raise SupabaseClientError(
                message=f"Failed to insert booking: {e}",
                code="INSERT_BOOKING_FAILED",
                details=context
            )

    @classmethod
    def update_booking(
        cls,
        booking_id: str | UUID,
        data: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Update a booking and return the updated row."""
        client = cls.get_client()
        booking_id_str = cls._normalize_uuid(booking_id)

        try:
            response = (
                client.table("bookings")
                .update(data)
                .eq("id", booking_id_str)
                .execute()
            )
            if response.data:
                logger.info(f"Updated booking: {booking_id_str}")
                return response.data[0]
            return None

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to update booking: {e}",
                code="UPDATE_BOOKING_FAILED",
                details={"booking_id": booking_id_str}
            )

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_profile(cls, user_id: str | UUID) -> dict[str, Any] | None:
        """Fetch a profile row (name, email, Stripe Connect account)."""
        return cls._fetch_single(
            "profiles",
            {"user_id": cls._normalize_uuid(user_id)},
            error_code="FETCH_PROFILE_FAILED",
        )

    @classmethod
    def update_profile(
        cls,
        user_id: str | UUID,
        data: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Update a profile row by user id and return it."""
        client = cls.get_client()
        user_id_str = cls._normalize_uuid(user_id)

        try:
            response = (
                client.table("profiles")
                .update(data)
                .eq("user_id", user_id_str)
                .execute()
            )
            return response.data[0] if response.data else None

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to update profile: {e}",
                code="UPDATE_PROFILE_FAILED",
                details={"user_id": user_id_str}
            )

    # -------------------------------------------------------------------------
    # Games
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_game(cls, game_id: str | UUID) -> dict[str, Any] | None:
        return cls._fetch_single(
            "games",
            {"id": cls._normalize_uuid(game_id)},
            error_code="FETCH_GAME_FAILED",
        )

    @classmethod
    def fetch_game_participant(
        cls,
        game_id: str | UUID,
        user_id: str | UUID,
    ) -> dict[str, Any] | None:
        return cls._fetch_single(
            "game_participants",
            {
                "game_id": cls._normalize_uuid(game_id),
                "user_id": cls._normalize_uuid(user_id),
            },
            error_code="FETCH_PARTICIPANT_FAILED",
        )

    @classmethod
    def insert_game_participant(cls, data: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a game_participants row.

        Raises:
            UniqueViolationError: If the user already joined this game
            SupabaseClientError: If the insert fails for any other reason
        """
        client = cls.get_client()
        context = {"game_id": data.get("game_id"), "user_id": data.get("user_id")}

        try:
            response = client.table("game_participants").insert(data).execute()

            if response.data:
                return response.data[0]
            raise SupabaseClientError(
                message="Insert returned no data",
                code="INSERT_NO_DATA",
                details=context
            )

        except SupabaseClientError:
            raise
        except Exception as e:
            if _is_unique_violation(e):
                raise UniqueViolationError("game_participants", context)
            raise SupabaseClientError(
                message=f"Failed to insert game participant: {e}",
                code="INSERT_PARTICIPANT_FAILED",
                details=context
            )

    @classmethod
    def claim_game_place(cls, game_id: str | UUID) -> bool:
        """
        Take one place in a game through the claim_game_place RPC.

        The function increments games.current_players only while
        current_players < max_players and the game is open, in a single
        UPDATE, and returns whether a row changed:

            UPDATE games SET current_players = current_players + 1
            WHERE id = game_id AND status = 'open'
              AND current_players < max_players;
            RETURN FOUND;

        Returns:
            True if the place was taken, False if the game is full or closed
        """
        client = cls.get_client()
        game_id_str = cls._normalize_uuid(game_id)

        try:
            response = client.rpc("claim_game_place", {"game_id": game_id_str}).execute()
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to claim a place in game: {e}",
                code="CLAIM_PLACE_FAILED",
                details={"game_id": game_id_str}
            )
        return response.data is True

    @classmethod
    def delete_game_participant(cls, participant_id: str | UUID) -> None:
        """Remove a participant row whose place could not be claimed."""
        client = cls.get_client()
        participant_id_str = cls._normalize_uuid(participant_id)

        try:
            client.table("game_participants").delete().eq("id", participant_id_str).execute()
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to delete game participant: {e}",
                code="DELETE_PARTICIPANT_FAILED",
                details={"participant_id": participant_id_str}
            )

    # -------------------------------------------------------------------------
    # Notifications & Settings
    # -------------------------------------------------------------------------

    @classmethod
    def insert_notification(
        cls,
        user_id: str | UUID,
        type: str,
        title: str,
        message: str,
        link: str | None = None,
    ) -> dict[str, Any]:
        """
        Insert an in-app notification.

        Returns:
            Inserted notification row
        """
        client = cls.get_client()

        data = {
            "user_id": cls._normalize_uuid(user_id),
            "type": type,
            "title": title,
            "message": message,
            "link": link,
        }

        try:
            response = client.table("notifications").insert(data).execute()
            if response.data:
                return response.data[0]
            raise SupabaseClientError(
                message="Insert returned no data",
                code="INSERT_NO_DATA"
            )

        except SupabaseClientError:
            raise
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to insert notification: {e}",
                code="INSERT_NOTIFICATION_FAILED",
                details={"user_id": data["user_id"], "type": type}
            )

    @classmethod
    def fetch_platform_setting(cls, key: str) -> str | None:
        """Fetch one platform_settings value by key."""
        row = cls._fetch_single(
            "platform_settings",
            {"setting_key": key},
            columns="setting_value",
            error_code="FETCH_SETTING_FAILED",
        )
        return row.get("setting_value") if row else None
