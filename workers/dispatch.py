# =============================================================================
# workers/dispatch.py - Fire-and-Forget Side Effects
# =============================================================================
# Queues the Celery tasks that follow a booking state change. Callers never
# see an error from here: if the broker is down the failure is logged and
# the booking stands.
#
# Usage:
#   from workers.dispatch import dispatch_booking_confirmed
#   dispatch_booking_confirmed(booking_row, customer_email="a@b.com")
# =============================================================================

import logging
from datetime import date
from typing import Any

from workers.tasks import (
    create_notification,
    dispatch_webhooks,
    send_booking_cancellation_email,
    send_booking_confirmation_email,
    send_owner_booking_email,
)

logger = logging.getLogger(__name__)


def _enqueue(task, *args, **kwargs) -> bool:
    """Queue a task; log and return False if the broker refuses it."""
    try:
        task.delay(*args, **kwargs)
        return True
    except Exception as e:
        logger.error(f"Failed to enqueue {task.name}: {e}", exc_info=True)
        return False


def _short_date(value: Any) -> str:
    try:
        return date.fromisoformat(str(value)).strftime("%a, %b %d")
    except ValueError:
        return str(value)


def dispatch_booking_confirmed(
    booking: dict[str, Any],
    customer_email: str | None = None,
    owner_id: str | None = None,
) -> None:
    """Notify the customer and venue owner, email both, fire webhooks."""
    venue_name = booking.get("venue_name") or "the venue"
    when = _short_date(booking.get("booking_date"))
    at = str(booking.get("booking_time", ""))[:5]

    _enqueue(
        create_notification,
        user_id=booking["user_id"],
        type="booking",
        title="Booking Confirmed! 🎉",
        message=f"Your booking at {venue_name} on {when} at {at} has been confirmed.",
        link="/dashboard",
    )

    if owner_id and owner_id != booking["user_id"]:
        _enqueue(
            create_notification,
            user_id=owner_id,
            type="booking",
            title="New Booking",
            message=f"{venue_name} was booked for {when} at {at}.",
            link="/owner/schedule",
        )

    if customer_email:
        _enqueue(send_booking_confirmation_email, booking, customer_email)

    _enqueue(send_owner_booking_email, booking, "New Booking")

    _enqueue(dispatch_webhooks, "booking_created", booking, booking.get("venue_id"))


def dispatch_booking_cancelled(
    booking: dict[str, Any],
    customer_email: str | None = None,
    refunded: bool = False,
) -> None:
    """Notify and email the customer, email the owner, fire webhooks."""
    venue_name = booking.get("venue_name") or "the venue"
    when = _short_date(booking.get("booking_date"))

    _enqueue(
        create_notification,
        user_id=booking["user_id"],
        type="booking",
        title="Booking Cancelled",
        message=(
            f"Your booking at {venue_name} on {when} was cancelled."
            + (" A refund is on its way." if refunded else "")
        ),
        link="/dashboard",
    )

    if customer_email:
        _enqueue(send_booking_cancellation_email, booking, customer_email, refunded)

    _enqueue(send_owner_booking_email, booking, "Booking Cancelled")

    _enqueue(dispatch_webhooks, "booking_cancelled", booking, booking.get("venue_id"))


def dispatch_game_joined(game: dict[str, Any], joiner_id: str, joiner_name: str | None = None) -> None:
    """Tell the host someone joined their game (hosts joining their own game are skipped)."""
    if game.get("host_id") == joiner_id:
        return

    _enqueue(
        create_notification,
        user_id=game["host_id"],
        type="game",
        title="New Player Joined! 🎮",
        message=f"{joiner_name or 'Someone'} has joined your game \"{game.get('title', '')}\".",
        link=f"/games/{game['id']}",
    )
