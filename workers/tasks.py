# =============================================================================
# workers/tasks.py - Celery Task Definitions
# =============================================================================
# Side effects of the booking flow. Each runs detached from the request that
# triggered it, so a failure here never touches the booking itself.
#
# Tasks:
# - create_notification: insert an in-app notification row
# - send_booking_confirmation_email: Resend email to the customer
# - send_booking_cancellation_email: Resend email after a cancellation
# - send_owner_booking_email: tell the venue owner about a new or cancelled booking
# - send_booking_reminders: daily (beat) reminder for tomorrow's bookings
# - dispatch_webhooks: POST booking events to configured automation URLs
# =============================================================================

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from celery import shared_task

from lib.email_client import (
    EmailDeliveryError,
    render_booking_cancellation,
    render_booking_confirmation,
    render_booking_reminder,
    render_owner_notification,
    send_email,
)
from lib.supabase_client import SupabaseClient, SupabaseClientError

logger = logging.getLogger(__name__)

# platform_settings key holding the global webhook URL for each event type
WEBHOOK_SETTING_KEYS = {
    "booking_created": "make_webhook_bookings",
    "booking_cancelled": "make_webhook_cancellations",
}

WEBHOOK_TIMEOUT_SECONDS = 10


# =============================================================================
# Notifications
# =============================================================================

@shared_task(
    bind=True,
    name="workers.tasks.create_notification",
    max_retries=3,
    default_retry_delay=30,
)
def create_notification(
    self,
    user_id: str,
    type: str,
    title: str,
    message: str,
    link: str | None = None,
) -> dict[str, Any]:
    """
    Insert an in-app notification for a user.

    Retries on Supabase errors; after the last retry the failure is only
    logged (by the task_failure signal).
    """
    try:
        row = SupabaseClient.insert_notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            link=link,
        )
    except SupabaseClientError as e:
        logger.warning(f"Notification insert for user {user_id} failed: {e}")
        raise self.retry(exc=e)

    logger.info(f"Created {type} notification for user {user_id}")
    return {"success": True, "notification_id": row.get("id")}


# =============================================================================
# Email
# =============================================================================

@shared_task(
    bind=True,
    name="workers.tasks.send_booking_confirmation_email",
    max_retries=3,
    default_retry_delay=60,
)
def send_booking_confirmation_email(self, booking: dict[str, Any], to: str) -> dict[str, Any]:
    """Email the customer their booking confirmation."""
    subject, html = render_booking_confirmation(booking)

    try:
        message_id = send_email(to, subject, html)
    except EmailDeliveryError as e:
        if e.retryable:
            logger.warning(f"Confirmation email for booking {booking.get('id')} failed, retrying: {e}")
            raise self.retry(exc=e)
        logger.error(f"Confirmation email for booking {booking.get('id')} rejected: {e}")
        return {"success": False, "error": str(e)}

    return {"success": True, "message_id": message_id}


@shared_task(
    bind=True,
    name="workers.tasks.send_booking_cancellation_email",
    max_retries=3,
    default_retry_delay=60,
)
def send_booking_cancellation_email(
    self,
    booking: dict[str, Any],
    to: str,
    refunded: bool = False,
) -> dict[str, Any]:
    """Email the customer that their booking was cancelled."""
    subject, html = render_booking_cancellation(booking, refunded)

    try:
        message_id = send_email(to, subject, html)
    except EmailDeliveryError as e:
        if e.retryable:
            raise self.retry(exc=e)
        logger.error(f"Cancellation email for booking {booking.get('id')} rejected: {e}")
        return {"success": False, "error": str(e)}

    return {"success": True, "message_id": message_id}


def resolve_owner_email(venue_id: str | None) -> str | None:
    """The email on the venue owner's profile, if any."""
    if not venue_id:
        return None
    venue = SupabaseClient.fetch_venue(venue_id)
    if not venue or not venue.get("owner_id"):
        return None
    profile = SupabaseClient.fetch_profile(venue["owner_id"])
    return profile.get("email") if profile else None


@shared_task(
    bind=True,
    name="workers.tasks.send_owner_booking_email",
    max_retries=3,
    default_retry_delay=60,
)
def send_owner_booking_email(self, booking: dict[str, Any], heading: str) -> dict[str, Any]:
    """
    Email the venue owner about a booking change.

    heading is "New Booking" or "Booking Cancelled". The owner address is
    looked up here so the request path never waits on the profile read.
    """
    try:
        to = resolve_owner_email(booking.get("venue_id"))
    except SupabaseClientError as e:
        logger.warning(f"Owner lookup for booking {booking.get('id')} failed, retrying: {e}")
        raise self.retry(exc=e)

    if not to:
        logger.info(f"No owner email for venue {booking.get('venue_id')}; skipping '{heading}'")
        return {"success": False, "error": "owner has no email"}

    subject, html = render_owner_notification(booking, heading)

    try:
        message_id = send_email(to, subject, html)
    except EmailDeliveryError as e:
        if e.retryable:
            raise self.retry(exc=e)
        logger.error(f"Owner email for booking {booking.get('id')} rejected: {e}")
        return {"success": False, "error": str(e)}

    return {"success": True, "message_id": message_id}


@shared_task(name="workers.tasks.send_booking_reminders")
def send_booking_reminders() -> dict[str, Any]:
    """
    Email every customer with a confirmed booking tomorrow (UTC).

    Scheduled once a day by Celery beat. A failed address is logged and
    skipped; the next one is still tried.
    """
    tomorrow = datetime.now(timezone.utc).date() + timedelta(days=1)

    try:
        bookings = SupabaseClient.fetch_confirmed_bookings_on(tomorrow)
    except SupabaseClientError as e:
        logger.error(f"Could not load bookings for reminders on {tomorrow}: {e}")
        return {"bookings": 0, "sent": 0}

    sent = 0
    for booking in bookings:
        to = booking.get("customer_email")
        if not to:
            continue

        subject, html = render_booking_reminder(booking)
        try:
            send_email(to, subject, html)
            sent += 1
        except EmailDeliveryError as e:
            logger.warning(f"Reminder for booking {booking.get('id')} failed: {e}")

    logger.info(f"Sent {sent} reminders for {len(bookings)} bookings on {tomorrow}")
    return {"bookings": len(bookings), "sent": sent}


# =============================================================================
# Outbound Webhooks
# =============================================================================

def resolve_webhook_urls(event_type: str, venue_id: str | None) -> list[str]:
    """
    Collect the URLs subscribed to an event.

    - the platform-wide URL stored in platform_settings
    - the venue's own URL, if the owner subscribed it to this event
    """
    urls: list[str] = []

    setting_key = WEBHOOK_SETTING_KEYS.get(event_type)
    if setting_key:
        global_url = SupabaseClient.fetch_platform_setting(setting_key)
        if global_url:
            urls.append(global_url)

    if venue_id:
        venue = SupabaseClient.fetch_venue(venue_id)
        if venue and venue.get("make_webhook_url") and event_type in (venue.get("make_webhook_events") or []):
            urls.append(venue["make_webhook_url"])

    return urls


@shared_task(name="workers.tasks.dispatch_webhooks")
def dispatch_webhooks(
    event_type: str,
    data: dict[str, Any],
    venue_id: str | None = None,
) -> dict[str, Any]:
    """
    POST an event to every subscribed webhook URL.

    Per-URL failures are logged and counted, never raised: one broken
    receiver must not block the others.
    """
    try:
        urls = resolve_webhook_urls(event_type, venue_id)
    except SupabaseClientError as e:
        logger.error(f"Could not resolve webhooks for {event_type}: {e}")
        return {"webhooks": 0, "delivered": 0}

    if not urls:
        logger.debug(f"No webhooks configured for {event_type}")
        return {"webhooks": 0, "delivered": 0}

    payload = {
        "event_type": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }

    delivered = 0
    for url in urls:
        try:
            response = httpx.post(url, json=payload, timeout=WEBHOOK_TIMEOUT_SECONDS)
            response.raise_for_status()
            delivered += 1
            logger.info(f"Webhook {event_type} delivered to {url} ({response.status_code})")
        except httpx.HTTPError as e:
            logger.warning(f"Webhook {event_type} to {url} failed: {e}")

    return {"webhooks": len(urls), "delivered": delivered}
