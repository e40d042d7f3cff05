# =============================================================================
# lib/email_client.py - Transactional Email
# =============================================================================
# Sends email through the Resend HTTP API and renders the booking emails
# for customers (confirmation, cancellation, reminder) and venue owners.
# Only called from Celery tasks; nothing on the request path waits on it.
# =============================================================================

from __future__ import annotations

import logging
from datetime import date
from html import escape
from typing import Any

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailDeliveryError(Exception):
    """Resend rejected the message or could not be reached."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


def send_email(to: str, subject: str, html: str) -> str | None:
    """
    Send one HTML email.

    Returns:
        The Resend message id, or None when email is not configured

    Raises:
        EmailDeliveryError: On HTTP failure (retryable for 5xx / network)
    """
    if not settings.RESEND_API_KEY:
        logger.info(f"RESEND_API_KEY not set; skipping email '{subject}' to {to}")
        return None

    try:
        response = httpx.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
            json={
                "from": settings.EMAIL_FROM,
                "to": [to],
                "subject": subject,
                "html": html,
            },
            timeout=10,
        )
    except httpx.HTTPError as e:
        raise EmailDeliveryError(f"Resend unreachable: {e}")

    if response.status_code >= 400:
        raise EmailDeliveryError(
            f"Resend returned {response.status_code}",
            retryable=response.status_code >= 500,
        )

    message_id = response.json().get("id")
    logger.info(f"Sent email '{subject}' to {to} ({message_id})")
    return message_id


def _format_date(value: str | date) -> str:
    if isinstance(value, str):
        value = date.fromisoformat(value)
    return value.strftime("%A, %B %d, %Y")


def _format_amount(value: Any) -> str:
    return f"{float(value or 0):,.2f} {settings.CHECKOUT_CURRENCY.upper()}"


def render_booking_confirmation(booking: dict[str, Any]) -> tuple[str, str]:
    """Return (subject, html) for a confirmed booking."""
    venue = escape(booking.get("venue_name") or "your venue")
    when = _format_date(booking["booking_date"])
    at = escape(str(booking["booking_time"])[:5])
    booking_id = escape(str(booking.get("id") or ""))[:8]
    total = _format_amount(booking.get("total_price"))

    subject = f"Booking Confirmed - {booking.get('venue_name') or 'SportsBnB'}"
    html = f"""
    <html>
    <body>
        <h2>Booking confirmed!</h2>
        <p>Your booking at <strong>{venue}</strong> has been confirmed.</p>
        <p>Date: <b>{when}</b><br>Time: <b>{at}</b><br>Booking ID: {booking_id}...</p>
        <p>Total paid: <b>{total}</b></p>
        <p>Thank you for choosing SportsBnB!</p>
    </body>
    </html>
    """
    return subject, html


def render_booking_cancellation(booking: dict[str, Any], refunded: bool) -> tuple[str, str]:
    """Return (subject, html) for a cancelled booking."""
    venue = escape(booking.get("venue_name") or "your venue")
    when = _format_date(booking["booking_date"])
    at = escape(str(booking["booking_time"])[:5])
    refund_line = (
        "<p>A full refund has been issued to your original payment method.</p>"
        if refunded else "<p>No refund applies to this cancellation.</p>"
    )

    subject = f"Booking Cancelled - {booking.get('venue_name') or 'SportsBnB'}"
    html = f"""
    <html>
    <body>
        <h2>Booking cancelled</h2>
        <p>Your booking at <strong>{venue}</strong> on <b>{when}</b> at <b>{at}</b> was cancelled.</p>
        {refund_line}
    </body>
    </html>
    """
    return subject, html


def render_owner_notification(booking: dict[str, Any], heading: str) -> tuple[str, str]:
    """
    Return (subject, html) telling a venue owner about a booking change.

    heading is "New Booking" or "Booking Cancelled".
    """
    venue = escape(booking.get("venue_name") or "your venue")
    when = _format_date(booking["booking_date"])
    at = escape(str(booking["booking_time"])[:5])
    customer = escape(booking.get("customer_email") or "N/A")
    duration = booking.get("duration_hours") or 1
    total = _format_amount(booking.get("total_price"))

    subject = f"{heading} - {booking.get('venue_name') or 'SportsBnB'}"
    html = f"""
    <html>
    <body>
        <h2>{escape(heading)}</h2>
        <p>You have a {escape(heading.lower())} for <strong>{venue}</strong>.</p>
        <p>Customer: {customer}<br>Date: <b>{when}</b><br>Time: <b>{at}</b><br>Duration: {float(duration):g}h</p>
        <p>Total: <b>{total}</b></p>
    </body>
    </html>
    """
    return subject, html


def render_booking_reminder(booking: dict[str, Any]) -> tuple[str, str]:
    """Return (subject, html) for the day-before reminder."""
    venue = escape(booking.get("venue_name") or "your venue")
    when = _format_date(booking["booking_date"])
    at = escape(str(booking["booking_time"])[:5])

    subject = f"Reminder: Booking Tomorrow - {booking.get('venue_name') or 'SportsBnB'}"
    html = f"""
    <html>
    <body>
        <h2>See you tomorrow!</h2>
        <p>This is a reminder that you have a booking tomorrow at <strong>{venue}</strong>.</p>
        <p>Date: <b>{when}</b><br>Time: <b>{at}</b></p>
        <p>Please arrive a few minutes early.</p>
    </body>
    </html>
    """
    return subject, html
