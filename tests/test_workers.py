# =============================================================================
# tests/test_workers.py - Side Effect Task Tests
# =============================================================================
# Tasks are called directly (synchronously); no broker is needed.
#
# Run with: pytest tests/test_workers.py -v
# =============================================================================

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import httpx
import pytest

from app.config import settings
from lib.email_client import (
    EmailDeliveryError,
    render_booking_cancellation,
    render_booking_confirmation,
    render_booking_reminder,
    render_owner_notification,
    send_email,
)
from lib.supabase_client import SupabaseClientError
from workers.dispatch import (
    dispatch_booking_cancelled,
    dispatch_booking_confirmed,
    dispatch_game_joined,
)
from workers.tasks import (
    create_notification,
    dispatch_webhooks,
    send_booking_confirmation_email,
    send_booking_reminders,
    send_owner_booking_email,
)
from tests.conftest import OWNER_ID, USER_ID, VENUE_ID


@pytest.fixture
def booking():
    return {
        "id": "booking-abcdef123",
        "venue_id": VENUE_ID,
        "venue_name": "Central Court",
        "user_id": USER_ID,
        "booking_date": "2026-01-19",
        "booking_time": "11:00",
        "duration_hours": 1,
        "total_price": 5000,
    }


# =============================================================================
# Notification Task
# =============================================================================

class TestCreateNotification:
    """Tests for the create_notification task."""

    def test_inserts_row(self):
        with patch("workers.tasks.SupabaseClient") as db:
            db.insert_notification.return_value = {"id": "n1"}

            result = create_notification(USER_ID, "booking", "Booking Confirmed!", "See you there", "/dashboard")

        assert result == {"success": True, "notification_id": "n1"}
        db.insert_notification.assert_called_once_with(
            user_id=USER_ID,
            type="booking",
            title="Booking Confirmed!",
            message="See you there",
            link="/dashboard",
        )


# =============================================================================
# Email
# =============================================================================

class TestEmail:
    """Tests for email rendering, delivery and the email task."""

    def test_confirmation_body(self, booking):
        subject, html = render_booking_confirmation(booking)

        assert subject == "Booking Confirmed - Central Court"
        assert "Monday, January 19, 2026" in html
        assert "11:00" in html
        assert "5,000" in html

    def test_fractional_total_keeps_cents(self, booking):
        _, html = render_booking_confirmation({**booking, "total_price": 12.5})
        assert "12.50 AMD" in html

    def test_cancellation_body_mentions_refund(self, booking):
        _, refunded_html = render_booking_cancellation(booking, refunded=True)
        _, kept_html = render_booking_cancellation(booking, refunded=False)

        assert "full refund" in refunded_html
        assert "No refund" in kept_html

    def test_venue_name_is_escaped(self, booking):
        _, html = render_booking_confirmation({**booking, "venue_name": "<script>x</script>"})
        assert "<script>" not in html

    def test_send_skipped_without_api_key(self):
        with patch.object(settings, "RESEND_API_KEY", ""), patch("lib.email_client.httpx.post") as post:
            assert send_email("me@example.com", "Hi", "<p>Hi</p>") is None
        post.assert_not_called()

    def test_send_posts_to_resend(self):
        response = MagicMock(status_code=200)
        response.json.return_value = {"id": "email_1"}

        with patch.object(settings, "RESEND_API_KEY", "re_test"), \
             patch("lib.email_client.httpx.post", return_value=response) as post:
            assert send_email("me@example.com", "Hi", "<p>Hi</p>") == "email_1"

        assert post.call_args.kwargs["json"]["to"] == ["me@example.com"]
        assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer re_test"

    @pytest.mark.parametrize("status,retryable", [(422, False), (503, True)])
    def test_send_failure_retryability(self, status, retryable):
        with patch.object(settings, "RESEND_API_KEY", "re_test"), \
             patch("lib.email_client.httpx.post", return_value=MagicMock(status_code=status)):
            with pytest.raises(EmailDeliveryError) as exc_info:
                send_email("me@example.com", "Hi", "<p>Hi</p>")

        assert exc_info.value.retryable is retryable

    def test_task_sends(self, booking):
        with patch("workers.tasks.send_email", return_value="email_1") as send:
            result = send_booking_confirmation_email(booking, "me@example.com")

        assert result == {"success": True, "message_id": "email_1"}
        assert send.call_args.args[1] == "Booking Confirmed - Central Court"

    def test_task_gives_up_on_rejected_email(self, booking):
        with patch("workers.tasks.send_email", side_effect=EmailDeliveryError("bad address", retryable=False)):
            result = send_booking_confirmation_email(booking, "not-an-email")

        assert result["success"] is False

    def test_task_retries_transient_failure(self, booking):
        # Called directly (not by a worker), Celery re-raises instead of scheduling
        with patch("workers.tasks.send_email", side_effect=EmailDeliveryError("503")):
            with pytest.raises(EmailDeliveryError):
                send_booking_confirmation_email(booking, "me@example.com")


# =============================================================================
# Owner Email & Reminders
# =============================================================================

class TestOwnerEmail:
    """Tests for the send_owner_booking_email task."""

    @pytest.fixture
    def db(self, venue_row, owner_profile_row):
        with patch("workers.tasks.SupabaseClient") as mock:
            mock.fetch_venue.return_value = venue_row
            mock.fetch_profile.return_value = owner_profile_row
            yield mock

    def test_owner_body(self, booking):
        subject, html = render_owner_notification({**booking, "customer_email": "me@example.com"}, "New Booking")

        assert subject == "New Booking - Central Court"
        assert "me@example.com" in html
        assert "Duration: 1h" in html

    def test_sends_to_profile_email(self, db, booking):
        with patch("workers.tasks.send_email", return_value="email_2") as send:
            result = send_owner_booking_email(booking, "Booking Cancelled")

        assert result == {"success": True, "message_id": "email_2"}
        assert send.call_args.args[0] == "owner@example.com"
        assert send.call_args.args[1] == "Booking Cancelled - Central Court"
        db.fetch_profile.assert_called_once_with(OWNER_ID)

    def test_owner_without_email_is_skipped(self, db, booking):
        db.fetch_profile.return_value = {"user_id": OWNER_ID}

        with patch("workers.tasks.send_email") as send:
            result = send_owner_booking_email(booking, "New Booking")

        assert result["success"] is False
        send.assert_not_called()

    def test_lookup_failure_retries(self, db, booking):
        db.fetch_venue.side_effect = SupabaseClientError("timeout")

        with pytest.raises(SupabaseClientError):
            send_owner_booking_email(booking, "New Booking")


class TestBookingReminders:
    """Tests for the daily send_booking_reminders task."""

    def test_reminder_body(self, booking):
        subject, html = render_booking_reminder(booking)

        assert subject == "Reminder: Booking Tomorrow - Central Court"
        assert "Monday, January 19, 2026" in html

    def test_emails_tomorrows_customers(self, booking):
        rows = [
            {**booking, "customer_email": "a@example.com"},
            {**booking, "id": "b2", "customer_email": None},
            {**booking, "id": "b3", "customer_email": "c@example.com"},
        ]
        with patch("workers.tasks.SupabaseClient") as db, \
             patch("workers.tasks.send_email", side_effect=["email_a", EmailDeliveryError("bounced")]) as send:
            db.fetch_confirmed_bookings_on.return_value = rows
            result = send_booking_reminders()

        assert result == {"bookings": 3, "sent": 1}
        assert [c.args[0] for c in send.call_args_list] == ["a@example.com", "c@example.com"]

        on_date = db.fetch_confirmed_bookings_on.call_args.args[0]
        assert on_date == datetime.now(timezone.utc).date() + timedelta(days=1)

    def test_database_failure_sends_nothing(self):
        with patch("workers.tasks.SupabaseClient") as db, patch("workers.tasks.send_email") as send:
            db.fetch_confirmed_bookings_on.side_effect = SupabaseClientError("down")
            assert send_booking_reminders() == {"bookings": 0, "sent": 0}

        send.assert_not_called()

    def test_scheduled_daily(self):
        from workers.config import CeleryConfig

        entry = CeleryConfig.beat_schedule["send-booking-reminders"]
        assert entry["task"] == send_booking_reminders.name


# =============================================================================
# Outbound Webhooks
# =============================================================================

class TestDispatchWebhooks:
    """Tests for the dispatch_webhooks task."""

    @pytest.fixture
    def db(self, venue_row):
        with patch("workers.tasks.SupabaseClient") as mock:
            mock.fetch_platform_setting.return_value = "https://hook.example.com/global"
            mock.fetch_venue.return_value = {
                **venue_row,
                "make_webhook_url": "https://hook.example.com/venue",
                "make_webhook_events": ["booking_created"],
            }
            yield mock

    def test_posts_to_global_and_venue_urls(self, db, booking):
        with patch("workers.tasks.httpx.post", return_value=MagicMock(status_code=200)) as post:
            result = dispatch_webhooks("booking_created", booking, VENUE_ID)

        assert result == {"webhooks": 2, "delivered": 2}
        urls = [c.args[0] for c in post.call_args_list]
        assert urls == ["https://hook.example.com/global", "https://hook.example.com/venue"]

        payload = post.call_args.kwargs["json"]
        assert payload["event_type"] == "booking_created"
        assert payload["data"]["id"] == "booking-abcdef123"
        assert "timestamp" in payload
        db.fetch_platform_setting.assert_called_once_with("make_webhook_bookings")

    def test_venue_not_subscribed(self, db, booking):
        with patch("workers.tasks.httpx.post", return_value=MagicMock(status_code=200)) as post:
            result = dispatch_webhooks("booking_cancelled", booking, VENUE_ID)

        assert result["webhooks"] == 1
        assert post.call_args.args[0] == "https://hook.example.com/global"

    def test_one_failing_url_does_not_stop_others(self, db, booking):
        ok = MagicMock(status_code=200)
        with patch("workers.tasks.httpx.post", side_effect=[httpx.ConnectError("refused"), ok]):
            result = dispatch_webhooks("booking_created", booking, VENUE_ID)

        assert result == {"webhooks": 2, "delivered": 1}

    def test_nothing_configured(self, db, booking):
        db.fetch_platform_setting.return_value = None
        db.fetch_venue.return_value = None

        with patch("workers.tasks.httpx.post") as post:
            result = dispatch_webhooks("booking_created", booking, VENUE_ID)

        assert result == {"webhooks": 0, "delivered": 0}
        post.assert_not_called()


# =============================================================================
# Dispatch Helpers
# =============================================================================

class TestDispatch:
    """Tests for the fire-and-forget enqueue helpers."""

    @pytest.fixture
    def tasks(self):
        with patch("workers.dispatch.create_notification") as notify, \
             patch("workers.dispatch.send_booking_confirmation_email") as confirm_email, \
             patch("workers.dispatch.send_booking_cancellation_email") as cancel_email, \
             patch("workers.dispatch.send_owner_booking_email") as owner_email, \
             patch("workers.dispatch.dispatch_webhooks") as hooks:
            yield MagicMock(
                notify=notify, confirm_email=confirm_email, cancel_email=cancel_email,
                owner_email=owner_email, hooks=hooks,
            )

    def test_confirmed_fans_out(self, tasks, booking):
        dispatch_booking_confirmed(booking, customer_email="me@example.com", owner_id=OWNER_ID)

        assert tasks.notify.delay.call_count == 2
        recipients = [c.kwargs["user_id"] for c in tasks.notify.delay.call_args_list]
        assert recipients == [USER_ID, OWNER_ID]
        tasks.confirm_email.delay.assert_called_once_with(booking, "me@example.com")
        tasks.owner_email.delay.assert_called_once_with(booking, "New Booking")
        tasks.hooks.delay.assert_called_once_with("booking_created", booking, VENUE_ID)

    def test_no_email_without_address(self, tasks, booking):
        dispatch_booking_confirmed(booking)

        tasks.confirm_email.delay.assert_not_called()
        assert tasks.notify.delay.call_count == 1

    def test_cancelled_fans_out(self, tasks, booking):
        dispatch_booking_cancelled(booking, customer_email="me@example.com", refunded=True)

        tasks.cancel_email.delay.assert_called_once_with(booking, "me@example.com", True)
        tasks.owner_email.delay.assert_called_once_with(booking, "Booking Cancelled")
        tasks.hooks.delay.assert_called_once_with("booking_cancelled", booking, VENUE_ID)
        assert "refund" in tasks.notify.delay.call_args.kwargs["message"]

    def test_broker_failure_is_swallowed(self, tasks, booking, caplog):
        tasks.notify.delay.side_effect = ConnectionError("redis down")

        dispatch_booking_confirmed(booking, customer_email="me@example.com")

        # Later side effects are still attempted
        tasks.confirm_email.delay.assert_called_once()
        tasks.hooks.delay.assert_called_once()
        assert "Failed to enqueue" in caplog.text

    def test_host_joining_own_game_not_notified(self, tasks, game_row):
        dispatch_game_joined(game_row, joiner_id=OWNER_ID)
        tasks.notify.delay.assert_not_called()

    def test_host_notified_of_new_player(self, tasks, game_row):
        dispatch_game_joined(game_row, joiner_id=USER_ID, joiner_name="Ani")

        kwargs = tasks.notify.delay.call_args.kwargs
        assert kwargs["user_id"] == OWNER_ID
        assert "Ani" in kwargs["message"]
