# =============================================================================
# tests/test_webhook_service.py - Stripe Webhook Tests
# =============================================================================
# Run with: pytest tests/test_webhook_service.py -v
# =============================================================================

from unittest.mock import MagicMock, patch

import pytest

from app.exceptions import (
    GameFullError,
    InvalidSignatureError,
    SlotConflictError,
    UpstreamProviderError,
)
from core.models import PaymentState
from core.services.webhook_service import WebhookService
from lib.stripe_client import WebhookSignatureError
from tests.conftest import GAME_ID, VENUE_ID


def completed_event(kind="booking", payment_status="paid", event_type="checkout.session.completed"):
    return {
        "id": "evt_1",
        "type": event_type,
        "data": {
            "object": {
                "id": "cs_1",
                "payment_status": payment_status,
                "metadata": {"kind": kind},
            }
        },
    }


@pytest.fixture
def services():
    with patch("core.services.webhook_service.StripeClient") as stripe, \
         patch("core.services.webhook_service.BookingService") as bookings, \
         patch("core.services.webhook_service.GameService") as games:
        bookings.verify_payment.return_value = MagicMock(state=PaymentState.BOOKED)
        games.verify_game_payment.return_value = MagicMock(state=PaymentState.ALREADY_BOOKED)
        yield MagicMock(stripe=stripe, bookings=bookings, games=games)


class TestHandleStripeEvent:
    """Tests for WebhookService.handle_stripe_event."""

    def test_bad_signature(self, services):
        services.stripe.construct_event.side_effect = WebhookSignatureError()

        with pytest.raises(InvalidSignatureError):
            WebhookService.handle_stripe_event(b"{}", "t=1,v1=bad")

        services.bookings.verify_payment.assert_not_called()

    def test_booking_session_verified_without_caller(self, services):
        services.stripe.construct_event.return_value = completed_event()

        result = WebhookService.handle_stripe_event(b"{}", "sig")

        assert result == {
            "received": True,
            "event_type": "checkout.session.completed",
            "outcome": "booked",
        }
        services.bookings.verify_payment.assert_called_once_with("cs_1")

    def test_game_session_routed_by_kind(self, services):
        services.stripe.construct_event.return_value = completed_event(kind="game")

        result = WebhookService.handle_stripe_event(b"{}", "sig")

        assert result["outcome"] == "already_booked"
        services.games.verify_game_payment.assert_called_once_with("cs_1")
        services.bookings.verify_payment.assert_not_called()

    def test_other_events_ignored(self, services):
        services.stripe.construct_event.return_value = {"type": "invoice.paid", "data": {"object": {}}}

        result = WebhookService.handle_stripe_event(b"{}", "sig")

        assert result["outcome"] == "ignored"
        services.bookings.verify_payment.assert_not_called()

    def test_unpaid_session_waits(self, services):
        services.stripe.construct_event.return_value = completed_event(payment_status="unpaid")

        assert WebhookService.handle_stripe_event(b"{}", "sig")["outcome"] == "unpaid"
        services.bookings.verify_payment.assert_not_called()

    @pytest.mark.parametrize("kind,error", [
        ("booking", SlotConflictError(VENUE_ID, "2026-01-19", "11:00", refunded=True)),
        ("game", GameFullError(GAME_ID, refunded=True)),
    ])
    def test_lost_race_is_acknowledged(self, services, kind, error):
        services.stripe.construct_event.return_value = completed_event(kind=kind)
        services.bookings.verify_payment.side_effect = error
        services.games.verify_game_payment.side_effect = error

        assert WebhookService.handle_stripe_event(b"{}", "sig")["outcome"] == "conflict"

    def test_upstream_failure_propagates(self, services):
        services.stripe.construct_event.return_value = completed_event()
        services.bookings.verify_payment.side_effect = UpstreamProviderError("supabase")

        with pytest.raises(UpstreamProviderError):
            WebhookService.handle_stripe_event(b"{}", "sig")

    def test_delayed_payment_books_on_async_success(self, services):
        services.stripe.construct_event.return_value = completed_event(
            event_type="checkout.session.async_payment_succeeded"
        )

        result = WebhookService.handle_stripe_event(b"{}", "sig")

        assert result["outcome"] == "booked"
        services.bookings.verify_payment.assert_called_once_with("cs_1")
