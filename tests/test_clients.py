# =============================================================================
# tests/test_clients.py - Supabase / Stripe Wrapper Tests
# =============================================================================
# The wrappers are exercised against mocked SDK clients; no network.
#
# Run with: pytest tests/test_clients.py -v
# =============================================================================

from unittest.mock import MagicMock, patch

import pytest
import stripe

from app.config import settings
from lib.stripe_client import (
    CheckoutSession,
    StripeClient,
    StripeClientError,
    WebhookSignatureError,
)
from lib.supabase_client import SupabaseClient, SupabaseClientError, UniqueViolationError
from lib.utils import percent_of, to_minor_units


class DuplicateKey(Exception):
    code = "23505"


# =============================================================================
# Supabase
# =============================================================================

class TestSupabaseInserts:
    """Tests for insert error mapping."""

    @pytest.fixture
    def table(self):
        client = MagicMock()
        with patch.object(SupabaseClient, "get_client", return_value=client):
            yield client.table.return_value

    def test_booking_insert_returns_row(self, table):
        table.insert.return_value.execute.return_value = MagicMock(data=[{"id": "b1"}])

        assert SupabaseClient.insert_booking({"venue_id": "v1"}) == {"id": "b1"}

    def test_unique_violation_is_typed(self, table):
        table.insert.return_value.execute.side_effect = DuplicateKey("duplicate key value")

        with pytest.raises(UniqueViolationError) as exc_info:
            SupabaseClient.insert_booking({
                "venue_id": "v1",
                "booking_date": "2026-01-19",
                "booking_time": "11:00",
            })

        assert exc_info.value.details["table"] == "bookings"
        assert exc_info.value.details["booking_time"] == "11:00"

    def test_other_failures_are_generic(self, table):
        table.insert.return_value.execute.side_effect = RuntimeError("connection reset")

        with pytest.raises(SupabaseClientError) as exc_info:
            SupabaseClient.insert_game_participant({"game_id": "g1", "user_id": "u1"})

        assert not isinstance(exc_info.value, UniqueViolationError)
        assert exc_info.value.code == "INSERT_PARTICIPANT_FAILED"

    def test_empty_insert_is_an_error(self, table):
        table.insert.return_value.execute.return_value = MagicMock(data=[])

        with pytest.raises(SupabaseClientError) as exc_info:
            SupabaseClient.insert_booking({"venue_id": "v1"})

        assert exc_info.value.code == "INSERT_NO_DATA"

    def test_profile_update_filters_by_user(self):
        client = MagicMock()
        update = client.table.return_value.update.return_value
        update.eq.return_value.execute.return_value = MagicMock(data=[{"user_id": "u1"}])

        with patch.object(SupabaseClient, "get_client", return_value=client):
            assert SupabaseClient.update_profile("u1", {"stripe_account_id": "acct_1"}) == {"user_id": "u1"}

        client.table.assert_called_once_with("profiles")
        update.eq.assert_called_once_with("user_id", "u1")


# =============================================================================
# Stripe
# =============================================================================

class TestStripeClient:
    """Tests for Stripe boundary conversion and webhook verification."""

    def test_session_from_stripe_object(self):
        obj = MagicMock(
            id="cs_1",
            payment_status="paid",
            payment_intent=MagicMock(id="pi_1"),
            metadata={"userId": "u1", "durationHours": 2},
            amount_total=10000,
            url=None,
            customer_email="me@example.com",
        )

        session = CheckoutSession.from_stripe(obj)

        assert session.is_paid
        assert session.payment_intent_id == "pi_1"
        assert session.metadata == {"userId": "u1", "durationHours": "2"}

    def test_missing_signature_rejected(self):
        with pytest.raises(WebhookSignatureError):
            StripeClient.construct_event(b"{}", None)

    def test_bad_signature_rejected(self):
        with patch("lib.stripe_client.stripe.Webhook.construct_event",
                   side_effect=stripe.SignatureVerificationError("bad", "sig")):
            with pytest.raises(WebhookSignatureError):
                StripeClient.construct_event(b"{}", "t=1,v1=bad")

    def test_verified_event_is_plain_json(self):
        payload = b'{"type": "checkout.session.completed", "data": {"object": {"id": "cs_1"}}}'

        with patch("lib.stripe_client.stripe.Webhook.construct_event"):
            event = StripeClient.construct_event(payload, "t=1,v1=ok")

        assert event["data"]["object"]["id"] == "cs_1"

    def test_refund_passes_idempotency_key(self):
        with patch("lib.stripe_client.stripe.Refund.create", return_value=MagicMock(id="re_1")) as create:
            assert StripeClient.create_refund("pi_1", idempotency_key="cancel-b1") == "re_1"

        assert create.call_args.kwargs["idempotency_key"] == "cancel-b1"
        assert create.call_args.kwargs["payment_intent"] == "pi_1"

    def test_unconfigured_refund_fails_fast(self):
        with patch.object(settings, "STRIPE_SECRET_KEY", ""):
            with pytest.raises(StripeClientError) as exc_info:
                StripeClient.create_refund("pi_1")

        assert exc_info.value.code == "STRIPE_NOT_CONFIGURED"

    def test_connect_account_readiness(self):
        obj = MagicMock(id="acct_1", charges_enabled=True, details_submitted=False)
        with patch("lib.stripe_client.stripe.Account.retrieve", return_value=obj):
            account = StripeClient.retrieve_account("acct_1")

        assert account.charges_enabled is True
        assert not account.is_ready

    def test_connect_account_requests_payout_capabilities(self):
        with patch("lib.stripe_client.stripe.Account.create", return_value=MagicMock(id="acct_1")) as create:
            assert StripeClient.create_connect_account("owner@example.com") == "acct_1"

        kwargs = create.call_args.kwargs
        assert kwargs["type"] == "express"
        assert kwargs["capabilities"]["transfers"] == {"requested": True}


# =============================================================================
# Money
# =============================================================================

class TestMoney:
    """Tests for minor-unit conversion."""

    @pytest.mark.parametrize("amount,minor", [(50, 5000), (12.345, 1235), (0.1 + 0.2, 30)])
    def test_to_minor_units(self, amount, minor):
        assert to_minor_units(amount) == minor

    def test_percent_of(self):
        assert percent_of(10000, 10) == 1000
        assert percent_of(5, 10) == 1
