# =============================================================================
# tests/test_game_service.py - Game Participation Tests
# =============================================================================
# Run with: pytest tests/test_game_service.py -v
# =============================================================================

from unittest.mock import MagicMock, patch

import pytest

from app.exceptions import (
    GameFullError,
    GameNotFoundError,
    UpstreamProviderError,
    ValidationError,
)
from core.models import CheckoutMode, PaymentState
from core.services.game_service import GameService
from lib.stripe_client import CheckoutSession, StripeClientError
from lib.supabase_client import SupabaseClientError, UniqueViolationError
from tests.conftest import GAME_ID, OTHER_USER_ID, OWNER_ID, USER_ID


def participant_row(user_id=USER_ID, payment_intent_id=None):
    return {
        "id": f"participant-{user_id[:4]}",
        "game_id": GAME_ID,
        "user_id": user_id,
        "status": "confirmed",
        "payment_intent_id": payment_intent_id,
    }


@pytest.fixture
def db(game_row):
    mock = MagicMock()
    mock.fetch_game.return_value = game_row
    mock.fetch_game_participant.return_value = None
    mock.insert_game_participant.side_effect = lambda row: {"id": "participant-new", **row}
    mock.fetch_profile.return_value = {"full_name": "Ani"}
    mock.claim_game_place.return_value = True

    with patch("core.services.game_service.SupabaseClient", mock):
        yield mock


@pytest.fixture
def notify():
    with patch("core.services.game_service.dispatch_game_joined") as mock:
        yield mock


@pytest.fixture
def stripe():
    mock = MagicMock()
    mock.create_checkout_session.return_value = CheckoutSession(id="cs_game", url="https://checkout.stripe.com/g")
    mock.create_refund.return_value = "re_1"

    with patch("core.services.checkout.StripeClient", mock):
        yield mock


def game_session(user_id=USER_ID):
    return CheckoutSession(
        id="cs_game",
        payment_status="paid",
        payment_intent_id="pi_game",
        metadata={"kind": "game", "userId": user_id, "gameId": GAME_ID},
    )


# =============================================================================
# Free Games
# =============================================================================

class TestJoinFreeGame:
    """Tests for GameService.join_free_game."""

    def test_joins_and_notifies_host(self, db, notify):
        result = GameService.join_free_game(GAME_ID, USER_ID)

        assert result.state == PaymentState.BOOKED
        assert not result.already_joined
        db.claim_game_place.assert_called_once_with(GAME_ID)
        notify.assert_called_once()
        game, joiner_id, joiner_name = notify.call_args.args
        assert game["host_id"] == OWNER_ID
        assert joiner_id == USER_ID
        assert joiner_name == "Ani"

    def test_join_twice_notifies_once(self, db, notify):
        rows = {}

        def insert(row):
            rows["row"] = {"id": "participant-new", **row}
            return rows["row"]

        db.insert_game_participant.side_effect = insert
        db.fetch_game_participant.side_effect = lambda game_id, user_id: rows.get("row")

        first = GameService.join_free_game(GAME_ID, USER_ID)
        second = GameService.join_free_game(GAME_ID, USER_ID)

        assert first.state == PaymentState.BOOKED
        assert second.already_joined
        assert second.participant.id == first.participant.id
        assert db.insert_game_participant.call_count == 1
        assert notify.call_count == 1

    def test_concurrent_join_returns_existing(self, db, notify):
        db.fetch_game_participant.side_effect = [None, participant_row()]
        db.insert_game_participant.side_effect = UniqueViolationError("game_participants")

        result = GameService.join_free_game(GAME_ID, USER_ID)

        assert result.already_joined
        db.claim_game_place.assert_not_called()
        notify.assert_not_called()

    def test_unknown_game(self, db, notify):
        db.fetch_game.return_value = None

        with pytest.raises(GameNotFoundError):
            GameService.join_free_game(GAME_ID, USER_ID)

    def test_full_game(self, db, notify, game_row):
        db.fetch_game.return_value = {**game_row, "current_players": 10}

        with pytest.raises(GameFullError):
            GameService.join_free_game(GAME_ID, USER_ID)

        db.insert_game_participant.assert_not_called()

    def test_paid_game_needs_checkout(self, db, notify, game_row):
        db.fetch_game.return_value = {**game_row, "price_per_player": 1500}

        with pytest.raises(ValidationError):
            GameService.join_free_game(GAME_ID, USER_ID)

    def test_cancelled_game(self, db, notify, game_row):
        db.fetch_game.return_value = {**game_row, "status": "cancelled"}

        with pytest.raises(ValidationError):
            GameService.join_free_game(GAME_ID, USER_ID)

    def test_last_place_taken_concurrently(self, db, notify, game_row):
        # Both joiners read 9/10; the second claim finds the game full
        db.fetch_game.return_value = {**game_row, "current_players": 9}
        db.claim_game_place.return_value = False

        with pytest.raises(GameFullError) as exc_info:
            GameService.join_free_game(GAME_ID, USER_ID)

        assert "refunded" not in exc_info.value.details
        db.delete_game_participant.assert_called_once_with("participant-new")
        notify.assert_not_called()

    def test_claim_failure_removes_participation(self, db, notify):
        db.claim_game_place.side_effect = SupabaseClientError("rpc failed")

        with pytest.raises(UpstreamProviderError):
            GameService.join_free_game(GAME_ID, USER_ID)

        db.delete_game_participant.assert_called_once_with("participant-new")
        notify.assert_not_called()

    def test_database_down(self, db, notify):
        db.fetch_game.side_effect = SupabaseClientError("unreachable")

        with pytest.raises(UpstreamProviderError):
            GameService.join_free_game(GAME_ID, USER_ID)


# =============================================================================
# Paid Games
# =============================================================================

class TestPaidGames:
    """Tests for game checkout and verification."""

    @pytest.fixture(autouse=True)
    def _paid(self, db, game_row):
        db.fetch_game.return_value = {**game_row, "price_per_player": 1500}

    def test_checkout(self, db, notify, stripe):
        result = GameService.create_game_checkout(GAME_ID, USER_ID, "me@example.com")

        assert result.mode == CheckoutMode.STRIPE
        assert result.session_id == "cs_game"
        kwargs = stripe.create_checkout_session.call_args.kwargs
        assert kwargs["amount_minor"] == 150000
        assert kwargs["metadata"]["kind"] == "game"
        assert kwargs["metadata"]["gameId"] == GAME_ID

    def test_checkout_for_free_game_rejected(self, db, notify, stripe, game_row):
        db.fetch_game.return_value = game_row

        with pytest.raises(ValidationError):
            GameService.create_game_checkout(GAME_ID, USER_ID, None)

    def test_verify_adds_participant(self, db, notify, stripe):
        stripe.retrieve_checkout_session.return_value = game_session()

        result = GameService.verify_game_payment("cs_game", user_id=USER_ID)

        assert result.state == PaymentState.BOOKED
        assert db.insert_game_participant.call_args.args[0]["payment_intent_id"] == "pi_game"
        stripe.create_refund.assert_not_called()

    def test_verify_is_idempotent(self, db, notify, stripe):
        stripe.retrieve_checkout_session.return_value = game_session()
        db.fetch_game_participant.return_value = participant_row(payment_intent_id="pi_game")

        result = GameService.verify_game_payment("cs_game", user_id=USER_ID)

        assert result.already_joined
        db.insert_game_participant.assert_not_called()

    def test_full_after_payment_refunds(self, db, notify, stripe, game_row):
        stripe.retrieve_checkout_session.return_value = game_session()
        db.fetch_game.return_value = {**game_row, "price_per_player": 1500, "current_players": 10}

        with pytest.raises(GameFullError) as exc_info:
            GameService.verify_game_payment("cs_game", user_id=USER_ID)

        assert exc_info.value.details["refunded"] is True
        assert stripe.create_refund.call_args.args[0] == "pi_game"

    def test_full_and_refund_failed(self, db, notify, stripe, game_row):
        stripe.retrieve_checkout_session.return_value = game_session()
        stripe.create_refund.side_effect = StripeClientError("down")
        db.fetch_game.return_value = {**game_row, "price_per_player": 1500, "current_players": 10}

        with pytest.raises(GameFullError) as exc_info:
            GameService.verify_game_payment("cs_game", user_id=USER_ID)

        assert exc_info.value.details["refunded"] is False

    def test_two_payers_for_last_place(self, db, notify, stripe, game_row):
        db.fetch_game.return_value = {**game_row, "price_per_player": 1500, "current_players": 9}
        db.claim_game_place.side_effect = [True, False]
        stripe.retrieve_checkout_session.side_effect = [
            game_session(),
            CheckoutSession(
                id="cs_other",
                payment_status="paid",
                payment_intent_id="pi_other",
                metadata={"kind": "game", "userId": OTHER_USER_ID, "gameId": GAME_ID},
            ),
        ]

        first = GameService.verify_game_payment("cs_game", user_id=USER_ID)
        with pytest.raises(GameFullError) as exc_info:
            GameService.verify_game_payment("cs_other", user_id=OTHER_USER_ID)

        assert first.state == PaymentState.BOOKED
        assert exc_info.value.details["refunded"] is True
        assert stripe.create_refund.call_args.args[0] == "pi_other"
        assert db.insert_game_participant.call_count == 2
        db.delete_game_participant.assert_called_once()
        notify.assert_called_once()
