# =============================================================================
# core/services/game_service.py - Pickup Game Participation
# =============================================================================
# Joining a game follows the booking protocol with (game_id, user_id) as the
# contended key: free games insert directly, paid games go through checkout
# and verification, and a full game after payment is refunded like a lost
# slot race.
# =============================================================================

import logging

from app.exceptions import (
    GameFullError,
    GameNotFoundError,
    InvalidSessionError,
    UpstreamProviderError,
    ValidationError,
)
from core.models.booking import CheckoutMode, CheckoutResult, PaymentState
from core.models.game import Game, GameParticipant, ParticipationResult
from core.services.checkout import (
    KIND_GAME,
    refund_lost_race,
    retrieve_paid_session,
    start_checkout,
)
from lib.stripe_client import CheckoutSession
from lib.supabase_client import SupabaseClient, SupabaseClientError, UniqueViolationError
from workers.dispatch import dispatch_game_joined

logger = logging.getLogger(__name__)


class GameService:
    """Service for joining pickup games."""

    @staticmethod
    def _load_game(game_id: str) -> Game:
        try:
            row = SupabaseClient.fetch_game(game_id)
        except SupabaseClientError as e:
            logger.error(f"Failed to load game {game_id}: {e}")
            raise UpstreamProviderError("supabase", {"game_id": game_id})

        if not row:
            raise GameNotFoundError(game_id)

        game = Game(**row)
        if not game.is_joinable:
            raise ValidationError(f"This game is {game.status} and can no longer be joined")
        return game

    @staticmethod
    def _existing_participant(game_id: str, user_id: str) -> GameParticipant | None:
        try:
            row = SupabaseClient.fetch_game_participant(game_id, user_id)
        except SupabaseClientError as e:
            logger.error(f"Failed to look up participant {user_id} in game {game_id}: {e}")
            raise UpstreamProviderError("supabase", {"game_id": game_id})
        return GameParticipant(**row) if row else None

    @staticmethod
    def _add_participant(
        game: Game,
        user_id: str,
        session: CheckoutSession | None = None,
    ) -> ParticipationResult:
        """
        Insert the participant row, claim a place, notify the host.

        A unique violation means a concurrent request for the same user got
        there first, which is the same outcome as having joined. The place
        claim is the capacity guard: if it fails the row is removed, a paid
        session is refunded and GameFullError raised.
        """
        payment_intent_id = session.payment_intent_id if session else None
        try:
            row = SupabaseClient.insert_game_participant({
                "game_id": game.id,
                "user_id": user_id,
                "status": "confirmed",
                "payment_intent_id": payment_intent_id,
            })
        except UniqueViolationError:
            existing = GameService._existing_participant(game.id, user_id)
            if existing is None:
                raise UpstreamProviderError("supabase", {"game_id": game.id})
            return ParticipationResult(participant=existing, state=PaymentState.ALREADY_BOOKED)
        except SupabaseClientError as e:
            logger.error(f"Failed to add user {user_id} to game {game.id}: {e}")
            raise UpstreamProviderError("supabase", {"game_id": game.id})

        try:
            claimed = SupabaseClient.claim_game_place(game.id)
        except SupabaseClientError as e:
            logger.error(f"Could not claim a place in game {game.id} for user {user_id}: {e}")
            GameService._release(row, game.id)
            raise UpstreamProviderError("supabase", {"game_id": game.id})

        if not claimed:
            logger.warning(f"Game {game.id} filled up before user {user_id} got a place")
            GameService._release(row, game.id)
            refunded = refund_lost_race(session, "game_full") if session else None
            raise GameFullError(game.id, refunded=refunded)

        joiner_name = GameService._display_name(user_id)
        dispatch_game_joined(game.model_dump(mode="json"), user_id, joiner_name)

        logger.info(f"User {user_id} joined game {game.id}")
        return ParticipationResult(participant=GameParticipant(**row), state=PaymentState.BOOKED)

    @staticmethod
    def _release(row: dict, game_id: str) -> None:
        try:
            SupabaseClient.delete_game_participant(row["id"])
        except SupabaseClientError as e:
            logger.error(f"RECONCILE: participant {row['id']} in game {game_id} holds no place: {e}")

    @staticmethod
    def _display_name(user_id: str) -> str | None:
        try:
            profile = SupabaseClient.fetch_profile(user_id)
        except SupabaseClientError:
            return None
        return (profile or {}).get("full_name")

    # -------------------------------------------------------------------------
    # Free Games
    # -------------------------------------------------------------------------

    @staticmethod
    def join_free_game(game_id: str, user_id: str) -> ParticipationResult:
        """
        Join a free game.

        Joining twice returns the first participation (state ALREADY_BOOKED)
        and does not notify the host again.

        Raises:
            GameNotFoundError: Unknown game
            ValidationError: The game charges a fee, or is cancelled/completed
            GameFullError: No places left
        """
        game = GameService._load_game(game_id)
        if not game.is_free:
            raise ValidationError("This game has a fee; start a checkout instead")

        existing = GameService._existing_participant(game_id, user_id)
        if existing is not None:
            return ParticipationResult(participant=existing, state=PaymentState.ALREADY_BOOKED)

        if game.is_full:
            raise GameFullError(game_id)

        return GameService._add_participant(game, user_id)

    # -------------------------------------------------------------------------
    # Paid Games
    # -------------------------------------------------------------------------

    @staticmethod
    def create_game_checkout(game_id: str, user_id: str, email: str | None) -> CheckoutResult:
        """
        Start a checkout for a paid game.

        Raises:
            ValidationError: The game is free (join it directly)
            GameFullError: No places left (nothing charged)
        """
        game = GameService._load_game(game_id)
        if game.is_free:
            raise ValidationError("This game is free; join it directly")

        existing = GameService._existing_participant(game_id, user_id)
        if existing is not None:
            raise ValidationError("You have already joined this game")

        if game.is_full:
            raise GameFullError(game_id)

        when = ""
        if game.game_date:
            when = f"{game.game_date:%a, %b %d}"
            if game.game_time:
                when += f" at {game.game_time:%H:%M}"

        session = start_checkout(
            kind=KIND_GAME,
            price=game.price_per_player,
            product_name=f"Join game: {game.title}",
            description=when or game.title,
            metadata={
                "userId": user_id,
                "gameId": game.id,
                "gameTitle": game.title,
                "hostId": game.host_id,
                "userEmail": email or "",
            },
            cancel_path=f"/games/{game.id}",
            customer_email=email,
            destination_account=None,
        )
        return CheckoutResult(mode=CheckoutMode.STRIPE, url=session.url, session_id=session.id)

    @staticmethod
    def verify_game_payment(session_id: str | None, user_id: str | None = None) -> ParticipationResult:
        """
        Add the payer to the game once their checkout is paid.

        Idempotent like booking verification. If the game filled up while the
        payer was at checkout, the payment is refunded and GameFullError raised
        with details.refunded.
        """
        session = retrieve_paid_session(session_id, user_id, KIND_GAME)
        game_id = session.metadata.get("gameId")
        if not game_id:
            raise InvalidSessionError(session.id)

        payer_id = session.metadata["userId"]

        existing = GameService._existing_participant(game_id, payer_id)
        if existing is not None:
            return ParticipationResult(participant=existing, state=PaymentState.ALREADY_BOOKED)

        try:
            game = GameService._load_game(game_id)
        except ValidationError:
            logger.warning(f"Paid session {session.id} for game {game_id} that is no longer joinable")
            raise GameFullError(game_id, refunded=refund_lost_race(session, "game_closed"))

        if game.is_full:
            logger.warning(f"Paid session {session.id} arrived after game {game_id} filled up")
            raise GameFullError(game_id, refunded=refund_lost_race(session, "game_full"))

        return GameService._add_participant(game, payer_id, session=session)
