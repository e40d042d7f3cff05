# =============================================================================
# core/services/webhook_service.py - Stripe Webhook Handling
# =============================================================================
# checkout.session.completed is the server-side twin of the success-page
# redirect: it runs the same verification without a caller, so a payer who
# closes the tab still gets their booking. Delayed payment methods (bank
# debits) arrive unpaid on completed and paid on async_payment_succeeded.
# =============================================================================

import logging
from typing import Any

from app.exceptions import (
    GameFullError,
    InvalidSignatureError,
    SlotConflictError,
)
from core.services.booking_service import BookingService
from core.services.checkout import KIND_BOOKING, KIND_GAME
from core.services.game_service import GameService
from lib.stripe_client import StripeClient, WebhookSignatureError

logger = logging.getLogger(__name__)

HANDLED_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}


class WebhookService:
    """Service for inbound Stripe events."""

    @staticmethod
    def handle_stripe_event(payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify and process a Stripe webhook.

        Returns:
            {"received": True, "event_type": ..., "outcome": ...}

        Raises:
            InvalidSignatureError: Signature missing or wrong
            UpstreamProviderError: Supabase/Stripe failure (Stripe retries)
        """
        try:
            event = StripeClient.construct_event(payload, signature)
        except WebhookSignatureError:
            logger.warning("Rejected Stripe webhook with a bad signature")
            raise InvalidSignatureError()

        event_type = event["type"]
        if event_type not in HANDLED_EVENTS:
            logger.debug(f"Ignoring Stripe event {event_type}")
            return {"received": True, "event_type": event_type, "outcome": "ignored"}

        obj = event["data"]["object"]
        session_id = obj["id"]
        metadata = obj.get("metadata") or {}
        kind = metadata.get("kind", KIND_BOOKING)

        if obj.get("payment_status") != "paid":
            # Async payment methods settle later with async_payment_succeeded
            logger.info(f"Session {session_id} completed unpaid, waiting")
            return {"received": True, "event_type": event_type, "outcome": "unpaid"}

        try:
            if kind == KIND_GAME:
                result = GameService.verify_game_payment(session_id)
            else:
                result = BookingService.verify_payment(session_id)
        except (SlotConflictError, GameFullError) as e:
            # The refund is already issued; a retry from Stripe would change nothing
            logger.warning(f"Webhook for session {session_id} lost its slot: {e.details}")
            return {"received": True, "event_type": event_type, "outcome": "conflict"}

        logger.info(f"Webhook processed session {session_id}: {result.state.value}")
        return {"received": True, "event_type": event_type, "outcome": result.state.value}
