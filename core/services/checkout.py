# =============================================================================
# core/services/checkout.py - Shared Checkout Steps
# =============================================================================
# Steps of the payment protocol that bookings and games share:
# - build the hosted checkout session for a priced item
# - re-fetch a session from Stripe and check it was paid by the caller
# - the compensating refund after a paid request lost its slot
#
# Stripe is always the source of truth for what was paid; nothing the client
# sends about amounts or payment status is trusted.
# =============================================================================

import logging

from app.config import settings
from app.exceptions import (
    InvalidSessionError,
    PaymentIncompleteError,
    SessionOwnershipError,
    UpstreamProviderError,
)
from lib.stripe_client import (
    CheckoutSession,
    CheckoutSessionNotFoundError,
    StripeClient,
    StripeClientError,
)
from lib.utils import percent_of, to_minor_units

logger = logging.getLogger(__name__)

KIND_BOOKING = "booking"
KIND_GAME = "game"

SUCCESS_PATHS = {
    KIND_BOOKING: "/booking-success",
    KIND_GAME: "/game-success",
}


def success_url(kind: str) -> str:
    """Where Stripe sends the payer back; Stripe fills in the session id."""
    return f"{settings.FRONTEND_URL}{SUCCESS_PATHS[kind]}?session_id={{CHECKOUT_SESSION_ID}}"


def start_checkout(
    *,
    kind: str,
    price: float,
    product_name: str,
    description: str,
    metadata: dict[str, str],
    cancel_path: str,
    customer_email: str | None,
    destination_account: str | None,
) -> CheckoutSession:
    """
    Create a Stripe Checkout Session for one priced item.

    With a destination account the platform keeps PLATFORM_FEE_PERCENT and
    the rest is transferred to the account.

    Raises:
        UpstreamProviderError: If Stripe cannot create the session
    """
    amount_minor = to_minor_units(price)
    fee_minor = percent_of(amount_minor, settings.PLATFORM_FEE_PERCENT) if destination_account else None

    try:
        return StripeClient.create_checkout_session(
            amount_minor=amount_minor,
            currency=settings.CHECKOUT_CURRENCY,
            product_name=product_name,
            description=description,
            metadata={"kind": kind, **metadata},
            success_url=success_url(kind),
            cancel_url=f"{settings.FRONTEND_URL}{cancel_path}",
            customer_email=customer_email,
            application_fee_minor=fee_minor,
            destination_account=destination_account,
        )
    except StripeClientError as e:
        logger.error(f"Checkout session creation failed ({kind}, {metadata}): {e}")
        raise UpstreamProviderError("stripe", {"kind": kind})


def retrieve_paid_session(
    session_id: str | None,
    caller_id: str | None,
    kind: str,
) -> CheckoutSession:
    """
    Fetch a checkout session and check it can be fulfilled.

    Args:
        session_id: Checkout session id from the client or the webhook
        caller_id: Authenticated user; None on the webhook path, where the
            signed event is trusted instead
        kind: Expected metadata.kind ("booking" or "game")

    Raises:
        InvalidSessionError: Missing or unknown id, or a session of another kind
        UpstreamProviderError: Stripe is unreachable
        SessionOwnershipError: Caller is not the payer in the metadata
        PaymentIncompleteError: Session not paid
    """
    if not session_id or not session_id.strip():
        logger.warning(f"Verification of a {kind} checkout without a session id (caller {caller_id})")
        raise InvalidSessionError(None)

    try:
        session = StripeClient.retrieve_checkout_session(session_id)
    except CheckoutSessionNotFoundError:
        logger.warning(f"Checkout session {session_id} is unknown to Stripe (caller {caller_id})")
        raise InvalidSessionError(session_id)
    except StripeClientError as e:
        logger.error(f"Could not retrieve checkout session {session_id}: {e}")
        raise UpstreamProviderError("stripe", {"session_id": session_id})

    if session.metadata.get("kind", KIND_BOOKING) != kind:
        logger.warning(f"Session {session_id} is not a {kind} checkout")
        raise InvalidSessionError(session_id)

    payer_id = session.metadata.get("userId")
    if not payer_id:
        logger.warning(f"Session {session_id} carries no userId in its metadata")
        raise InvalidSessionError(session_id)

    if caller_id is not None and caller_id != payer_id:
        logger.warning(f"User {caller_id} tried to verify session {session_id} paid by {payer_id}")
        raise SessionOwnershipError(session_id)

    if not session.is_paid:
        logger.warning(f"Session {session_id} not paid yet (payment_status={session.payment_status})")
        raise PaymentIncompleteError(session_id, session.payment_status)

    return session


def refund_lost_race(session: CheckoutSession, reason: str) -> bool:
    """
    Refund a paid session whose booking could not be created.

    Best effort: a failed refund is logged at ERROR with the identifiers
    needed for manual reconciliation and reported as False.
    """
    payment_intent_id = session.payment_intent_id
    if not payment_intent_id:
        logger.error(
            f"RECONCILE: session {session.id} lost its slot ({reason}) "
            f"but has no payment intent to refund"
        )
        return False

    try:
        refund_id = StripeClient.create_refund(
            payment_intent_id,
            reason="requested_by_customer",
            metadata={"session_id": session.id, "reason": reason},
            idempotency_key=f"conflict-{session.id}",
        )
        logger.info(f"Refunded session {session.id} ({reason}): refund {refund_id}")
        return True
    except StripeClientError as e:
        logger.error(
            f"RECONCILE: refund failed for session {session.id}, "
            f"payment intent {payment_intent_id} ({reason}): {e}"
        )
        return False
