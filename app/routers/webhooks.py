# =============================================================================
# app/routers/webhooks.py - Inbound Provider Webhooks
# =============================================================================
# Authenticated by the Stripe-Signature header, not by a user token.
# =============================================================================

from fastapi import APIRouter, Header, Request

from core.services.webhook_service import WebhookService

router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
):
    """
    Receive Stripe events.

    The raw body is needed for signature verification, so it is read
    before any JSON parsing.
    """
    payload = await request.body()
    return WebhookService.handle_stripe_event(payload, stripe_signature)
