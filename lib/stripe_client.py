# =============================================================================
# lib/stripe_client.py - Stripe Client Wrapper
# =============================================================================
# Thin typed wrapper over the Stripe SDK for the three calls the booking
# protocol depends on:
# - create a hosted checkout session (amounts in minor units, opaque metadata)
# - retrieve a session (payment status + payment intent)
# - refund by payment intent
# plus webhook signature verification and the Stripe Connect calls owners
# use to set up payouts.
#
# Stripe objects are converted to plain dataclasses at this boundary so the
# services never touch SDK types.
#
# Usage:
#   from lib.stripe_client import StripeClient
#   session = StripeClient.retrieve_checkout_session("cs_test_...")
#   if session.is_paid: ...
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import stripe

from app.config import settings

logger = logging.getLogger(__name__)


class StripeClientError(Exception):
    """
    Error during a Stripe call.

    `retryable` is True for network/API outages, False for requests Stripe
    rejected on their merits.
    """

    def __init__(
        self,
        message: str,
        code: str = "STRIPE_ERROR",
        retryable: bool = True,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class CheckoutSessionNotFoundError(StripeClientError):
    """Stripe has no checkout session with this id."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Checkout session not found: {session_id}",
            code="SESSION_NOT_FOUND",
            retryable=False,
            details={"session_id": session_id},
        )


class WebhookSignatureError(StripeClientError):
    """The webhook payload does not match its Stripe-Signature header."""

    def __init__(self):
        super().__init__(
            message="Webhook signature verification failed",
            code="BAD_SIGNATURE",
            retryable=False,
        )


@dataclass
class CheckoutSession:
    """The fields of a Stripe Checkout Session the protocol reads."""

    id: str
    payment_status: str | None = None
    payment_intent_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    amount_total: int | None = None
    url: str | None = None
    customer_email: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @classmethod
    def from_stripe(cls, obj: Any) -> "CheckoutSession":
        payment_intent = getattr(obj, "payment_intent", None)
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_intent = getattr(payment_intent, "id", None)

        metadata = getattr(obj, "metadata", None) or {}

        return cls(
            id=obj.id,
            payment_status=getattr(obj, "payment_status", None),
            payment_intent_id=payment_intent,
            metadata={str(k): str(v) for k, v in metadata.items()},
            amount_total=getattr(obj, "amount_total", None),
            url=getattr(obj, "url", None),
            customer_email=getattr(obj, "customer_email", None),
        )


@dataclass
class ConnectAccount:
    """Payout readiness of an owner's Stripe Connect account."""

    id: str
    charges_enabled: bool = False
    details_submitted: bool = False

    @property
    def is_ready(self) -> bool:
        return self.charges_enabled and self.details_submitted

    @classmethod
    def from_stripe(cls, obj: Any) -> "ConnectAccount":
        return cls(
            id=obj.id,
            charges_enabled=bool(getattr(obj, "charges_enabled", False)),
            details_submitted=bool(getattr(obj, "details_submitted", False)),
        )


class StripeClient:
    """
    Typed wrapper for Stripe operations.

    All methods are class methods; the API key is applied on each call so a
    settings override in tests takes effect without re-importing.
    """

    @classmethod
    def _configure(cls) -> None:
        if not settings.STRIPE_SECRET_KEY:
            raise StripeClientError(
                message="Stripe is not configured",
                code="STRIPE_NOT_CONFIGURED",
                retryable=False,
            )
        stripe.api_key = settings.STRIPE_SECRET_KEY

    @classmethod
    def find_customer_id(cls, email: str) -> str | None:
        """Return the id of an existing Stripe customer with this email."""
        cls._configure()

        try:
            customers = stripe.Customer.list(email=email, limit=1)
            data = customers.data or []
            return data[0].id if data else None
        except stripe.StripeError as e:
            # Missing customer lookup only costs us a duplicate customer record
            logger.warning(f"Stripe customer lookup failed: {e}")
            return None

    @classmethod
    def create_checkout_session(
        cls,
        *,
        amount_minor: int,
        currency: str,
        product_name: str,
        description: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
        application_fee_minor: int | None = None,
        destination_account: str | None = None,
    ) -> CheckoutSession:
        """
        Create a hosted checkout session for a single line item.

        Args:
            amount_minor: Price in minor currency units
            metadata: Copied onto both the session and its payment intent
            application_fee_minor / destination_account: Stripe Connect
                destination charge; both or neither

        Returns:
            The created session (url is where the client should redirect)

        Raises:
            StripeClientError: If Stripe rejects the request or is unreachable
        """
        cls._configure()

        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": product_name, "description": description},
                        "unit_amount": amount_minor,
                    },
                    "quantity": 1,
                }
            ],
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }

        payment_intent_data: dict[str, Any] = {"metadata": metadata}
        if destination_account:
            payment_intent_data["application_fee_amount"] = application_fee_minor or 0
            payment_intent_data["transfer_data"] = {"destination": destination_account}
        params["payment_intent_data"] = payment_intent_data

        if customer_email:
            customer_id = cls.find_customer_id(customer_email)
            if customer_id:
                params["customer"] = customer_id
            else:
                params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(**params)
            logger.info(f"Created checkout session {session.id} for {amount_minor} {currency}")
            return CheckoutSession.from_stripe(session)
        except stripe.StripeError as e:
            raise StripeClientError(
                message=f"Failed to create checkout session: {e.user_message or e}",
                code="CREATE_SESSION_FAILED",
                retryable=not isinstance(e, stripe.InvalidRequestError),
                details={"amount_minor": amount_minor, "currency": currency},
            )

    @classmethod
    def retrieve_checkout_session(cls, session_id: str) -> CheckoutSession:
        """
        Fetch a checkout session from Stripe.

        Raises:
            CheckoutSessionNotFoundError: If the id is unknown
            StripeClientError: If Stripe is unreachable
        """
        cls._configure()

        try:
            session = stripe.checkout.Session.retrieve(session_id)
            return CheckoutSession.from_stripe(session)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                raise CheckoutSessionNotFoundError(session_id)
            raise StripeClientError(
                message=f"Failed to retrieve checkout session: {e}",
                code="RETRIEVE_SESSION_FAILED",
                retryable=False,
                details={"session_id": session_id},
            )
        except stripe.StripeError as e:
            raise StripeClientError(
                message=f"Failed to retrieve checkout session: {e}",
                code="RETRIEVE_SESSION_FAILED",
                details={"session_id": session_id},
            )

    @classmethod
    def create_refund(
        cls,
        payment_intent_id: str,
        reason: str = "requested_by_customer",
        metadata: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> str:
        """
        Refund a payment intent in full.

        Passing the same idempotency_key twice returns the first refund
        instead of attempting a second one.

        Returns:
            The refund id

        Raises:
            StripeClientError: If the refund could not be created
        """
        cls._configure()

        try:
            refund = stripe.Refund.create(
                payment_intent=payment_intent_id,
                reason=reason,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
            logger.info(f"Created refund {refund.id} for payment intent {payment_intent_id}")
            return refund.id
        except stripe.StripeError as e:
            raise StripeClientError(
                message=f"Failed to refund payment: {e}",
                code="REFUND_FAILED",
                details={"payment_intent_id": payment_intent_id},
            )

    @classmethod
    def construct_event(cls, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify and parse a webhook payload.

        Returns:
            The event as plain JSON (dicts and lists, no SDK objects)

        Raises:
            WebhookSignatureError: If the signature is missing or wrong
        """
        if not signature or not settings.STRIPE_WEBHOOK_SECRET:
            raise WebhookSignatureError()

        try:
            stripe.Webhook.construct_event(
                payload, signature, settings.STRIPE_WEBHOOK_SECRET
            )
        except (ValueError, stripe.SignatureVerificationError):
            raise WebhookSignatureError()

        return json.loads(payload)

    # -------------------------------------------------------------------------
    # Connect
    # -------------------------------------------------------------------------

    @classmethod
    def create_connect_account(cls, email: str | None) -> str:
        """
        Create an Express account able to take card payments and transfers.

        Returns:
            The new account id
        """
        cls._configure()

        try:
            account = stripe.Account.create(
                type="express",
                email=email,
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
            )
            logger.info(f"Created Connect account {account.id}")
            return account.id
        except stripe.StripeError as e:
            raise StripeClientError(
                message=f"Failed to create Connect account: {e}",
                code="CREATE_ACCOUNT_FAILED",
                retryable=not isinstance(e, stripe.InvalidRequestError),
            )

    @classmethod
    def create_account_link(cls, account_id: str, refresh_url: str, return_url: str) -> str:
        """Return a one-time onboarding URL for a Connect account."""
        cls._configure()

        try:
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )
            return link.url
        except stripe.StripeError as e:
            raise StripeClientError(
                message=f"Failed to create onboarding link: {e}",
                code="CREATE_ACCOUNT_LINK_FAILED",
                details={"account_id": account_id},
            )

    @classmethod
    def retrieve_account(cls, account_id: str) -> ConnectAccount:
        cls._configure()

        try:
            return ConnectAccount.from_stripe(stripe.Account.retrieve(account_id))
        except stripe.StripeError as e:
            raise StripeClientError(
                message=f"Failed to retrieve Connect account: {e}",
                code="RETRIEVE_ACCOUNT_FAILED",
                details={"account_id": account_id},
            )
