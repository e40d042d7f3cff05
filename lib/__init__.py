# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains the provider wrappers:
# - supabase_client.py: Typed Supabase wrapper for database operations
# - stripe_client.py: Checkout sessions, refunds, webhook verification
# - email_client.py: Resend email delivery and booking email bodies
# - utils.py: Shared utilities (UUID normalization, money in minor units)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.supabase_client import SupabaseClient, SupabaseClientError, UniqueViolationError
from lib.stripe_client import (
    CheckoutSession,
    CheckoutSessionNotFoundError,
    StripeClient,
    StripeClientError,
    WebhookSignatureError,
)
from lib.utils import normalize_uuid, percent_of, to_minor_units

__all__ = [
    # Supabase
    "SupabaseClient",
    "SupabaseClientError",
    "UniqueViolationError",
    # Stripe
    "CheckoutSession",
    "CheckoutSessionNotFoundError",
    "StripeClient",
    "StripeClientError",
    "WebhookSignatureError",
    # Utils
    "normalize_uuid",
    "percent_of",
    "to_minor_units",
]
