# =============================================================================
# core/services/connect_service.py - Owner Payout Onboarding
# =============================================================================
# Venue owners receive their share of paid bookings through a Stripe Connect
# Express account. This service creates the account on first use, hands out
# onboarding links, and mirrors Stripe's readiness flags onto the profile.
#
# profiles.stripe_onboarding_completed is what checkout reads to decide
# between a destination charge and demo mode, so it is only ever set from
# what Stripe reports for the account.
# =============================================================================

import logging

from app.config import settings
from app.exceptions import UpstreamProviderError, ValidationError
from core.models.payout import PayoutStatus
from lib.stripe_client import StripeClient, StripeClientError
from lib.supabase_client import SupabaseClient, SupabaseClientError

logger = logging.getLogger(__name__)

DASHBOARD_PATH = "/owner-dashboard"


class ConnectService:
    """Stripe Connect onboarding for venue owners."""

    @staticmethod
    def _load_profile(user_id: str) -> dict:
        try:
            return SupabaseClient.fetch_profile(user_id) or {}
        except SupabaseClientError as e:
            logger.error(f"Failed to load profile {user_id}: {e}")
            raise UpstreamProviderError("supabase", {"user_id": user_id})

    @staticmethod
    def start_onboarding(user_id: str, email: str | None = None) -> str:
        """
        Return a Stripe onboarding URL for the owner.

        The Connect account is created and saved on the profile the first
        time; later calls reuse it and only mint a fresh link.

        Raises:
            ValidationError: If Stripe is not configured
            UpstreamProviderError: If Stripe or Supabase fails
        """
        if not settings.stripe_enabled:
            raise ValidationError("Payouts are unavailable: Stripe is not configured")

        profile = ConnectService._load_profile(user_id)
        account_id = profile.get("stripe_account_id")

        try:
            if not account_id:
                account_id = StripeClient.create_connect_account(email or profile.get("email"))
                try:
                    SupabaseClient.update_profile(user_id, {"stripe_account_id": account_id})
                except SupabaseClientError as e:
                    logger.error(f"RECONCILE: Connect account {account_id} not saved for user {user_id}: {e}")
                    raise UpstreamProviderError("supabase", {"user_id": user_id})
                logger.info(f"Connect account {account_id} created for user {user_id}")

            dashboard = f"{settings.FRONTEND_URL.rstrip('/')}{DASHBOARD_PATH}"
            return StripeClient.create_account_link(
                account_id,
                refresh_url=f"{dashboard}?stripe_refresh=true",
                return_url=f"{dashboard}?stripe_onboarding=complete",
            )
        except StripeClientError as e:
            logger.error(f"Onboarding for user {user_id} failed: {e}")
            raise UpstreamProviderError("stripe", {"user_id": user_id})

    @staticmethod
    def refresh_status(user_id: str) -> PayoutStatus:
        """
        Read the owner's account from Stripe and sync the profile flag.

        Owners without an account are reported as not onboarded.
        """
        if not settings.stripe_enabled:
            return PayoutStatus(configured=False)

        profile = ConnectService._load_profile(user_id)
        account_id = profile.get("stripe_account_id")
        if not account_id:
            return PayoutStatus()

        try:
            account = StripeClient.retrieve_account(account_id)
        except StripeClientError as e:
            logger.error(f"Status check for account {account_id} failed: {e}")
            raise UpstreamProviderError("stripe", {"account_id": account_id})

        if bool(profile.get("stripe_onboarding_completed")) != account.is_ready:
            try:
                SupabaseClient.update_profile(user_id, {"stripe_onboarding_completed": account.is_ready})
                logger.info(f"Account {account_id} payout readiness is now {account.is_ready}")
            except SupabaseClientError as e:
                # The flag catches up on the next check
                logger.warning(f"Could not save onboarding flag for user {user_id}: {e}")

        return PayoutStatus(
            account_id=account_id,
            can_receive_payouts=account.charges_enabled,
            onboarding_complete=account.details_submitted,
        )
