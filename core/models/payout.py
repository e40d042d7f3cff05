# =============================================================================
# core/models/payout.py - Owner Payout Schemas
# =============================================================================

from pydantic import BaseModel


class PayoutStatus(BaseModel):
    """Whether a venue owner can receive payouts through Stripe Connect."""

    configured: bool = True
    account_id: str | None = None
    can_receive_payouts: bool = False
    onboarding_complete: bool = False

    def to_api(self) -> dict:
        return {
            "configured": self.configured,
            "accountId": self.account_id,
            "canReceivePayouts": self.can_receive_payouts,
            "onboardingComplete": self.onboarding_complete,
        }
