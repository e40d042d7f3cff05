# =============================================================================
# app/routers/connect.py - Owner Payout Endpoints
# =============================================================================
# Stripe Connect onboarding and payout status for venue owners.
# All endpoints require authentication.
# =============================================================================

from fastapi import APIRouter, Depends

from app.auth import AuthUser, get_current_user
from core.services.connect_service import ConnectService

router = APIRouter()


@router.post("/onboard")
async def start_onboarding(user: AuthUser = Depends(get_current_user)):
    """
    Get a Stripe onboarding link.

    Creates your Connect account the first time. Redirect to `url`; Stripe
    sends you back to the owner dashboard when you are done.
    """
    url = ConnectService.start_onboarding(user.user_id, user.email)
    return {"url": url}


@router.get("/status")
async def payout_status(user: AuthUser = Depends(get_current_user)):
    """Whether your account can receive payouts yet."""
    return ConnectService.refresh_status(user.user_id).to_api()
