# =============================================================================
# app/routers/bookings.py - Booking Endpoints
# =============================================================================
# Checkout, free bookings, payment verification and cancellation.
# All endpoints require authentication.
# =============================================================================

from typing import Annotated

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, ConfigDict, Field

from app.auth import AuthUser, get_current_user
from core.models.booking import BookingRequest, CheckoutMode
from core.services.booking_service import BookingService

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================

class VerifyRequest(BaseModel):
    """The session id Stripe appended to the success URL."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId", examples=["cs_test_a1b2c3"])


class CancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/checkout")
async def create_checkout(
    request: BookingRequest,
    user: AuthUser = Depends(get_current_user),
):
    """
    Start a booking.

    Returns `{url, sessionId}` to redirect to Stripe, or the confirmed
    booking straight away for free venues (`free: true`) and venues whose
    owner has not set up payouts (`demo: true`).
    """
    result = BookingService.create_checkout(user.user_id, user.email, request)

    if result.mode == CheckoutMode.STRIPE:
        return {"url": result.url, "sessionId": result.session_id}

    return {
        "booking": result.booking.to_api(),
        "status": result.state.value,
        result.mode.value: True,
    }


@router.post("/free")
async def book_free(
    request: BookingRequest,
    user: AuthUser = Depends(get_current_user),
):
    """
    Book a slot at a venue that charges nothing.

    Rejected with 400 when the slot has a price; use /checkout instead.
    """
    result = BookingService.book_free(user.user_id, user.email, request)
    return {"booking": result.booking.to_api(), "status": result.state.value}


@router.post("/verify")
async def verify_payment(
    request: VerifyRequest,
    user: AuthUser = Depends(get_current_user),
):
    """
    Confirm a paid checkout and create the booking.

    Safe to retry: a session that already produced a booking returns it
    with status `already_booked`.
    """
    result = BookingService.verify_payment(request.session_id, user_id=user.user_id)
    return {"booking": result.booking.to_api(), "status": result.state.value}


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: Annotated[str, Path(description="Booking UUID")],
    request: CancelRequest | None = None,
    user: AuthUser = Depends(get_current_user),
):
    """
    Cancel one of your bookings.

    Paid bookings cancelled before the venue's cancellation cut-off are
    refunded in full.
    """
    reason = request.reason if request else None
    result = BookingService.cancel_booking(booking_id, user.user_id, reason=reason)
    return {"booking": result.booking.to_api(), "refunded": result.refunded}
