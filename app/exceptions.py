# =============================================================================
# app/exceptions.py - Custom Exception Handlers
# =============================================================================
# Centralized exception handling for the API.
# Every error carries a machine-readable code and, where possible, a hint on
# what the caller can do next. Provider error bodies never reach the client.
# =============================================================================

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class SportsBnBException(Exception):
    """
    Base exception for the SportsBnB API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "SPORTSBNB_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "error": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Request / Identity Exceptions
# =============================================================================

class ValidationError(SportsBnBException):
    """Raised when input is missing or malformed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=details,
        )


class AuthenticationError(SportsBnBException):
    """Raised when the caller has no valid identity."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(
            message=message,
            code="AUTHENTICATION_ERROR",
            status_code=401,
            suggestion="Sign in again to obtain a fresh access token",
        )


# =============================================================================
# Lookup Exceptions
# =============================================================================

class VenueNotFoundError(SportsBnBException):
    """Raised when a venue ID doesn't exist."""

    def __init__(self, venue_id: str):
        super().__init__(
            message=f"Venue not found: {venue_id}",
            code="VENUE_NOT_FOUND",
            status_code=404,
            details={"venue_id": venue_id}
        )


class BookingNotFoundError(SportsBnBException):
    """Raised when a booking doesn't exist or belongs to someone else."""

    def __init__(self, booking_id: str):
        super().__init__(
            message=f"Booking not found: {booking_id}",
            code="BOOKING_NOT_FOUND",
            status_code=404,
            details={"booking_id": booking_id}
        )


class GameNotFoundError(SportsBnBException):
    """Raised when a game ID doesn't exist."""

    def __init__(self, game_id: str):
        super().__init__(
            message=f"Game not found: {game_id}",
            code="GAME_NOT_FOUND",
            status_code=404,
            details={"game_id": game_id}
        )


# =============================================================================
# Payment Exceptions
# =============================================================================

class InvalidSessionError(SportsBnBException):
    """Raised when a checkout session id is missing or unknown to Stripe."""

    def __init__(self, session_id: str | None):
        super().__init__(
            message="Invalid or missing checkout session",
            code="INVALID_SESSION",
            status_code=400,
            suggestion="Start a new checkout from the venue page",
            details={"session_id": session_id} if session_id else None,
        )


class SessionOwnershipError(SportsBnBException):
    """Raised when the caller is not the payer recorded on the session."""

    def __init__(self, session_id: str):
        super().__init__(
            message="This checkout session belongs to a different account",
            code="SESSION_OWNERSHIP_MISMATCH",
            status_code=403,
            details={"session_id": session_id}
        )


class PaymentIncompleteError(SportsBnBException):
    """Raised when the checkout session has not been paid."""

    def __init__(self, session_id: str, payment_status: str | None):
        super().__init__(
            message="Payment has not been completed",
            code="PAYMENT_INCOMPLETE",
            status_code=402,
            suggestion="Finish the payment on the checkout page, then try again",
            details={"session_id": session_id, "payment_status": payment_status}
        )


class SlotConflictError(SportsBnBException):
    """
    Raised when the requested slot is already taken.

    When raised after payment, `refunded` reports whether the compensating
    refund went through.
    """

    def __init__(
        self,
        venue_id: str,
        booking_date: str,
        booking_time: str,
        refunded: bool | None = None,
    ):
        if refunded is None:
            message = "This time slot is no longer available"
        elif refunded:
            message = "This time slot was just booked by someone else. Your payment has been refunded."
        else:
            message = (
                "This time slot was just booked by someone else. "
                "Your refund is being processed by our team."
            )
        details = {
            "venue_id": venue_id,
            "booking_date": booking_date,
            "booking_time": booking_time,
        }
        if refunded is not None:
            details["refunded"] = refunded
        super().__init__(
            message=message,
            code="SLOT_CONFLICT",
            status_code=409,
            suggestion="Please pick another time slot",
            details=details,
        )


class GameFullError(SportsBnBException):
    """Raised when a game has no places left."""

    def __init__(self, game_id: str, refunded: bool | None = None):
        details: dict[str, Any] = {"game_id": game_id}
        if refunded is not None:
            details["refunded"] = refunded
        super().__init__(
            message="This game is already full",
            code="GAME_FULL",
            status_code=409,
            suggestion="Look for another game at a different time",
            details=details,
        )


class InvalidSignatureError(SportsBnBException):
    """Raised when a Stripe webhook fails signature verification."""

    def __init__(self):
        super().__init__(
            message="Invalid webhook signature",
            code="INVALID_SIGNATURE",
            status_code=400,
        )


class UpstreamProviderError(SportsBnBException):
    """Raised when Supabase or Stripe cannot be reached or fails."""

    def __init__(self, provider: str, details: dict[str, Any] | None = None):
        super().__init__(
            message="A service we depend on is temporarily unavailable",
            code="UPSTREAM_UNAVAILABLE",
            status_code=502,
            suggestion="Try again in a moment; retrying is safe",
            details={"provider": provider, **(details or {})},
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def sportsbnb_exception_handler(
    request: Request,
    exc: SportsBnBException
) -> JSONResponse:
    """
    Convert SportsBnBException to JSON response.

    Returns structured error with:
    - error: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def validation_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle Pydantic request validation errors.

    Only field locations are echoed back, never the rejected values.
    """
    errors = getattr(exc, "errors", None)
    fields = []
    if callable(errors):
        fields = [".".join(str(p) for p in e.get("loc", ())) for e in errors()]
    return JSONResponse(
        status_code=422,
        content={
            "error": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"fields": fields},
        }
    )
