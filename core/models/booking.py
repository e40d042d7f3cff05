# =============================================================================
# core/models/booking.py - Booking Schemas
# =============================================================================
# - Booking: a row of the bookings table
# - BookingRequest: what a customer asks to book
# - PaymentState: where a checkout stands in the payment/booking protocol
# - BookingResult / CheckoutResult: what the protocol hands back to routers
#
# Lifecycle of a booking row:
#   (paid checkout | free | demo) -> confirmed -> cancelled
# Rows are never deleted.
# =============================================================================

from datetime import date, datetime, time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BookingStatus(str, Enum):
    """Possible states for a booking row."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentState(str, Enum):
    """
    States of the booking-payment protocol.

    Flow: initiated -> paid -> booked | conflict_refunded | already_booked
    """
    INITIATED = "initiated"
    PAID = "paid"
    BOOKED = "booked"
    CONFLICT_REFUNDED = "conflict_refunded"
    ALREADY_BOOKED = "already_booked"


class CheckoutMode(str, Enum):
    """How a checkout request was fulfilled."""
    STRIPE = "stripe"
    DEMO = "demo"
    FREE = "free"


class Booking(BaseModel):
    """A reservation row as stored in the bookings table."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    venue_id: str
    venue_name: str | None = None
    user_id: str
    booking_date: date
    booking_time: time
    duration_hours: float = Field(default=1, gt=0)
    total_price: float = Field(default=0, ge=0)
    status: BookingStatus = BookingStatus.CONFIRMED
    payment_intent_id: str | None = None
    customer_email: str | None = None
    source: str = "online"
    cancellation_reason: str | None = None
    created_at: datetime | None = None

    @property
    def start_minutes(self) -> int:
        return self.booking_time.hour * 60 + self.booking_time.minute

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + int(round(self.duration_hours * 60))

    @property
    def is_active(self) -> bool:
        return self.status != BookingStatus.CANCELLED

    @property
    def has_real_payment(self) -> bool:
        """True when the booking was paid through Stripe (not free or demo)."""
        return bool(self.payment_intent_id) and not self.payment_intent_id.startswith("demo_")

    def to_api(self) -> dict:
        """Serialize for API responses (ISO date, HH:MM time)."""
        data = self.model_dump(mode="json")
        data["booking_time"] = self.booking_time.strftime("%H:%M")
        return data


class BookingRequest(BaseModel):
    """
    A customer's request for a slot.

    Accepts the camelCase field names the web client sends.

    Example:
        {"venueId": "...", "date": "2026-01-19", "time": "11:00", "durationHours": 2}
    """

    model_config = ConfigDict(populate_by_name=True)

    venue_id: str = Field(..., alias="venueId", min_length=1)
    booking_date: date = Field(..., alias="date")
    booking_time: time = Field(..., alias="time")
    duration_hours: float = Field(default=1, alias="durationHours", gt=0, le=24)


class BookingResult(BaseModel):
    """Outcome of a verification or free booking."""
    booking: Booking
    state: PaymentState


class CheckoutResult(BaseModel):
    """
    Outcome of a checkout request.

    STRIPE carries url/session_id; DEMO and FREE carry the confirmed booking.
    """
    mode: CheckoutMode
    url: str | None = None
    session_id: str | None = None
    booking: Booking | None = None
    state: PaymentState = PaymentState.INITIATED


class CancellationResult(BaseModel):
    """Outcome of cancelling a booking."""
    booking: Booking
    refunded: bool = False
