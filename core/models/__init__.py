# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - venue.py: Venue, weekly hours, blocked dates, policies, slots
# - booking.py: Booking rows, booking requests, protocol states
# - game.py: Pickup games and participants
# - payout.py: Owner Stripe Connect status
#
# These models define the "contract" between API and clients.
# =============================================================================

from .venue import (
    BlockedDate,
    Slot,
    Venue,
    VenueHours,
    VenuePolicy,
)

from .booking import (
    Booking,
    BookingRequest,
    BookingResult,
    BookingStatus,
    CancellationResult,
    CheckoutMode,
    CheckoutResult,
    PaymentState,
)

from .game import (
    Game,
    GameParticipant,
    GameStatus,
    ParticipationResult,
)

from .payout import PayoutStatus

__all__ = [
    # Venue
    "BlockedDate",
    "Slot",
    "Venue",
    "VenueHours",
    "VenuePolicy",
    # Booking
    "Booking",
    "BookingRequest",
    "BookingResult",
    "BookingStatus",
    "CancellationResult",
    "CheckoutMode",
    "CheckoutResult",
    "PaymentState",
    # Game
    "Game",
    "GameParticipant",
    "GameStatus",
    "ParticipationResult",
    # Payout
    "PayoutStatus",
]
