# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - availability.py: Venue slot availability
# - bookings.py: Checkout, payment verification, cancellation
# - games.py: Joining pickup games
# - connect.py: Owner Stripe Connect onboarding and payout status
# - webhooks.py: Inbound Stripe events
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import availability
from . import bookings
from . import games
from . import connect
from . import webhooks

__all__ = [
    "health",
    "availability",
    "bookings",
    "games",
    "connect",
    "webhooks",
]
