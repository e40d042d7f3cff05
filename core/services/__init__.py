# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .availability_service import AvailabilityService
from .booking_service import BookingService
from .connect_service import ConnectService
from .game_service import GameService
from .webhook_service import WebhookService

__all__ = [
    "AvailabilityService",
    "BookingService",
    "ConnectService",
    "GameService",
    "WebhookService",
]
