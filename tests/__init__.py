# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the SportsBnB API:
# - test_availability.py: Slot engine and AvailabilityService
# - test_models.py: Unit tests for Pydantic model validation
# - test_booking_service.py / test_game_service.py: Payment protocol
# - test_webhook_service.py: Stripe webhook routing
# - test_workers.py: Celery side effects
# - test_clients.py: Supabase / Stripe wrappers
# - test_api.py: HTTP endpoints through TestClient
#
# Run tests with: pytest
# =============================================================================
