# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - Provides sample venue, booking and game rows shaped like Supabase rows
# =============================================================================

import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_123")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

import pytest

VENUE_ID = "11111111-1111-1111-1111-111111111111"
OWNER_ID = "22222222-2222-2222-2222-222222222222"
USER_ID = "33333333-3333-3333-3333-333333333333"
OTHER_USER_ID = "44444444-4444-4444-4444-444444444444"
GAME_ID = "55555555-5555-5555-5555-555555555555"


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def venue_row():
    """A priced venue owned by OWNER_ID."""
    return {
        "id": VENUE_ID,
        "name": "Central Court",
        "owner_id": OWNER_ID,
        "location": "Yerevan",
        "price_per_hour": 5000,
        "make_webhook_url": None,
        "make_webhook_events": [],
    }


@pytest.fixture
def hours_row():
    """Monday 09:00-17:00."""
    return {
        "venue_id": VENUE_ID,
        "day_of_week": 1,
        "open_time": "09:00:00",
        "close_time": "17:00:00",
        "is_closed": False,
    }


@pytest.fixture
def booking_row():
    """An active booking 11:00-13:00 on Monday 2026-01-19."""
    return {
        "id": "booking-1",
        "venue_id": VENUE_ID,
        "venue_name": "Central Court",
        "user_id": OTHER_USER_ID,
        "booking_date": "2026-01-19",
        "booking_time": "11:00:00",
        "duration_hours": 2,
        "total_price": 10000,
        "status": "confirmed",
        "payment_intent_id": "pi_other",
        "customer_email": "other@example.com",
        "source": "online",
    }


@pytest.fixture
def owner_profile_row():
    """Venue owner with a completed Stripe Connect account."""
    return {
        "id": "profile-owner",
        "user_id": OWNER_ID,
        "full_name": "Venue Owner",
        "email": "owner@example.com",
        "stripe_account_id": "acct_owner",
        "stripe_onboarding_completed": True,
    }


@pytest.fixture
def game_row():
    """A free open game with room for two more players."""
    return {
        "id": GAME_ID,
        "title": "Sunday Five-a-side",
        "host_id": OWNER_ID,
        "venue_id": VENUE_ID,
        "game_date": "2026-01-18",
        "game_time": "10:00:00",
        "max_players": 10,
        "current_players": 8,
        "price_per_player": None,
        "status": "open",
    }
