# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application.
# =============================================================================

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID


# =============================================================================
# UUID Utilities
# =============================================================================

def normalize_uuid(value: str | UUID) -> str:
    """
    Normalize a UUID to string format.

    Example:
        venue_id = normalize_uuid(uuid_obj)  # "550e8400-..."
        venue_id = normalize_uuid("550e8400-...")  # "550e8400-..."
    """
    return str(value) if isinstance(value, UUID) else value


# =============================================================================
# Money Utilities
# =============================================================================

def to_minor_units(amount: float | Decimal) -> int:
    """
    Convert a price in major units to minor units (cents, luma).

    Rounds half up so 12.345 -> 1235 rather than banker's rounding.
    """
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount_minor: int, percent: int) -> int:
    """Integer share of a minor-unit amount, rounded half up."""
    return int((Decimal(amount_minor) * percent / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
