# Overview: Integer minor-unit arithmetic for currency, rates and points.

"""
All money is stored as integer cents. Rates are basis points (1/100 of a
percent). Divisions round half-up to the nearest cent; nothing here touches
floats.
"""

from __future__ import annotations

BPS_SCALE = 10_000
SECONDS_PER_HOUR = 3600


def div_round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half-up (for non-negative numerators)."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return (numerator + (denominator // 2)) // denominator


def apply_bps(amount_cents: int, rate_bps: int) -> int:
    """amount * rate, rounded half-up to the cent."""
    return div_round_half_up(amount_cents * rate_bps, BPS_SCALE)


def ratio_bps(part: int, whole: int) -> int:
    """part / whole expressed in basis points; 0 when whole is 0."""
    if whole <= 0:
        return 0
    if part < 0:
        return -div_round_half_up(-part * BPS_SCALE, whole)
    return div_round_half_up(part * BPS_SCALE, whole)


def pay_for_seconds(seconds: int, hourly_rate_cents: int) -> int:
    """Wages for a duration at an hourly rate, rounded half-up to the cent."""
    return div_round_half_up(seconds * hourly_rate_cents, SECONDS_PER_HOUR)


def whole_units(amount_cents: int) -> int:
    """Whole currency units contained in an amount (floor)."""
    if amount_cents <= 0:
        return 0
    return amount_cents // 100


def seconds_to_hours(seconds: int) -> float:
    """Hours for display (two decimals)."""
    return round(seconds / SECONDS_PER_HOUR, 2)


def cents_to_display(amount_cents: int | None) -> str | None:
    if amount_cents is None:
        return None
    sign = "-" if amount_cents < 0 else ""
    amount_cents = abs(amount_cents)
    return f"{sign}{amount_cents // 100}.{amount_cents % 100:02d}"
