"""Number and currency formatting utilities for fleet TCO reports.

Non-finite values (the per-mile figures of an empty fleet) render as "N/A".
"""

import math
from typing import Optional


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def format_currency(value: float, decimals: int = 0, prefix: str = "$") -> str:
    """Format a number as an abbreviated currency string.

    Args:
        value: The numeric value to format.
        decimals: Number of decimal places.
        prefix: Currency symbol prefix.

    Returns:
        Formatted currency string (e.g., "$4.5M", "-$120K").
    """
    if not _finite(value):
        return "N/A"
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    for threshold, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
        if magnitude >= threshold:
            return f"{sign}{prefix}{magnitude / threshold:,.{decimals}f}{suffix}"
    return f"{sign}{prefix}{magnitude:,.{decimals}f}"


def format_currency_exact(value: float, decimals: int = 0, prefix: str = "$") -> str:
    """Format a number as exact currency string without abbreviation.

    Returns:
        Formatted currency string (e.g., "$1,234,567").
    """
    if not _finite(value):
        return "N/A"
    sign = "-" if value < 0 else ""
    return f"{sign}{prefix}{abs(value):,.{decimals}f}"


def format_per_mile(value: float) -> str:
    """Format a cost per mile, e.g. "$1.23/mi"."""
    if not _finite(value):
        return "N/A"
    return f"{format_currency_exact(value, 2)}/mi"


def format_percent(value: float, decimals: int = 1) -> str:
    """Format a decimal as percentage string.

    Args:
        value: Decimal value (e.g., 0.07 for 7%).
        decimals: Number of decimal places.

    Returns:
        Formatted percentage string (e.g., "7.0%").
    """
    if not _finite(value):
        return "N/A"
    return f"{value * 100:,.{decimals}f}%"


def format_years(value: Optional[float]) -> str:
    """Format a value as years.

    Args:
        value: Number of years, or None if not calculable.

    Returns:
        Formatted string (e.g., "7.2 years" or "N/A").
    """
    if not _finite(value):
        return "N/A"
    return f"{value:.1f} years"
