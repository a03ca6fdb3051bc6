"""Formatting utilities for currency and percentages in advisory messages."""

from __future__ import annotations

from typing import Union


def format_currency(
    amount: Union[float, int],
    currency: str = "zł",
    include_sign: bool = True,
) -> str:
    """Format a currency amount with thousands separators and 2 decimals.

    Args:
        amount: The amount to format
        currency: Currency label appended after the number
        include_sign: Whether to include the currency label

    Returns:
        Formatted currency string (e.g., "1,234.56 zł" or "1,234.56")

    Example:
        >>> format_currency(1234.56)
        '1,234.56 zł'
        >>> format_currency(1234.56, include_sign=False)
        '1,234.56'
    """
    formatted = f"{amount:,.2f}"
    return f"{formatted} {currency}" if include_sign else formatted


def format_percentage(value: Union[float, int], decimals: int = 1) -> str:
    """Format an already multiplied percentage value, e.g. ``12.5 -> '12.5%'``."""
    return f"{value:.{decimals}f}%"
