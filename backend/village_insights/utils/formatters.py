"""
Trading Village — Shared Formatters

Human-readable formatting for percentages, ratios and prices.  Used to build
insight reasons and by the demo script.
"""

from __future__ import annotations


def format_price(value: float, decimals: int = 2) -> str:
    """Format a numeric value as a dollar price.

    >>> format_price(1234.5)
    '$1234.50'
    """
    return f"${value:.{decimals}f}"


def format_pct(value: float, decimals: int = 1, show_sign: bool = False) -> str:
    """Format a fraction (0.052) as a percentage ('5.2%').

    >>> format_pct(0.052)
    '5.2%'
    >>> format_pct(0.031, show_sign=True)
    '+3.1%'
    """
    pct = value * 100
    if show_sign and pct > 0:
        return f"+{pct:.{decimals}f}%"
    return f"{pct:.{decimals}f}%"


def format_ratio(value: float, decimals: int = 1) -> str:
    """Format a multiple ('2.5x').

    >>> format_ratio(2.53)
    '2.5x'
    """
    return f"{value:.{decimals}f}x"
