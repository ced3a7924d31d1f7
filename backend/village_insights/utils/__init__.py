# Shared utilities — formatters
from village_insights.utils.formatters import (
    format_pct,
    format_price,
    format_ratio,
)

__all__ = [
    "format_pct",
    "format_price",
    "format_ratio",
]
