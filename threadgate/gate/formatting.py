"""Number formatting shared by thread copy and chart labels."""

from __future__ import annotations

import math
from typing import Any


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _plain(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


def format_dollar_amount(value: Any, round_dollars: bool = True) -> str:
    if not _finite(value):
        return "N/A"
    if value >= 1e9:
        return f"${value / 1e9:.{1 if round_dollars else 2}f}B"
    if value >= 1e6:
        return f"${value / 1e6:.{1 if round_dollars else 2}f}M"
    if value >= 1e3:
        return f"${value / 1e3:.{0 if round_dollars else 1}f}K"
    return f"${value:.2f}"


def format_percent(value: Any, decimals: int = 1) -> str:
    if not _finite(value):
        return "N/A"
    return f"{value:.{decimals}f}%"


def format_shares(value: Any) -> str:
    if not _finite(value):
        return "N/A"
    if value >= 1e6:
        return f"{value / 1e6:.1f}M shares"
    if value >= 1e3:
        return f"{value / 1e3:.0f}K shares"
    return f"{_plain(value)} shares"


def format_contracts(value: Any) -> str:
    if not _finite(value):
        return "N/A"
    if value >= 1e3:
        return f"{value / 1e3:.1f}K contracts"
    return f"{_plain(value)} contracts"


def format_strike_price(value: Any) -> str:
    if not _finite(value):
        return "N/A"
    return f"${value:.2f}"


def safe_number(value: Any, fallback: float = 0) -> float:
    """Coerce to a finite float, or return `fallback`."""
    if isinstance(value, bool):
        return float(value)
    try:
        num = float(value)
    except (TypeError, ValueError):
        return fallback
    return num if math.isfinite(num) else fallback


def safe_percentile(value: Any, fallback: float = 50) -> float:
    return max(0.0, min(100.0, safe_number(value, fallback)))


def safe_positive_number(value: Any, fallback: float = 1) -> float:
    num = safe_number(value, fallback)
    return num if num > 0 else fallback
