"""Fixed-precision number formatting for report text.

Percentages render with 2 decimals, intensities and other numbers with 3.
Anything that is not a finite number renders as "N/A" so that a missing
statistic never breaks a table row.
"""

from __future__ import annotations

import math

import numpy as np

NOT_AVAILABLE = "N/A"


def _finite(value) -> bool:
    if isinstance(value, bool):
        return False
    if not isinstance(value, (int, float, np.integer, np.floating)):
        return False
    return math.isfinite(float(value))


def format_percentage(value, decimals: int = 2) -> str:
    """0.1234 -> "12.34%"."""
    if not _finite(value):
        return NOT_AVAILABLE
    return f"{float(value) * 100:.{decimals}f}%"


def format_number(value, decimals: int = 3) -> str:
    if not _finite(value):
        return NOT_AVAILABLE
    return f"{float(value):.{decimals}f}"


def format_intensity(value) -> str:
    return format_number(value, 3)


def format_count(value) -> str:
    if not _finite(value):
        return NOT_AVAILABLE
    return f"{int(value):,}"


def format_rate_with_counts(rate, count, total) -> str:
    """"30.00% (30/100)", or "N/A" when the rate is unknown."""
    if not _finite(rate):
        return NOT_AVAILABLE
    return f"{format_percentage(rate)} ({format_count(count)}/{format_count(total)})"


def ratio(count, total) -> float | None:
    if not _finite(count) or not _finite(total) or total <= 0:
        return None
    return float(count) / float(total)
