"""Small shared helpers."""

from ahorro.utils.dates import (
    ensure_aware,
    in_timezone_of,
    month_bounds,
    now_local,
    start_of_month,
)

__all__ = [
    "ensure_aware",
    "in_timezone_of",
    "month_bounds",
    "now_local",
    "start_of_month",
]
