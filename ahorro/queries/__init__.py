"""Query resolution package."""

from ahorro.queries.engine import (
    SPANISH_MONTHS,
    ReceiptQueryEngine,
    extract_filters,
    group_by_category,
    haystack,
    matches_filter,
    search,
    tokenize,
)

__all__ = [
    "SPANISH_MONTHS",
    "ReceiptQueryEngine",
    "extract_filters",
    "group_by_category",
    "haystack",
    "matches_filter",
    "search",
    "tokenize",
]
