"""Analytics aggregation package."""

from ahorro.analytics.service import ReceiptAnalyticsService, build_summary

__all__ = ["ReceiptAnalyticsService", "build_summary"]
