"""
Data Models Package

This package contains all Pydantic models used in Ahorro.
All data flowing through the system must conform to these schemas.
"""

from ahorro.models.receipt import (
    Attachment,
    Coordinate,
    Receipt,
    ReceiptCategory,
    ReceiptExtraction,
)
from ahorro.models.query import (
    FilterKind,
    MerchantDigest,
    QueryFilter,
    QueryResolution,
    ReceiptQuery,
    ResultDigest,
)
from ahorro.models.analytics import (
    AnalyticsSummary,
    CategoryBreakdown,
    DailySpend,
)
from ahorro.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Receipt models
    "Attachment",
    "Coordinate",
    "Receipt",
    "ReceiptCategory",
    "ReceiptExtraction",
    # Query models
    "FilterKind",
    "MerchantDigest",
    "QueryFilter",
    "QueryResolution",
    "ReceiptQuery",
    "ResultDigest",
    # Analytics models
    "AnalyticsSummary",
    "CategoryBreakdown",
    "DailySpend",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
