"""
Analytics Models

Aggregated monthly summary for dashboards and charts. A summary is always
built from scratch by ``ahorro.analytics.build_summary``; nothing patches
one in place, so the models are frozen.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ahorro.models.receipt import ReceiptCategory


class CategoryBreakdown(BaseModel):
    """Spend for one category in the summarised month."""
    model_config = ConfigDict(frozen=True)

    category: ReceiptCategory
    total: Decimal
    transaction_count: int = Field(ge=1)


class DailySpend(BaseModel):
    """Spend for one local calendar day."""
    model_config = ConfigDict(frozen=True)

    day: date
    total: Decimal


class AnalyticsSummary(BaseModel):
    """Monthly spend summary."""
    model_config = ConfigDict(frozen=True)

    month: datetime = Field(
        ...,
        description="First instant of the summarised month"
    )
    total_spent: Decimal
    tax_paid: Decimal
    category_breakdown: tuple[CategoryBreakdown, ...] = ()
    daily_spending: tuple[DailySpend, ...] = ()
    keywords: dict[str, int] = Field(default_factory=dict)
