"""
Query Models

A ReceiptQuery is the structured form of a free-text question: the prompt
plus the filters derived from it. Filters carry a string payload whose
format depends on the kind:

- keyword / merchant: a substring, matched case-insensitively
- category: a ReceiptCategory identifier
- amount_range: "<low>-<high>"
- date_range: "<startISO8601>|<endISO8601>"
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from ahorro.models.receipt import Receipt


class FilterKind(str, Enum):
    """Kinds of structured predicates a query can carry."""
    KEYWORD = "keyword"
    CATEGORY = "category"
    MERCHANT = "merchant"
    AMOUNT_RANGE = "amount_range"
    DATE_RANGE = "date_range"


class QueryFilter(BaseModel):
    """One matching predicate, derived from text or supplied directly."""
    model_config = ConfigDict(frozen=True)

    kind: FilterKind
    value: str


class ReceiptQuery(BaseModel):
    """Natural language query describing the receipts a user is interested in."""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    prompt: str
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    filters: tuple[QueryFilter, ...] = ()


class MerchantDigest(BaseModel):
    """Per-merchant slice of a result set."""
    model_config = ConfigDict(frozen=True)

    merchant_name: str
    receipt_count: int = Field(ge=0)
    total: Decimal


class ResultDigest(BaseModel):
    """
    Numbers behind a conversational answer.

    Totals are plain sums across whatever currencies the receipts carry;
    ``currency_code`` is the first receipt's, as a display hint only.
    """
    model_config = ConfigDict(frozen=True)

    result_count: int = Field(ge=0)
    total: Decimal
    currency_code: Optional[str] = None
    by_merchant: tuple[MerchantDigest, ...] = ()

    @property
    def data_found(self) -> bool:
        return self.result_count > 0


class QueryResolution(BaseModel):
    """A resolved query and its ordered result set."""
    model_config = ConfigDict(frozen=True)

    query: ReceiptQuery
    results: tuple[Receipt, ...] = ()

    def digest(self) -> ResultDigest:
        """Summarise the results: count, exact total, totals per merchant."""
        per_merchant: dict[str, list[Receipt]] = {}
        for receipt in self.results:
            per_merchant.setdefault(receipt.merchant_name, []).append(receipt)

        return ResultDigest(
            result_count=len(self.results),
            total=sum((r.amount for r in self.results), Decimal(0)),
            currency_code=self.results[0].currency_code if self.results else None,
            by_merchant=tuple(
                MerchantDigest(
                    merchant_name=merchant,
                    receipt_count=len(items),
                    total=sum((r.amount for r in items), Decimal(0)),
                )
                for merchant, items in per_merchant.items()
            ),
        )
