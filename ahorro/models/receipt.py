"""
Core Data Models for Ahorro

These models define the schemas for every receipt flowing through the system.
They are designed to:
1. Keep money exact (Decimal end to end)
2. Make snapshots safe to share (receipts are frozen)
3. Round-trip through the JSON collection file unchanged
4. Accept the extraction provider's camelCase payload directly

DESIGN DECISION: All datetimes are normalised to timezone-aware values on
the way in. Mixing naive and aware datetimes would make sorting and range
checks raise at query time.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from ahorro.utils.dates import ensure_aware


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


NonNegativeDecimal = Annotated[Decimal, Field(ge=0)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ReceiptCategory(str, Enum):
    """
    Canonical categories for organising receipts.

    DESIGN DECISION: A closed set keeps dashboards and the query
    heuristics predictable. Anything the provider invents maps to OTHER.
    """
    HOUSING = "housing"
    UTILITIES = "utilities"
    GROCERIES = "groceries"
    DINING = "dining"
    HEALTH = "health"
    TRANSPORTATION = "transportation"
    ENTERTAINMENT = "entertainment"
    EDUCATION = "education"
    INSURANCE = "insurance"
    DEBT = "debt"
    SAVINGS = "savings"
    TRAVEL = "travel"
    OTHER = "other"

    @property
    def display_title(self) -> str:
        """Human readable (Spanish) title used by dashboards and prompts."""
        return _CATEGORY_TITLES[self]

    @classmethod
    def parse(cls, value: object) -> "ReceiptCategory":
        """Lenient conversion used for provider output."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


_CATEGORY_TITLES = {
    ReceiptCategory.HOUSING: "Arriendo / Hipoteca",
    ReceiptCategory.UTILITIES: "Servicios básicos",
    ReceiptCategory.GROCERIES: "Supermercado",
    ReceiptCategory.DINING: "Comida preparada",
    ReceiptCategory.HEALTH: "Salud",
    ReceiptCategory.TRANSPORTATION: "Transporte",
    ReceiptCategory.ENTERTAINMENT: "Ocio",
    ReceiptCategory.EDUCATION: "Educación",
    ReceiptCategory.INSURANCE: "Seguros",
    ReceiptCategory.DEBT: "Deudas",
    ReceiptCategory.SAVINGS: "Ahorro",
    ReceiptCategory.TRAVEL: "Viajes",
    ReceiptCategory.OTHER: "Otros",
}


# =============================================================================
# VALUE OBJECTS
# =============================================================================

class Coordinate(BaseModel):
    """Geographic point where the purchase happened."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class Attachment(BaseModel):
    """
    Reference to the stored source document.

    Paths are Attachment Store keys, relative to the data directory.
    """
    model_config = ConfigDict(frozen=True)

    relative_path: str = Field(
        ...,
        min_length=1,
        description="Blob key of the stored document"
    )
    thumbnail_relative_path: Optional[str] = Field(
        default=None,
        description="Blob key of the generated thumbnail, if any"
    )
    mime_type: str = Field(
        ...,
        description="MIME type inferred from the import source"
    )

    @property
    def keys(self) -> list[str]:
        """Every blob key owned by this attachment."""
        keys = [self.relative_path]
        if self.thumbnail_relative_path:
            keys.append(self.thumbnail_relative_path)
        return keys


# =============================================================================
# CORE RECEIPT MODEL
# =============================================================================

class Receipt(BaseModel):
    """
    A single receipt, invoice or proof of payment.

    Receipts are frozen: the repository hands the same instances to every
    reader. To edit one, build a copy with ``model_copy(update=...)`` and
    pass it to ``ReceiptRepository.update``.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique receipt ID"
    )

    # What was bought, where
    title: str = Field(..., description="Short title for lists")
    merchant_name: str = Field(..., description="Merchant / issuer name")
    description: Optional[str] = Field(
        default=None,
        description="Free-text description (user note or AI summary)"
    )

    # When
    purchase_date: datetime
    capture_date: datetime = Field(default_factory=_utc_now)

    # Money
    amount: NonNegativeDecimal = Field(..., description="Total amount")
    currency_code: str = Field(default="CLP", min_length=3, max_length=3)
    tax_amount: Optional[NonNegativeDecimal] = None
    tax_rate: Optional[NonNegativeDecimal] = None

    # Classification
    category: ReceiptCategory = ReceiptCategory.OTHER
    keywords: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)

    # Location
    location_description: Optional[str] = None
    location: Optional[Coordinate] = None

    # Source document
    attachment: Attachment

    # Timestamps
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @field_validator('purchase_date', 'capture_date', 'created_at', 'updated_at')
    @classmethod
    def make_aware(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @field_validator('currency_code')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


# =============================================================================
# EXTRACTION MODEL (provider response)
# =============================================================================

class ReceiptExtraction(BaseModel):
    """
    Structured data produced by the extraction provider.

    This mirrors the JSON the provider is asked to return, so it accepts
    the provider's camelCase keys as aliases as well as field names.
    """
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    title: str
    merchant_name: str = Field(..., alias="merchantName")
    summary: str = ""
    purchase_date: Optional[datetime] = Field(default=None, alias="purchaseDate")
    total_amount: NonNegativeDecimal = Field(..., alias="totalAmount")
    currency_code: str = Field(default="CLP", alias="currencyCode")
    tax_amount: Optional[NonNegativeDecimal] = Field(default=None, alias="taxAmount")
    tax_rate: Optional[NonNegativeDecimal] = Field(default=None, alias="taxRate")
    category: ReceiptCategory = ReceiptCategory.OTHER
    keywords: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)
    location_description: Optional[str] = Field(default=None, alias="locationDescription")
    location: Optional[Coordinate] = None

    # Not part of the provider payload: "fallback" marks the offline extraction
    source: Literal["provider", "fallback"] = Field(default="provider", exclude=True)

    @field_validator('category', mode='before')
    @classmethod
    def lenient_category(cls, v: object) -> ReceiptCategory:
        """Unknown categories become OTHER instead of failing the decode."""
        if v is None:
            return ReceiptCategory.OTHER
        return ReceiptCategory.parse(v)

    @field_validator('purchase_date')
    @classmethod
    def make_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v) if v is not None else None

    @field_validator('metadata', mode='before')
    @classmethod
    def stringify_metadata(cls, v: object) -> object:
        """Providers sometimes send numbers as metadata values."""
        if isinstance(v, dict):
            return {str(key): "" if value is None else str(value) for key, value in v.items()}
        if v is None:
            return {}
        return v

    @field_validator('keywords', 'tags', mode='before')
    @classmethod
    def none_is_empty(cls, v: object) -> object:
        return [] if v is None else v
