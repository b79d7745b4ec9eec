"""
Extraction Gateway Interface

DESIGN DECISION: The pipeline depends only on this contract:

    analyse(document bytes, MIME type, optional hint) -> ReceiptExtraction

Failures are typed so the pipeline can report exactly what went wrong:
- GatewayUnavailable: transport or API failure
- GatewayBadResponse: the provider answered, but with nothing usable
- GatewayDecodeError: the answer is not the JSON object we asked for

A missing credential is NOT a failure. Gateways return
``fallback_extraction(hint)`` instead, so the pipeline keeps working
offline and in tests.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from ahorro.models.receipt import ReceiptCategory, ReceiptExtraction


FALLBACK_TITLE = "Boleta"
FALLBACK_MERCHANT = "Comercio"
FALLBACK_SUMMARY = "Compra registrada manualmente"
FALLBACK_AMOUNT = Decimal("19990")
FALLBACK_CURRENCY = "CLP"
FALLBACK_TAX_AMOUNT = Decimal("3181")
FALLBACK_TAX_RATE = Decimal("0.19")
FALLBACK_CATEGORY = ReceiptCategory.OTHER


class GatewayError(Exception):
    """Base exception for extraction gateway errors."""
    pass


class MissingCredentialError(GatewayError):
    """No provider credential is configured (converted to the fallback)."""
    pass


class GatewayUnavailable(GatewayError):
    """The provider could not be reached or rejected the call."""
    pass


class GatewayBadResponse(GatewayError):
    """The provider answered without usable content."""
    pass


class GatewayDecodeError(GatewayError):
    """The provider's content is not a valid extraction object."""
    pass


class ExtractionGateway(ABC):
    """
    Abstract extraction provider.

    Implementations are blocking; the ingestion pipeline calls them
    from a worker thread.
    """

    @abstractmethod
    def analyse(
        self,
        document: bytes,
        mime_type: str,
        hint: Optional[str] = None,
    ) -> ReceiptExtraction:
        """
        Extract structured receipt data from a document.

        Args:
            document: Raw document bytes
            mime_type: MIME type of the document
            hint: Free-text description supplied by the user

        Raises:
            GatewayUnavailable, GatewayBadResponse, GatewayDecodeError
        """
        pass


def fallback_extraction(hint: Optional[str] = None) -> ReceiptExtraction:
    """
    Fixed extraction used when no provider is configured.

    Everything except the summary is constant. The purchase date is left
    empty so the receipt takes the capture date.
    """
    return ReceiptExtraction(
        title=FALLBACK_TITLE,
        merchant_name=FALLBACK_MERCHANT,
        summary=hint if hint and hint.strip() else FALLBACK_SUMMARY,
        purchase_date=None,
        total_amount=FALLBACK_AMOUNT,
        currency_code=FALLBACK_CURRENCY,
        tax_amount=FALLBACK_TAX_AMOUNT,
        tax_rate=FALLBACK_TAX_RATE,
        category=FALLBACK_CATEGORY,
        keywords=["manual", "sin-ia"],
        tags=["fallback"],
        metadata={},
        location_description=None,
        location=None,
        source="fallback",
    )
