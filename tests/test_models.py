"""
Tests for the Ahorro data models.

Test strategy:
1. Unit tests for individual models (validation, coercion)
2. Component tests with in-memory fakes (see conftest.py)
3. No real API calls in tests
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from ahorro.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from ahorro.models.query import QueryResolution, ReceiptQuery
from ahorro.models.receipt import (
    Attachment,
    Coordinate,
    ReceiptCategory,
    ReceiptExtraction,
)


class TestReceiptCategory:
    """Tests for the closed category set."""

    def test_all_categories_exist(self):
        """Test the thirteen canonical categories."""
        assert [c.value for c in ReceiptCategory] == [
            "housing", "utilities", "groceries", "dining", "health",
            "transportation", "entertainment", "education", "insurance",
            "debt", "savings", "travel", "other",
        ]

    def test_display_titles_are_spanish(self):
        """Test a few display titles."""
        assert ReceiptCategory.GROCERIES.display_title == "Supermercado"
        assert ReceiptCategory.HOUSING.display_title == "Arriendo / Hipoteca"
        assert ReceiptCategory.OTHER.display_title == "Otros"

    def test_parse_is_lenient(self):
        """Test unknown identifiers map to OTHER."""
        assert ReceiptCategory.parse(" Dining ") == ReceiptCategory.DINING
        assert ReceiptCategory.parse("crypto") == ReceiptCategory.OTHER
        assert ReceiptCategory.parse(ReceiptCategory.TRAVEL) == ReceiptCategory.TRAVEL


class TestReceiptModel:
    """Tests for the Receipt record."""

    def test_receipt_is_frozen(self, make_receipt):
        """Test snapshots cannot be mutated in place."""
        receipt = make_receipt()
        with pytest.raises(ValidationError):
            receipt.title = "Otro"

    def test_model_copy_keeps_identity(self, make_receipt):
        """Test edits through model_copy keep the id."""
        receipt = make_receipt()
        edited = receipt.model_copy(update={"title": "Editada"})
        assert edited.id == receipt.id
        assert edited.title == "Editada"

    def test_rejects_negative_amount(self, make_receipt):
        """Test amounts must be non-negative."""
        with pytest.raises(ValidationError):
            make_receipt(amount=Decimal("-1"))

    def test_currency_is_uppercased(self, make_receipt):
        """Test currency codes are normalised."""
        assert make_receipt(currency_code="usd").currency_code == "USD"

    def test_naive_datetimes_become_aware(self, make_receipt):
        """Test naive purchase dates get the local timezone."""
        receipt = make_receipt(purchase_date=datetime(2024, 3, 1, 9, 0))
        assert receipt.purchase_date.tzinfo is not None
        assert receipt.purchase_date.hour == 9

    def test_strips_whitespace(self, make_receipt):
        """Test string fields are stripped."""
        assert make_receipt(merchant_name="  Lider  ").merchant_name == "Lider"

    def test_attachment_keys(self):
        """Test an attachment owns its document and thumbnail keys."""
        with_thumb = Attachment(
            relative_path="Attachments/x.jpg",
            thumbnail_relative_path="Thumbnails/x.jpg",
            mime_type="image/jpeg",
        )
        without_thumb = Attachment(relative_path="Attachments/x.pdf", mime_type="application/pdf")
        assert with_thumb.keys == ["Attachments/x.jpg", "Thumbnails/x.jpg"]
        assert without_thumb.keys == ["Attachments/x.pdf"]

    def test_coordinate_bounds(self):
        """Test latitude must be within range."""
        with pytest.raises(ValidationError):
            Coordinate(latitude=91, longitude=0)


class TestReceiptExtraction:
    """Tests for the provider response model."""

    def test_accepts_camel_case_payload(self):
        """Test the provider's camelCase keys are accepted."""
        extraction = ReceiptExtraction.model_validate({
            "title": "Boleta",
            "merchantName": "Jumbo",
            "totalAmount": "15990",
            "currencyCode": "CLP",
            "taxAmount": 2553,
            "purchaseDate": "2024-03-02T10:00:00-03:00",
            "category": "groceries",
            "locationDescription": "Las Condes",
        })
        assert extraction.merchant_name == "Jumbo"
        assert extraction.total_amount == Decimal("15990")
        assert extraction.category == ReceiptCategory.GROCERIES
        assert extraction.location_description == "Las Condes"
        assert extraction.source == "provider"

    def test_unknown_category_becomes_other(self):
        """Test a made-up category does not fail the decode."""
        extraction = ReceiptExtraction(
            title="x", merchant_name="y", total_amount=1, category="gadgets"
        )
        assert extraction.category == ReceiptCategory.OTHER

    def test_nulls_become_empty(self):
        """Test null lists and metadata become empty collections."""
        extraction = ReceiptExtraction.model_validate({
            "title": "x",
            "merchantName": "y",
            "totalAmount": 1,
            "keywords": None,
            "tags": None,
            "metadata": None,
            "category": None,
        })
        assert extraction.keywords == []
        assert extraction.tags == []
        assert extraction.metadata == {}
        assert extraction.category == ReceiptCategory.OTHER

    def test_metadata_values_are_stringified(self):
        """Test numeric metadata values become strings."""
        extraction = ReceiptExtraction(
            title="x", merchant_name="y", total_amount=1,
            metadata={"folio": 1234, "caja": None},
        )
        assert extraction.metadata == {"folio": "1234", "caja": ""}

    def test_source_is_not_serialised(self):
        """Test the source marker stays out of dumps."""
        extraction = ReceiptExtraction(title="x", merchant_name="y", total_amount=1)
        assert "source" not in extraction.model_dump()


class TestQueryResolution:
    """Tests for the result digest."""

    def test_digest_groups_by_merchant_in_first_seen_order(self, make_receipt):
        """Test per-merchant totals and the exact overall total."""
        results = (
            make_receipt(merchant_name="Lider", amount=Decimal("0.10")),
            make_receipt(merchant_name="Jumbo", amount=Decimal("0.20")),
            make_receipt(merchant_name="Lider", amount=Decimal("0.20")),
        )
        digest = QueryResolution(query=ReceiptQuery(prompt="x"), results=results).digest()

        assert digest.result_count == 3
        assert digest.total == Decimal("0.50")
        assert digest.currency_code == "CLP"
        assert [m.merchant_name for m in digest.by_merchant] == ["Lider", "Jumbo"]
        assert digest.by_merchant[0].receipt_count == 2
        assert digest.by_merchant[0].total == Decimal("0.30")

    def test_empty_digest(self):
        """Test an empty result set reports no data."""
        digest = QueryResolution(query=ReceiptQuery(prompt="x")).digest()
        assert not digest.data_found
        assert digest.total == Decimal(0)
        assert digest.currency_code is None


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.COLLECTION_LOADED,
            description="Loaded",
        )
        assert event.event_type == AuditEventType.COLLECTION_LOADED
        assert event.severity == AuditSeverity.INFO
        assert event.timestamp.tzinfo == timezone.utc

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.RECEIPT_ADDED,
            description="Receipt added",
            details={"merchant": "Lider", "amount": "1000"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "receipt_added"
        assert log_dict["details"]["merchant"] == "Lider"

    def test_long_descriptions_are_truncated(self):
        """Test a huge merchant name cannot break event creation."""
        event = AuditEventBuilder.receipt_added(
            receipt_id=uuid4(),
            merchant="x" * 1000,
            amount="1",
        )
        assert len(event.description) == 500

    def test_builder_receipt_added(self):
        """Test AuditEventBuilder.receipt_added."""
        receipt_id = uuid4()
        correlation_id = uuid4()

        event = AuditEventBuilder.receipt_added(
            receipt_id=receipt_id,
            merchant="Lider",
            amount="1000",
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.RECEIPT_ADDED
        assert event.entity_id == receipt_id
        assert event.correlation_id == correlation_id

    def test_builder_extraction_failed_is_an_error(self):
        """Test extraction failures carry error severity and code."""
        event = AuditEventBuilder.extraction_failed(
            error_code="GatewayUnavailable",
            error_message="timeout",
        )
        assert event.severity == AuditSeverity.ERROR
        assert event.error_code == "GatewayUnavailable"
