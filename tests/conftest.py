"""
Shared fixtures for the Ahorro tests.

No test touches the network: the extraction gateway is always a fake or
a Gemini gateway wired to a fake model. File system tests use tmp_path.
"""

import threading
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import BytesIO
from typing import Optional

import pytest
from PIL import Image

from ahorro.audit import AuditLogger
from ahorro.config import IngestionSettings, StorageSettings
from ahorro.models.receipt import (
    Attachment,
    Receipt,
    ReceiptCategory,
    ReceiptExtraction,
)
from ahorro.repository import ReceiptRepository
from ahorro.services.extraction import ExtractionGateway
from ahorro.services.storage import (
    AttachmentPersistError,
    AttachmentStoreInterface,
    NotFoundError,
    PersistWriteFailed,
    ReceiptCollectionStorageInterface,
    StorageCorrupt,
)


SANTIAGO = timezone(timedelta(hours=-3))


# =============================================================================
# FAKES
# =============================================================================

class InMemoryCollectionStorage(ReceiptCollectionStorageInterface):
    """Collection storage kept in a list."""

    def __init__(
        self,
        receipts: Optional[Sequence[Receipt]] = None,
        corrupt: bool = False,
    ):
        self.stored = list(receipts or [])
        self.corrupt = corrupt
        self.fail_persist = False
        self.persist_calls = 0

    @property
    def location(self) -> str:
        return "memory"

    def load(self) -> list[Receipt]:
        if self.corrupt:
            raise StorageCorrupt("not a receipt list")
        return list(self.stored)

    def persist(self, receipts: Sequence[Receipt]) -> None:
        self.persist_calls += 1
        if self.fail_persist:
            raise PersistWriteFailed("disk full")
        self.stored = list(receipts)


class InMemoryAttachmentStore(AttachmentStoreInterface):
    """Blob store kept in a dict; ``fail_prefixes`` make put() fail."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.fail_prefixes: set[str] = set()
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes) -> None:
        if any(key.startswith(prefix) for prefix in self.fail_prefixes):
            raise AttachmentPersistError(f"cannot write {key}")
        with self._lock:
            self.blobs[key] = data

    def get(self, key: str) -> bytes:
        try:
            return self.blobs[key]
        except KeyError as e:
            raise NotFoundError(key) from e

    def delete(self, key: str) -> bool:
        with self._lock:
            return self.blobs.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        return key in self.blobs

    def list_keys(self, prefix: str) -> list[str]:
        return sorted(key for key in self.blobs if key.startswith(f"{prefix}/"))


class FakeGateway(ExtractionGateway):
    """Returns a canned extraction or raises a canned error."""

    def __init__(
        self,
        extraction: Optional[ReceiptExtraction] = None,
        error: Optional[Exception] = None,
    ):
        self.extraction = extraction
        self.error = error
        self.calls: list[tuple[bytes, str, Optional[str]]] = []

    def analyse(
        self,
        document: bytes,
        mime_type: str,
        hint: Optional[str] = None,
    ) -> ReceiptExtraction:
        self.calls.append((document, mime_type, hint))
        if self.error is not None:
            raise self.error
        return self.extraction


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def audit_logger():
    return AuditLogger("ahorro.tests")


@pytest.fixture
def collection_storage():
    return InMemoryCollectionStorage()


@pytest.fixture
def attachment_store():
    return InMemoryAttachmentStore()


@pytest.fixture
def repository(collection_storage, attachment_store, audit_logger):
    return ReceiptRepository(collection_storage, attachment_store, audit_logger)


@pytest.fixture
def storage_settings(tmp_path):
    return StorageSettings(data_dir=tmp_path, persist_retry_wait_seconds=0)


@pytest.fixture
def ingestion_settings():
    return IngestionSettings(max_concurrent_ingestions=2)


@pytest.fixture
def make_receipt():
    """Factory for receipts with sensible defaults."""

    def _make(**overrides) -> Receipt:
        values = {
            "title": "Compra",
            "merchant_name": "Lider",
            "purchase_date": datetime(2024, 3, 10, 12, 0, tzinfo=SANTIAGO),
            "amount": Decimal("1000"),
            "category": ReceiptCategory.GROCERIES,
            "attachment": Attachment(
                relative_path="Attachments/a.jpg",
                mime_type="image/jpeg",
            ),
        }
        values.update(overrides)
        return Receipt(**values)

    return _make


@pytest.fixture
def extraction():
    return ReceiptExtraction(
        title="Almuerzo",
        merchant_name="Café Juan",
        summary="Almuerzo ejecutivo",
        purchase_date=datetime(2024, 3, 5, 13, 30, tzinfo=SANTIAGO),
        total_amount=Decimal("8500"),
        tax_amount=Decimal("1357"),
        tax_rate=Decimal("0.19"),
        category="dining",
        keywords=["almuerzo", "café"],
        tags=["trabajo"],
        location_description="Providencia",
    )


@pytest.fixture
def white_jpeg() -> bytes:
    """A 100x100 white JPEG."""
    out = BytesIO()
    Image.new("RGB", (100, 100), "white").save(out, format="JPEG")
    return out.getvalue()
