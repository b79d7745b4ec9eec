"""
Receipt Ingestion Pipeline

This module defines the end-to-end flow for turning an imported document
into a stored receipt:

    bytes → attachment (+ thumbnail) → extraction → merge → repository

DESIGN DECISION: The slow steps (disk writes, Pillow, the provider round
trip) run in worker threads, bounded by a semaphore. The event loop that
submitted the document only does the cheap part: merging the extraction
with the user's input and adding the receipt to the repository.

FAILURE POLICY:
- Attachment write fails → nothing is recorded
- Thumbnail fails → logged, ingestion continues without a preview
- Extraction or recording fails → nothing is recorded, the stored blobs are removed
  again (unless cleanup is disabled), and the caller decides whether
  to resubmit. There is no automatic retry.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime
from pathlib import PurePath
from typing import Optional
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel, ConfigDict

from ahorro.audit import AuditLogger, create_correlation_id
from ahorro.config import IngestionSettings, StorageSettings, get_settings
from ahorro.models.receipt import Attachment, Receipt, ReceiptExtraction
from ahorro.repository import ReceiptRepository
from ahorro.services.extraction import (
    ExtractionGateway,
    GatewayBadResponse,
    GatewayDecodeError,
    GatewayError,
    GatewayUnavailable,
)
from ahorro.services.image import ThumbnailError, ThumbnailService
from ahorro.services.storage import (
    AttachmentPersistError,
    AttachmentStoreInterface,
    StorageError,
)
from ahorro.utils.dates import ensure_aware, now_local


logger = structlog.get_logger(__name__)


_ERROR_KINDS: dict[type[Exception], str] = {
    AttachmentPersistError: "attachment_persist",
    GatewayUnavailable: "gateway_unavailable",
    GatewayBadResponse: "gateway_bad_response",
    GatewayDecodeError: "gateway_decode",
}


class IngestionError(Exception):
    """
    An ingestion that produced no receipt.

    Attributes:
        kind: Short name of the failure ("attachment_persist",
              "gateway_unavailable", "gateway_bad_response",
              "gateway_decode", "gateway" or "unexpected")
        cause: The original exception
    """

    def __init__(self, kind: str, cause: Exception):
        super().__init__(f"Ingestion failed ({kind}): {cause}")
        self.kind = kind
        self.cause = cause

    @classmethod
    def wrap(cls, error: Exception) -> "IngestionError":
        for error_type, kind in _ERROR_KINDS.items():
            if isinstance(error, error_type):
                return cls(kind, error)
        if isinstance(error, GatewayError):
            return cls("gateway", error)
        return cls("unexpected", error)


class IngestionResult(BaseModel):
    """Outcome handed to a submit() completion callback."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    correlation_id: UUID
    receipt: Optional[Receipt] = None
    error: Optional[IngestionError] = None

    @property
    def success(self) -> bool:
        return self.receipt is not None


Completion = Callable[[IngestionResult], None]


def attachment_filename(filename: str) -> str:
    """Blob-safe version of the imported file's name."""
    name = PurePath(filename.replace("\\", "/")).name.replace(" ", "-")
    return name or "document"


class IngestionPipeline:
    """
    Orchestrates the receipt ingestion flow.

    Flow:
    1. Store → write the document (and an image thumbnail) as blobs
    2. Extract → ask the gateway for structured data
    3. Merge → user input wins over extracted text
    4. Record → add the receipt to the repository on the event loop
    5. Complete → report the result exactly once
    """

    def __init__(
        self,
        repository: ReceiptRepository,
        attachments: AttachmentStoreInterface,
        gateway: ExtractionGateway,
        thumbnailer: Optional[ThumbnailService] = None,
        settings: Optional[IngestionSettings] = None,
        storage_settings: Optional[StorageSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._repository = repository
        self._attachments = attachments
        self._gateway = gateway
        self._settings = settings or get_settings().ingestion
        self._storage_settings = storage_settings or get_settings().storage
        self._thumbnailer = thumbnailer or ThumbnailService(self._settings)
        self._audit = audit_logger or AuditLogger()
        self._semaphore: Optional[asyncio.Semaphore] = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        # Created lazily so it belongs to the running loop
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._settings.max_concurrent_ingestions)
        return self._semaphore

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def submit(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        manual_description: Optional[str] = None,
        capture_date: Optional[datetime] = None,
        location_description: Optional[str] = None,
        completion: Optional[Completion] = None,
    ) -> "asyncio.Task[IngestionResult]":
        """
        Start ingesting a document without waiting for it.

        Must be called from the event loop that owns the repository.
        ``completion`` is invoked exactly once, on that loop, with the
        result. The returned task resolves to the same result and never
        raises an ingestion failure.
        """
        loop = asyncio.get_running_loop()
        return loop.create_task(self._run(
            data,
            filename,
            mime_type,
            manual_description,
            capture_date,
            location_description,
            completion,
        ))

    async def ingest(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        manual_description: Optional[str] = None,
        capture_date: Optional[datetime] = None,
        location_description: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Receipt:
        """
        Ingest a document and return the recorded receipt.

        Raises:
            IngestionError: If no receipt was recorded
        """
        correlation_id = correlation_id or create_correlation_id()
        captured_at = ensure_aware(capture_date) if capture_date else now_local()

        try:
            async with self._get_semaphore():
                attachment, extraction = await asyncio.to_thread(
                    self._store_and_extract,
                    data,
                    filename,
                    mime_type,
                    manual_description,
                    correlation_id,
                )

            try:
                receipt = self.build_receipt(
                    extraction,
                    attachment,
                    captured_at,
                    manual_description,
                    location_description,
                )
                self._repository.add(receipt, correlation_id=correlation_id)
            except Exception:
                self._discard_if_enabled(attachment, correlation_id, "recording failed")
                raise
        except IngestionError:
            raise
        except Exception as e:
            self._audit.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"filename": filename},
                correlation_id=correlation_id,
            )
            raise IngestionError.wrap(e) from e

        return receipt

    # =========================================================================
    # MERGE
    # =========================================================================

    def build_receipt(
        self,
        extraction: ReceiptExtraction,
        attachment: Attachment,
        capture_date: datetime,
        manual_description: Optional[str] = None,
        location_description: Optional[str] = None,
    ) -> Receipt:
        """
        Merge an extraction with the user's input into a new Receipt.

        - A non-blank manual description replaces the extracted summary
        - A non-blank location description replaces the extracted one
        - A missing purchase date falls back to the capture date
        """
        description = _non_blank(manual_description) or extraction.summary or None
        location_text = _non_blank(location_description) or extraction.location_description

        currency = extraction.currency_code.upper()
        if len(currency) != 3:
            currency = self._settings.default_currency

        return Receipt(
            title=extraction.title,
            merchant_name=extraction.merchant_name,
            description=description,
            purchase_date=extraction.purchase_date or capture_date,
            capture_date=capture_date,
            amount=extraction.total_amount,
            currency_code=currency,
            tax_amount=extraction.tax_amount,
            tax_rate=extraction.tax_rate,
            category=extraction.category,
            keywords=list(extraction.keywords),
            tags=list(extraction.tags),
            metadata=dict(extraction.metadata),
            location_description=location_text,
            location=extraction.location,
            attachment=attachment,
        )

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _run(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        manual_description: Optional[str],
        capture_date: Optional[datetime],
        location_description: Optional[str],
        completion: Optional[Completion],
    ) -> IngestionResult:
        correlation_id = create_correlation_id()
        try:
            receipt = await self.ingest(
                data,
                filename,
                mime_type,
                manual_description=manual_description,
                capture_date=capture_date,
                location_description=location_description,
                correlation_id=correlation_id,
            )
            result = IngestionResult(correlation_id=correlation_id, receipt=receipt)
        except IngestionError as e:
            result = IngestionResult(correlation_id=correlation_id, error=e)

        if completion is not None:
            try:
                completion(result)
            except Exception:
                logger.exception("completion_callback_failed", correlation_id=str(correlation_id))
        return result

    def _store_and_extract(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        hint: Optional[str],
        correlation_id: UUID,
    ) -> tuple[Attachment, ReceiptExtraction]:
        """Blocking part of the flow; runs in a worker thread."""
        attachment = self._store_attachment(data, filename, mime_type, correlation_id)

        try:
            extraction = self._gateway.analyse(data, mime_type, hint)
        except Exception as e:
            self._audit.log_extraction_failed(
                error_code=type(e).__name__,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            self._discard_if_enabled(attachment, correlation_id, "extraction failed")
            raise IngestionError.wrap(e) from e

        if extraction.source == "fallback":
            self._audit.log_extraction_fallback(
                reason="no extraction credential",
                correlation_id=correlation_id,
            )
        else:
            self._audit.log_extraction_completed(
                merchant=extraction.merchant_name,
                category=extraction.category.value,
                amount=str(extraction.total_amount),
                correlation_id=correlation_id,
            )
        return attachment, extraction

    def _store_attachment(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        correlation_id: UUID,
    ) -> Attachment:
        name = f"{uuid4()}-{attachment_filename(filename)}"
        key = f"{self._storage_settings.attachments_dir}/{name}"

        try:
            self._attachments.put(key, data)
        except AttachmentPersistError as e:
            self._audit.log_attachment_store_failed(
                filename=filename,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise IngestionError.wrap(e) from e

        thumbnail_key = None
        if self._thumbnailer.supports(mime_type):
            thumbnail_key = self._store_thumbnail(data, name, correlation_id)

        self._audit.log_attachment_stored(
            key=key,
            size_bytes=len(data),
            has_thumbnail=thumbnail_key is not None,
            correlation_id=correlation_id,
        )
        return Attachment(
            relative_path=key,
            thumbnail_relative_path=thumbnail_key,
            mime_type=mime_type,
        )

    def _store_thumbnail(
        self,
        data: bytes,
        name: str,
        correlation_id: UUID,
    ) -> Optional[str]:
        key = f"{self._storage_settings.thumbnails_dir}/{name}"
        try:
            self._attachments.put(key, self._thumbnailer.generate(data))
        except (ThumbnailError, AttachmentPersistError) as e:
            self._audit.log_thumbnail_failed(
                key=key,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return None
        return key

    def _discard_if_enabled(self, attachment: Attachment, correlation_id: UUID, reason: str) -> None:
        if self._settings.cleanup_orphaned_attachments:
            self._discard_attachment(attachment, correlation_id, reason)

    def _discard_attachment(self, attachment: Attachment, correlation_id: UUID, reason: str) -> None:
        removed = []
        for key in attachment.keys:
            try:
                if self._attachments.delete(key):
                    removed.append(key)
            except StorageError as e:
                logger.warning("orphan_cleanup_failed", key=key, error=str(e))
        self._audit.log_attachment_cleaned_up(
            keys=removed,
            reason=reason,
            correlation_id=correlation_id,
        )


def _non_blank(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None
