"""
Audit Models for Ahorro

Every significant action in the system produces an audit event.
This provides:
1. Traceability of each ingestion from blob write to stored receipt
2. Debugging information when the provider or the disk misbehaves
3. Ability to reconstruct what happened to the collection

DESIGN DECISION: Audit events are emitted through structured logging.
They are never used for control flow.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the ingestion pipeline and every collection mutation
    has its own event type.
    """
    # Attachments
    ATTACHMENT_STORED = "attachment_stored"
    ATTACHMENT_STORE_FAILED = "attachment_store_failed"
    ATTACHMENT_CLEANED_UP = "attachment_cleaned_up"
    THUMBNAIL_FAILED = "thumbnail_failed"

    # Extraction
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FALLBACK_USED = "extraction_fallback_used"
    EXTRACTION_FAILED = "extraction_failed"

    # Collection
    COLLECTION_LOADED = "collection_loaded"
    STORAGE_CORRUPT = "storage_corrupt"
    RECEIPT_ADDED = "receipt_added"
    RECEIPT_UPDATED = "receipt_updated"
    RECEIPT_DELETED = "receipt_deleted"
    PERSIST_FAILED = "persist_failed"

    # Derived state
    QUERY_RESOLVED = "query_resolved"
    SUMMARY_RECOMPUTED = "summary_recomputed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'receipt', 'attachment', 'query')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one ingestion)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def truncate_description(cls, v: object) -> object:
        """Descriptions embed merchant names, which can be arbitrarily long."""
        if isinstance(v, str) and len(v) > 500:
            return v[:497] + "..."
        return v

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.attachment_stored(key, size, correlation_id)
        event = AuditEventBuilder.receipt_added(receipt_id, merchant, amount)
    """

    @staticmethod
    def attachment_stored(
        key: str,
        size_bytes: int,
        has_thumbnail: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATTACHMENT_STORED,
            entity_type="attachment",
            correlation_id=correlation_id,
            description=f"Attachment stored: {key}",
            details={
                "key": key,
                "size_bytes": size_bytes,
                "has_thumbnail": has_thumbnail,
            },
        )

    @staticmethod
    def attachment_store_failed(
        filename: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATTACHMENT_STORE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="attachment",
            correlation_id=correlation_id,
            description=f"Could not store attachment: {filename}",
            error_message=error_message,
            details={"filename": filename},
        )

    @staticmethod
    def attachment_cleaned_up(
        keys: list[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATTACHMENT_CLEANED_UP,
            severity=AuditSeverity.WARNING,
            entity_type="attachment",
            correlation_id=correlation_id,
            description=f"Removed {len(keys)} unreferenced blob(s)",
            details={"keys": keys, "reason": reason},
        )

    @staticmethod
    def thumbnail_failed(
        key: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.THUMBNAIL_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="attachment",
            correlation_id=correlation_id,
            description=f"Thumbnail generation failed for {key}",
            error_message=error_message,
            details={"key": key},
        )

    @staticmethod
    def extraction_completed(
        merchant: str,
        category: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Extraction completed: {merchant} - {amount}",
            details={
                "merchant": merchant,
                "category": category,
                "amount": amount,
            },
        )

    @staticmethod
    def extraction_fallback_used(
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FALLBACK_USED,
            severity=AuditSeverity.WARNING,
            entity_type="extraction",
            correlation_id=correlation_id,
            description="Provider not available, fallback extraction used",
            details={"reason": reason},
        )

    @staticmethod
    def extraction_failed(
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Extraction failed: {error_code}",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def collection_loaded(count: int, source: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLLECTION_LOADED,
            entity_type="collection",
            description=f"Loaded {count} receipt(s)",
            details={"count": count, "source": source},
        )

    @staticmethod
    def storage_corrupt(source: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_CORRUPT,
            severity=AuditSeverity.ERROR,
            entity_type="collection",
            description="Collection file is unreadable, starting empty",
            error_message=error_message,
            details={"source": source},
        )

    @staticmethod
    def receipt_added(
        receipt_id: UUID,
        merchant: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_ADDED,
            entity_type="receipt",
            entity_id=receipt_id,
            correlation_id=correlation_id,
            description=f"Receipt added: {merchant} - {amount}",
            details={"merchant": merchant, "amount": amount},
        )

    @staticmethod
    def receipt_updated(receipt_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_UPDATED,
            entity_type="receipt",
            entity_id=receipt_id,
            description="Receipt updated",
        )

    @staticmethod
    def receipt_deleted(receipt_id: UUID, blob_keys: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_DELETED,
            entity_type="receipt",
            entity_id=receipt_id,
            description="Receipt deleted",
            details={"blob_keys": blob_keys},
        )

    @staticmethod
    def persist_failed(
        receipt_count: int,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSIST_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="collection",
            description="Collection rewrite failed; in-memory state kept",
            error_message=error_message,
            details={"receipt_count": receipt_count},
        )

    @staticmethod
    def query_resolved(
        query_id: UUID,
        filter_count: int,
        result_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUERY_RESOLVED,
            severity=AuditSeverity.DEBUG,
            entity_type="query",
            entity_id=query_id,
            description=f"Query resolved: {filter_count} filter(s), {result_count} result(s)",
            details={
                "filter_count": filter_count,
                "result_count": result_count,
            },
        )

    @staticmethod
    def summary_recomputed(
        month: Optional[str],
        receipt_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_RECOMPUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="analytics",
            description=(
                f"Summary recomputed for {month}"
                if month else "No receipts in the current month"
            ),
            details={"month": month, "receipt_count": receipt_count},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
