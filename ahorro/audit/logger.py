"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of each ingestion, correlated by id
2. Debugging capability when the provider or the disk fails
3. A record of every collection mutation

The audit logger:
- Is synchronous, because the repository emits events while it holds its lock
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from ahorro.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Writes every event to the structured log. Components take an optional
    AuditLogger; when none is given they build a default one.
    """

    def __init__(self, logger_name: str = "ahorro.audit"):
        self._logger = structlog.get_logger(logger_name)

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the log call itself failed.
        """
        log_dict = event.to_log_dict()

        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            return False

        return True

    def log_attachment_stored(
        self,
        key: str,
        size_bytes: int,
        has_thumbnail: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.attachment_stored(
            key=key,
            size_bytes=size_bytes,
            has_thumbnail=has_thumbnail,
            correlation_id=correlation_id,
        ))

    def log_attachment_store_failed(
        self,
        filename: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.attachment_store_failed(
            filename=filename,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    def log_attachment_cleaned_up(
        self,
        keys: list[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.attachment_cleaned_up(
            keys=keys,
            reason=reason,
            correlation_id=correlation_id,
        ))

    def log_thumbnail_failed(
        self,
        key: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.thumbnail_failed(
            key=key,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    def log_extraction_completed(
        self,
        merchant: str,
        category: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.extraction_completed(
            merchant=merchant,
            category=category,
            amount=amount,
            correlation_id=correlation_id,
        ))

    def log_extraction_fallback(
        self,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.extraction_fallback_used(
            reason=reason,
            correlation_id=correlation_id,
        ))

    def log_extraction_failed(
        self,
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.extraction_failed(
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    def log_collection_loaded(self, count: int, source: str) -> None:
        self.log(AuditEventBuilder.collection_loaded(count=count, source=source))

    def log_storage_corrupt(self, source: str, error_message: str) -> None:
        self.log(AuditEventBuilder.storage_corrupt(
            source=source,
            error_message=error_message,
        ))

    def log_receipt_added(
        self,
        receipt_id: UUID,
        merchant: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.receipt_added(
            receipt_id=receipt_id,
            merchant=merchant,
            amount=amount,
            correlation_id=correlation_id,
        ))

    def log_receipt_updated(self, receipt_id: UUID) -> None:
        self.log(AuditEventBuilder.receipt_updated(receipt_id=receipt_id))

    def log_receipt_deleted(self, receipt_id: UUID, blob_keys: list[str]) -> None:
        self.log(AuditEventBuilder.receipt_deleted(
            receipt_id=receipt_id,
            blob_keys=blob_keys,
        ))

    def log_persist_failed(self, receipt_count: int, error_message: str) -> None:
        self.log(AuditEventBuilder.persist_failed(
            receipt_count=receipt_count,
            error_message=error_message,
        ))

    def log_query_resolved(
        self,
        query_id: UUID,
        filter_count: int,
        result_count: int,
    ) -> None:
        self.log(AuditEventBuilder.query_resolved(
            query_id=query_id,
            filter_count=filter_count,
            result_count=result_count,
        ))

    def log_summary_recomputed(
        self,
        month: Optional[str],
        receipt_count: int,
    ) -> None:
        self.log(AuditEventBuilder.summary_recomputed(
            month=month,
            receipt_count=receipt_count,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a receipt upload).
    Pass it through all subsequent operations.
    """
    return uuid4()
