"""
Main Orchestrator for Ahorro

This module ties together all the components around one repository:

    IngestionPipeline → ReceiptRepository → {ReceiptQueryEngine,
                                             ReceiptAnalyticsService}

DESIGN DECISION: The orchestrator only wires. Each component already
enforces its own boundary:
- Only the pipeline creates receipts
- Only the repository changes the collection
- Queries and analytics work from published snapshots

Storage is always the local data directory; extraction is Gemini when a
key is configured and the deterministic fallback otherwise.
"""

from pathlib import Path
from typing import NamedTuple, Optional

import structlog

from ahorro.analytics import ReceiptAnalyticsService
from ahorro.audit import AuditLogger
from ahorro.config import Settings, get_settings
from ahorro.ingestion import IngestionPipeline
from ahorro.queries import ReceiptQueryEngine
from ahorro.repository import ReceiptRepository
from ahorro.services.extraction import ExtractionGateway, GeminiExtractionGateway
from ahorro.services.image import ThumbnailService
from ahorro.services.storage import JsonReceiptStorage, LocalAttachmentStore


logger = structlog.get_logger(__name__)


class AppComponents(NamedTuple):
    """Everything an application shell needs, sharing one repository."""
    repository: ReceiptRepository
    attachments: LocalAttachmentStore
    gateway: ExtractionGateway
    pipeline: IngestionPipeline
    query_engine: ReceiptQueryEngine
    analytics: ReceiptAnalyticsService

    def close(self) -> None:
        """Detach the snapshot consumers from the repository."""
        self.query_engine.close()
        self.analytics.close()


def create_app_components(
    settings: Optional[Settings] = None,
    data_dir: Optional[Path] = None,
    gateway: Optional[ExtractionGateway] = None,
    load: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to the environment)
        data_dir: Overrides the configured data directory
        gateway: Extraction gateway (defaults to Gemini)
        load: Load the stored collection before returning. A corrupt
              collection is logged and replaced by an empty one.

    Returns:
        The wired components
    """
    settings = settings or get_settings()
    storage_settings = settings.storage
    if data_dir is not None:
        storage_settings = storage_settings.model_copy(update={"data_dir": Path(data_dir)})

    audit_logger = AuditLogger()

    attachments = LocalAttachmentStore(settings=storage_settings)
    repository = ReceiptRepository(
        storage=JsonReceiptStorage(settings=storage_settings),
        attachments=attachments,
        audit_logger=audit_logger,
    )

    gateway = gateway or GeminiExtractionGateway(settings.gemini, audit_logger=audit_logger)
    if isinstance(gateway, GeminiExtractionGateway) and not gateway.has_credential:
        logger.warning("extraction_fallback_mode", reason="GEMINI_API_KEY not set")

    pipeline = IngestionPipeline(
        repository=repository,
        attachments=attachments,
        gateway=gateway,
        thumbnailer=ThumbnailService(settings.ingestion),
        settings=settings.ingestion,
        storage_settings=storage_settings,
        audit_logger=audit_logger,
    )
    query_engine = ReceiptQueryEngine(repository, audit_logger=audit_logger)
    analytics = ReceiptAnalyticsService(repository, audit_logger=audit_logger)

    if load:
        repository.load_or_start_empty()

    app_settings = settings.app
    logger.info(
        "components_created",
        environment=app_settings.app_environment,
        debug=app_settings.debug_mode,
        data_dir=str(storage_settings.data_dir),
        receipts=len(repository.list()),
    )

    return AppComponents(
        repository=repository,
        attachments=attachments,
        gateway=gateway,
        pipeline=pipeline,
        query_engine=query_engine,
        analytics=analytics,
    )
