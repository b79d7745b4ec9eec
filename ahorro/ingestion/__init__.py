"""Receipt ingestion package."""

from ahorro.ingestion.pipeline import (
    IngestionError,
    IngestionPipeline,
    IngestionResult,
    attachment_filename,
)

__all__ = [
    "IngestionError",
    "IngestionPipeline",
    "IngestionResult",
    "attachment_filename",
]
