"""Services package."""

from ahorro.services.extraction import (
    ExtractionGateway,
    GatewayBadResponse,
    GatewayDecodeError,
    GatewayError,
    GatewayUnavailable,
    GeminiExtractionGateway,
    MissingCredentialError,
)
from ahorro.services.image import ThumbnailError, ThumbnailService
from ahorro.services.storage import (
    AttachmentPersistError,
    AttachmentStoreInterface,
    JsonReceiptStorage,
    LocalAttachmentStore,
    NotFoundError,
    PersistWriteFailed,
    ReceiptCollectionStorageInterface,
    StorageCorrupt,
    StorageError,
)

__all__ = [
    # Extraction services
    "ExtractionGateway",
    "GatewayBadResponse",
    "GatewayDecodeError",
    "GatewayError",
    "GatewayUnavailable",
    "GeminiExtractionGateway",
    "MissingCredentialError",
    # Image services
    "ThumbnailError",
    "ThumbnailService",
    # Storage services
    "AttachmentPersistError",
    "AttachmentStoreInterface",
    "JsonReceiptStorage",
    "LocalAttachmentStore",
    "NotFoundError",
    "PersistWriteFailed",
    "ReceiptCollectionStorageInterface",
    "StorageCorrupt",
    "StorageError",
]
