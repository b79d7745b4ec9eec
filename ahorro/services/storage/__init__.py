"""
Storage Services Package

Provides abstract interfaces and local file system implementations for
the receipt collection and attachment blobs.
"""

from ahorro.services.storage.interface import (
    AttachmentPersistError,
    AttachmentStoreInterface,
    NotFoundError,
    PersistWriteFailed,
    ReceiptCollectionStorageInterface,
    StorageCorrupt,
    StorageError,
)
from ahorro.services.storage.local_files import (
    JsonReceiptStorage,
    LocalAttachmentStore,
)

__all__ = [
    # Interfaces
    "AttachmentStoreInterface",
    "ReceiptCollectionStorageInterface",
    # Exceptions
    "AttachmentPersistError",
    "NotFoundError",
    "PersistWriteFailed",
    "StorageCorrupt",
    "StorageError",
    # Local implementation
    "JsonReceiptStorage",
    "LocalAttachmentStore",
]
