"""
Abstract Storage Interfaces

DESIGN DECISION: We define abstract interfaces for the two kinds of
durable state the system needs:
1. The receipt collection - one document, rewritten in full on every change
2. Attachment blobs - source documents and thumbnails, keyed by path

This allows us to:
1. Swap the local file system for something else later
2. Use in-memory storage for testing
3. Keep the repository and pipeline decoupled from file handling

The interfaces are intentionally small - just the operations we need.
Implementations are synchronous; callers that must not block run them
in a worker thread.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from ahorro.models.receipt import Receipt


class ReceiptCollectionStorageInterface(ABC):
    """
    Abstract interface for the persisted receipt collection.

    The collection is stored as a single document. There is no incremental
    format: every save replaces the whole document atomically.
    """

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable description of where the collection lives."""
        pass

    @abstractmethod
    def load(self) -> list[Receipt]:
        """
        Read the full collection.

        Returns:
            The stored receipts in stored order, or an empty list
            if nothing has been stored yet

        Raises:
            StorageCorrupt: If the stored document cannot be decoded
        """
        pass

    @abstractmethod
    def persist(self, receipts: Sequence[Receipt]) -> None:
        """
        Replace the stored collection with ``receipts``.

        Raises:
            PersistWriteFailed: If the document could not be written
        """
        pass


class AttachmentStoreInterface(ABC):
    """
    Abstract interface for blob storage.

    Keys are relative, '/'-separated paths such as
    ``Attachments/<uuid>-receipt.jpg``.
    """

    @abstractmethod
    def put(self, key: str, data: bytes) -> None:
        """
        Store ``data`` under ``key``, replacing any existing blob.

        Raises:
            AttachmentPersistError: If the blob could not be written
        """
        pass

    @abstractmethod
    def get(self, key: str) -> bytes:
        """
        Read the blob stored under ``key``.

        Raises:
            NotFoundError: If no blob exists under ``key``
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Delete the blob under ``key``.

        Returns:
            True if a blob was deleted, False if there was none

        Raises:
            StorageError: If the blob exists but could not be removed
        """
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether a blob is stored under ``key``."""
        pass

    @abstractmethod
    def list_keys(self, prefix: str) -> list[str]:
        """List every key under ``prefix`` (a key directory such as 'Attachments')."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Blob not found in storage."""
    pass


class StorageCorrupt(StorageError):
    """The persisted collection exists but cannot be decoded."""
    pass


class PersistWriteFailed(StorageError):
    """Rewriting the persisted collection failed."""
    pass


class AttachmentPersistError(StorageError):
    """Writing an attachment blob failed."""
    pass
