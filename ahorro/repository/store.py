"""
Receipt Repository

DESIGN DECISION: The repository is the ONLY place the receipt collection
changes. Everything else (queries, analytics, UI) reads snapshots:
1. Mutations update memory first, then rewrite the durable collection
2. A failed rewrite is logged and the in-memory change is kept
3. Every mutation publishes an immutable snapshot to subscribers

A re-entrant lock is held across mutate, persist and publish. That keeps
notifications in mutation order even if a caller mutates from a worker
thread, and lets a subscriber callback read the repository again.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Literal, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict

from ahorro.audit import AuditLogger
from ahorro.config import get_settings
from ahorro.models.receipt import Receipt, ReceiptCategory
from ahorro.services.storage import (
    AttachmentStoreInterface,
    PersistWriteFailed,
    ReceiptCollectionStorageInterface,
    StorageCorrupt,
    StorageError,
)


logger = structlog.get_logger(__name__)


ChangeReason = Literal["loaded", "added", "updated", "deleted"]


class ChangeNotification(BaseModel):
    """A published snapshot of the whole collection."""
    model_config = ConfigDict(frozen=True)

    version: int
    reason: ChangeReason
    receipts: tuple[Receipt, ...]


Subscriber = Callable[[ChangeNotification], None]


class ReceiptRepository:
    """
    Authoritative, ordered receipt collection.

    Receipts are kept in insertion order. ``list()`` and the
    ``receipts`` property return tuples, so callers can never mutate
    the collection behind the repository's back.
    """

    def __init__(
        self,
        storage: ReceiptCollectionStorageInterface,
        attachments: AttachmentStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._attachments = attachments
        self._audit = audit_logger or AuditLogger()
        self._lock = threading.RLock()
        self._receipts: list[Receipt] = []
        self._subscribers: list[Subscriber] = []
        self._version = 0

    # =========================================================================
    # READS
    # =========================================================================

    @property
    def receipts(self) -> tuple[Receipt, ...]:
        """Current snapshot."""
        with self._lock:
            return tuple(self._receipts)

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def list(self) -> tuple[Receipt, ...]:
        return self.receipts

    def by_category(self, category: ReceiptCategory) -> list[Receipt]:
        with self._lock:
            return [r for r in self._receipts if r.category == category]

    def get(self, receipt_id: UUID) -> Optional[Receipt]:
        with self._lock:
            return next((r for r in self._receipts if r.id == receipt_id), None)

    # =========================================================================
    # LOADING
    # =========================================================================

    def load(self) -> tuple[Receipt, ...]:
        """
        Replace the in-memory collection with the stored one.

        Returns:
            The loaded snapshot

        Raises:
            StorageCorrupt: If the stored collection cannot be decoded.
                The in-memory collection is left untouched.
        """
        with self._lock:
            try:
                loaded = self._storage.load()
            except StorageCorrupt as e:
                self._audit.log_storage_corrupt(
                    source=self._storage.location,
                    error_message=str(e),
                )
                raise

            self._receipts = list(loaded)
            self._audit.log_collection_loaded(
                count=len(self._receipts),
                source=self._storage.location,
            )
            return self._publish("loaded")

    def load_or_start_empty(self) -> tuple[Receipt, ...]:
        """Load, treating a corrupt collection as an empty one."""
        try:
            return self.load()
        except StorageCorrupt:
            logger.warning("starting_with_empty_collection", source=self._storage.location)
            with self._lock:
                self._receipts = []
                return self._publish("loaded")

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def add(self, receipt: Receipt, correlation_id: Optional[UUID] = None) -> None:
        """Append ``receipt`` and publish."""
        with self._lock:
            self._receipts.append(receipt)
            self._audit.log_receipt_added(
                receipt_id=receipt.id,
                merchant=receipt.merchant_name,
                amount=str(receipt.amount),
                correlation_id=correlation_id,
            )
            self._persist()
            self._publish("added")

    def update(self, receipt: Receipt) -> bool:
        """
        Replace the stored receipt that has the same id.

        ``updated_at`` is stamped with the current time.

        Returns:
            False (and nothing changes) if no receipt has that id
        """
        with self._lock:
            index = self._index_of(receipt.id)
            if index is None:
                logger.info("update_ignored_unknown_receipt", receipt_id=str(receipt.id))
                return False

            self._receipts[index] = receipt.model_copy(
                update={"updated_at": datetime.now(timezone.utc)}
            )
            self._audit.log_receipt_updated(receipt_id=receipt.id)
            self._persist()
            self._publish("updated")
            return True

    def delete(self, receipt: Receipt) -> bool:
        """
        Remove the receipt with ``receipt.id`` and its attachment blobs.

        Blob deletion failures are logged; the record is removed anyway.

        Returns:
            False (and nothing changes) if no receipt has that id
        """
        with self._lock:
            index = self._index_of(receipt.id)
            if index is None:
                logger.info("delete_ignored_unknown_receipt", receipt_id=str(receipt.id))
                return False

            removed = self._receipts.pop(index)
            keys = removed.attachment.keys
            self._delete_blobs(keys)
            self._audit.log_receipt_deleted(receipt_id=removed.id, blob_keys=keys)
            self._persist()
            self._publish("deleted")
            return True

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register ``callback`` for change notifications.

        The current snapshot is delivered immediately, so a late
        subscriber starts consistent.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)
            self._deliver(callback, self._snapshot("loaded"))

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def reconcile_attachments(self, prefixes: Optional[Iterable[str]] = None) -> list[str]:
        """
        Delete stored blobs that no receipt references.

        Args:
            prefixes: Key directories to sweep (defaults to the configured
                      attachment and thumbnail directories)

        Returns:
            The deleted keys
        """
        if prefixes is None:
            storage_settings = get_settings().storage
            prefixes = (storage_settings.attachments_dir, storage_settings.thumbnails_dir)

        with self._lock:
            referenced = {key for r in self._receipts for key in r.attachment.keys}
            orphans = [
                key
                for prefix in prefixes
                for key in self._attachments.list_keys(prefix)
                if key not in referenced
            ]
            deleted = self._delete_blobs(orphans)

        if deleted:
            self._audit.log_attachment_cleaned_up(keys=deleted, reason="reconcile")
        return deleted

    # =========================================================================
    # INTERNALS (call with the lock held)
    # =========================================================================

    def _index_of(self, receipt_id: UUID) -> Optional[int]:
        for index, existing in enumerate(self._receipts):
            if existing.id == receipt_id:
                return index
        return None

    def _persist(self) -> None:
        try:
            self._storage.persist(self._receipts)
        except PersistWriteFailed as e:
            # The in-memory change stands; the next successful write catches up
            self._audit.log_persist_failed(
                receipt_count=len(self._receipts),
                error_message=str(e),
            )

    def _delete_blobs(self, keys: Iterable[str]) -> list[str]:
        deleted = []
        for key in keys:
            try:
                if self._attachments.delete(key):
                    deleted.append(key)
            except (StorageError, ValueError) as e:
                logger.warning("blob_delete_failed", key=key, error=str(e))
        return deleted

    def _snapshot(self, reason: ChangeReason) -> ChangeNotification:
        return ChangeNotification(
            version=self._version,
            reason=reason,
            receipts=tuple(self._receipts),
        )

    def _publish(self, reason: ChangeReason) -> tuple[Receipt, ...]:
        self._version += 1
        notification = self._snapshot(reason)
        for callback in list(self._subscribers):
            self._deliver(callback, notification)
        return notification.receipts

    @staticmethod
    def _deliver(callback: Subscriber, notification: ChangeNotification) -> None:
        try:
            callback(notification)
        except Exception:
            logger.exception(
                "subscriber_failed",
                version=notification.version,
                reason=notification.reason,
            )
