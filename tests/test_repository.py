"""
Tests for the receipt repository.

Uses the in-memory fakes from conftest.py, plus one round trip through
the real JSON storage.
"""

import threading
from decimal import Decimal
from uuid import uuid4

import pytest

from ahorro.models.receipt import Attachment, ReceiptCategory
from ahorro.repository import ReceiptRepository
from ahorro.services.storage import (
    JsonReceiptStorage,
    LocalAttachmentStore,
    StorageCorrupt,
)

from conftest import InMemoryAttachmentStore, InMemoryCollectionStorage


class TestRepositoryMutations:
    """Tests for add / update / delete."""

    def test_add_appends_and_persists(self, repository, collection_storage, make_receipt):
        """Test receipts are kept in insertion order and written through."""
        first, second = make_receipt(title="1"), make_receipt(title="2")

        repository.add(first)
        repository.add(second)

        assert repository.list() == (first, second)
        assert collection_storage.stored == [first, second]

    def test_update_replaces_by_id_and_stamps(self, repository, make_receipt):
        """Test update matches by id and refreshes updated_at."""
        receipt = make_receipt()
        repository.add(receipt)

        assert repository.update(receipt.model_copy(update={"title": "Editada"})) is True

        stored = repository.get(receipt.id)
        assert stored.title == "Editada"
        assert stored.updated_at >= receipt.updated_at
        assert len(repository.list()) == 1

    def test_update_unknown_is_a_no_op(self, repository, collection_storage, make_receipt):
        """Test updating an absent receipt changes nothing."""
        repository.add(make_receipt())
        calls = collection_storage.persist_calls

        assert repository.update(make_receipt()) is False
        assert collection_storage.persist_calls == calls

    def test_delete_removes_receipt_and_blobs(self, repository, attachment_store, make_receipt):
        """Test deleting a receipt deletes its document and thumbnail."""
        attachment = Attachment(
            relative_path="Attachments/x.jpg",
            thumbnail_relative_path="Thumbnails/x.jpg",
            mime_type="image/jpeg",
        )
        attachment_store.put("Attachments/x.jpg", b"doc")
        attachment_store.put("Thumbnails/x.jpg", b"thumb")
        receipt = make_receipt(attachment=attachment)
        repository.add(receipt)

        assert repository.delete(receipt) is True

        assert repository.list() == ()
        assert attachment_store.blobs == {}

    def test_delete_unknown_is_a_no_op(self, repository, make_receipt):
        """Test deleting an absent receipt returns False."""
        assert repository.delete(make_receipt()) is False

    def test_delete_survives_missing_blobs(self, repository, make_receipt):
        """Test a receipt whose blobs are already gone can still be deleted."""
        receipt = make_receipt()
        repository.add(receipt)
        assert repository.delete(receipt) is True
        assert repository.get(receipt.id) is None

    def test_persist_failure_keeps_memory_state(self, repository, collection_storage, make_receipt):
        """Test a failed rewrite neither rolls back nor raises."""
        collection_storage.fail_persist = True
        seen = []
        repository.subscribe(seen.append)

        receipt = make_receipt()
        repository.add(receipt)

        assert repository.list() == (receipt,)
        assert collection_storage.stored == []
        assert seen[-1].reason == "added"

    def test_by_category(self, repository, make_receipt):
        """Test the category read."""
        groceries = make_receipt(category=ReceiptCategory.GROCERIES)
        dining = make_receipt(category=ReceiptCategory.DINING)
        repository.add(groceries)
        repository.add(dining)

        assert repository.by_category(ReceiptCategory.DINING) == [dining]


class TestRepositoryNotifications:
    """Tests for the change notification channel."""

    def test_subscribe_delivers_current_snapshot(self, repository, make_receipt):
        """Test late subscribers start consistent."""
        receipt = make_receipt()
        repository.add(receipt)
        seen = []

        repository.subscribe(seen.append)

        assert len(seen) == 1
        assert seen[0].receipts == (receipt,)

    def test_every_mutation_publishes_full_snapshot(self, repository, make_receipt):
        """Test notification reasons, snapshots and increasing versions."""
        seen = []
        repository.subscribe(seen.append)
        receipt = make_receipt()

        repository.add(receipt)
        repository.update(receipt.model_copy(update={"title": "B"}))
        repository.delete(receipt)

        assert [n.reason for n in seen[1:]] == ["added", "updated", "deleted"]
        assert [len(n.receipts) for n in seen[1:]] == [1, 1, 0]
        versions = [n.version for n in seen]
        assert versions == sorted(set(versions))

    def test_unsubscribe_stops_delivery(self, repository, make_receipt):
        """Test the returned function removes the subscriber."""
        seen = []
        unsubscribe = repository.subscribe(seen.append)
        unsubscribe()

        repository.add(make_receipt())

        assert len(seen) == 1

    def test_failing_subscriber_does_not_break_others(self, repository, make_receipt):
        """Test one broken consumer cannot block the rest."""
        def broken(_notification):
            raise RuntimeError("boom")

        seen = []
        repository.subscribe(broken)
        repository.subscribe(seen.append)

        repository.add(make_receipt())

        assert seen[-1].reason == "added"

    def test_snapshots_are_immutable(self, repository, make_receipt):
        """Test a snapshot cannot be used to change the collection."""
        repository.add(make_receipt())
        snapshot = repository.receipts
        assert isinstance(snapshot, tuple)
        with pytest.raises(AttributeError):
            snapshot.append(make_receipt())

    def test_concurrent_adds_are_serialised(self, repository, make_receipt):
        """Test adds from several threads lose nothing and stay ordered."""
        seen = []
        repository.subscribe(seen.append)
        receipts = [make_receipt(title=str(i)) for i in range(40)]

        threads = [
            threading.Thread(target=repository.add, args=(receipt,))
            for receipt in receipts
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(repository.list()) == 40
        assert [len(n.receipts) for n in seen] == list(range(41))


class TestRepositoryLoading:
    """Tests for load and recovery."""

    def test_load_publishes_loaded(self, make_receipt, attachment_store):
        """Test loading replaces the collection and notifies."""
        receipt = make_receipt()
        repository = ReceiptRepository(
            InMemoryCollectionStorage([receipt]), attachment_store
        )
        seen = []
        repository.subscribe(seen.append)

        assert repository.load() == (receipt,)
        assert seen[-1].reason == "loaded"
        assert seen[-1].receipts == (receipt,)

    def test_corrupt_load_raises_and_keeps_memory(self, attachment_store):
        """Test the caller sees the corruption."""
        repository = ReceiptRepository(
            InMemoryCollectionStorage(corrupt=True), attachment_store
        )
        with pytest.raises(StorageCorrupt):
            repository.load()
        assert repository.list() == ()

    def test_load_or_start_empty_recovers(self, attachment_store):
        """Test the standard recovery starts with an empty collection."""
        repository = ReceiptRepository(
            InMemoryCollectionStorage(corrupt=True), attachment_store
        )
        assert repository.load_or_start_empty() == ()

    def test_round_trip_through_json_storage(self, tmp_path, storage_settings, make_receipt):
        """Test a fresh repository sees what a previous one wrote."""
        receipts = [make_receipt(amount=Decimal("0.10")), make_receipt(amount=Decimal("0.20"))]
        writer = ReceiptRepository(
            JsonReceiptStorage(settings=storage_settings),
            LocalAttachmentStore(root=tmp_path),
        )
        for receipt in receipts:
            writer.add(receipt)

        reader = ReceiptRepository(
            JsonReceiptStorage(settings=storage_settings),
            LocalAttachmentStore(root=tmp_path),
        )
        assert reader.load() == tuple(receipts)


class TestReconcileAttachments:
    """Tests for the orphaned blob sweep."""

    def test_deletes_only_unreferenced_blobs(self, repository, attachment_store, make_receipt):
        """Test referenced blobs survive the sweep."""
        kept = Attachment(
            relative_path="Attachments/kept.jpg",
            thumbnail_relative_path="Thumbnails/kept.jpg",
            mime_type="image/jpeg",
        )
        for key in ("Attachments/kept.jpg", "Thumbnails/kept.jpg",
                    "Attachments/orphan.jpg", "Thumbnails/orphan.jpg"):
            attachment_store.put(key, b"x")
        repository.add(make_receipt(attachment=kept))

        deleted = repository.reconcile_attachments(["Attachments", "Thumbnails"])

        assert deleted == ["Attachments/orphan.jpg", "Thumbnails/orphan.jpg"]
        assert sorted(attachment_store.blobs) == ["Attachments/kept.jpg", "Thumbnails/kept.jpg"]

    def test_nothing_to_sweep(self, repository):
        """Test an empty store."""
        assert repository.reconcile_attachments(["Attachments"]) == []


def test_get_unknown_id(repository):
    """Test get() on an id that was never added."""
    assert repository.get(uuid4()) is None
