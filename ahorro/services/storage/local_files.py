"""
Local File System Storage Implementation

DESIGN DECISION: Everything lives under one data directory:

    <data_dir>/receipts.json          the collection, one JSON array
    <data_dir>/Attachments/<key>      source documents
    <data_dir>/Thumbnails/<key>       generated previews

TRADEOFFS:
- The collection is rewritten in full on every mutation. Fine for a
  personal collection; no partial-update format to get wrong.
- Writes go to a temporary file in the same directory and are moved into
  place with os.replace, so a crash never leaves a half-written file.
- Decimals are serialized as exact decimal strings, never floats.

Both implementations follow the abstract interfaces, so the repository
and pipeline do not know they are talking to a disk.
"""

import os
import tempfile
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from typing import Optional

import structlog
from pydantic import TypeAdapter, ValidationError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ahorro.config import StorageSettings, get_settings
from ahorro.models.receipt import Receipt
from ahorro.services.storage.interface import (
    AttachmentPersistError,
    AttachmentStoreInterface,
    NotFoundError,
    PersistWriteFailed,
    ReceiptCollectionStorageInterface,
    StorageCorrupt,
    StorageError,
)


logger = structlog.get_logger(__name__)

_COLLECTION_ADAPTER = TypeAdapter(list[Receipt])


def _write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a temporary sibling and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        # Leave no temporary file behind, then let the caller see the error
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class JsonReceiptStorage(ReceiptCollectionStorageInterface):
    """
    Receipt collection stored as a JSON array in a single file.

    Transient OSErrors during a rewrite are retried; after the last
    attempt the failure surfaces as PersistWriteFailed.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        settings: Optional[StorageSettings] = None,
    ):
        self._settings = settings or get_settings().storage
        self._path = Path(path) if path is not None else self._settings.collection_path

    @property
    def path(self) -> Path:
        return self._path

    @property
    def location(self) -> str:
        return str(self._path)

    def load(self) -> list[Receipt]:
        """Read the collection; a missing file is an empty collection."""
        if not self._path.exists():
            logger.info("collection_missing", path=str(self._path))
            return []

        try:
            raw = self._path.read_bytes()
        except OSError as e:
            raise StorageCorrupt(f"Cannot read {self._path}: {e}") from e

        try:
            return _COLLECTION_ADAPTER.validate_json(raw)
        except ValidationError as e:
            raise StorageCorrupt(
                f"Collection file {self._path} is not a valid receipt list: "
                f"{e.error_count()} error(s)"
            ) from e

    def persist(self, receipts: Sequence[Receipt]) -> None:
        """Atomically replace the collection file."""
        payload = _COLLECTION_ADAPTER.dump_json(list(receipts), indent=2)

        retryer = Retrying(
            stop=stop_after_attempt(self._settings.persist_attempts),
            wait=wait_fixed(self._settings.persist_retry_wait_seconds),
            retry=retry_if_exception_type(OSError),
            reraise=True,
        )
        try:
            retryer(_write_atomic, self._path, payload)
        except OSError as e:
            raise PersistWriteFailed(f"Failed to write {self._path}: {e}") from e


class LocalAttachmentStore(AttachmentStoreInterface):
    """
    Blob store backed by a directory tree.

    Keys are relative paths; anything that would escape the root
    directory is rejected.
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        settings: Optional[StorageSettings] = None,
    ):
        settings = settings or get_settings().storage
        self._root = Path(root) if root is not None else settings.data_dir

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if not key or relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid blob key: {key!r}")
        return self._root.joinpath(*relative.parts)

    def put(self, key: str, data: bytes) -> None:
        path = self._resolve(key)
        try:
            _write_atomic(path, data)
        except OSError as e:
            raise AttachmentPersistError(f"Failed to store blob {key}: {e}") from e

    def get(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(f"Blob not found: {key}") from e
        except OSError as e:
            raise StorageError(f"Failed to read blob {key}: {e}") from e

    def delete(self, key: str) -> bool:
        path = self._resolve(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete blob {key}: {e}") from e

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def list_keys(self, prefix: str) -> list[str]:
        base = self._resolve(prefix)
        if not base.is_dir():
            return []
        return sorted(
            path.relative_to(self._root).as_posix()
            for path in base.rglob("*")
            if path.is_file() and not path.name.startswith(".")
        )
