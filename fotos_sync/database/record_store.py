"""JSON-file record store for fotos-sync."""

import json
import logging
import os
import shutil
import tempfile
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from fotos_sync.config import AppConfig
from fotos_sync.database.models import (
    Collection,
    OperationKind,
    PendingOperation,
    UserSession,
)
from fotos_sync.models import StoreError

logger = logging.getLogger(__name__)

LIST_COLLECTIONS = (Collection.ALBUMS, Collection.PHOTOS, Collection.SYNC_QUEUE)


class RecordStore:
    """Owns the JSON files in the data directory.

    Each collection has its own lock; every read-modify-write span
    (``update``, ``append``, ``enqueue``) holds it for the whole span, so
    writers inside this process never interleave.
    """

    def __init__(self, config: AppConfig):
        """Initialize the record store.

        Args:
            config: Application settings providing the data directory
        """
        self.config = config
        self._locks = {collection: threading.RLock() for collection in Collection}

    def _path(self, collection: Collection) -> str:
        return self.config.collection_path(collection)

    def _default_content(self, collection: Collection) -> str:
        return "{}" if collection == Collection.USER else "[]"

    def _ensure_dir(self, path: str) -> None:
        if os.path.exists(path) and not os.path.isdir(path):
            logger.info("Removing non-directory at %s", path)
            os.remove(path)
        os.makedirs(path, exist_ok=True)

    def _ensure_file(self, collection: Collection) -> None:
        path = self._path(collection)
        if os.path.isfile(path):
            return
        if os.path.isdir(path):
            logger.info("Removing invalid file structure at %s", path)
            shutil.rmtree(path)
        else:
            logger.info("Creating initial file at %s", path)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self._default_content(collection))

    def ensure_structure(self) -> None:
        """Create the data directory and every backing file if missing.

        Raises:
            StoreError: If the structure cannot be created
        """
        try:
            self._ensure_dir(self.config.data_dir)
            self._ensure_dir(self.config.image_dir)
            for collection in Collection:
                with self._locks[collection]:
                    self._ensure_file(collection)
        except OSError as e:
            logger.error("Failed to ensure app file structure: %s", e)
            raise StoreError(f"Failed to ensure app file structure: {e}") from e

    def _read(self, collection: Collection) -> Any:
        path = self._path(collection)
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreError(f"Failed to read {collection.value}: {e}") from e

        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt JSON in {collection.value}: {e}") from e

    def _write(self, collection: Collection, data: Any) -> None:
        path = self._path(collection)
        directory = os.path.dirname(path)
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreError(f"Failed to write {collection.value}: {e}") from e

    def read_all(self, collection: Collection) -> List[Dict[str, Any]]:
        """Read every record of a list collection.

        Args:
            collection: Collection to read

        Returns:
            List of raw records, empty if the file is missing or blank

        Raises:
            StoreError: If the file is unreadable or holds corrupt JSON
        """
        with self._locks[collection]:
            data = self._read(collection)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("%s does not hold a list, treating as empty", collection.value)
            return []
        return data

    def write_all(self, collection: Collection, records: List[Dict[str, Any]]) -> None:
        """Overwrite a list collection with the given records."""
        with self._locks[collection]:
            self._write(collection, list(records))
        logger.debug("Saved %d records to %s", len(records), collection.value)

    def update(
        self,
        collection: Collection,
        mutator: Callable[[List[Dict[str, Any]]], Any],
    ) -> Any:
        """Run a read-modify-write cycle on a collection under its lock.

        The mutator receives the current record list and changes it in place;
        the list is written back afterwards, and the mutator's return value is
        passed through.
        """
        with self._locks[collection]:
            records = self.read_all(collection)
            result = mutator(records)
            self._write(collection, records)
            return result

    def append(self, collection: Collection, entry: Dict[str, Any]) -> None:
        """Append one record to a collection."""
        self.update(collection, lambda records: records.append(entry))

    def enqueue(self, kind: OperationKind, payload: Dict[str, Any]) -> PendingOperation:
        """Append a pending operation to the sync queue.

        Args:
            kind: Operation kind
            payload: Data needed to replay the operation

        Returns:
            The queued operation with its assigned id
        """

        def _append(records: List[Dict[str, Any]]) -> PendingOperation:
            existing = [op for _, op in self._parse_queue(records) if op is not None]
            next_id = max((op.id for op in existing), default=0) + 1
            operation = PendingOperation(
                id=next_id,
                kind=kind,
                payload=payload,
                enqueued_at=datetime.now(timezone.utc).isoformat(),
            )
            records.append(operation.to_dict())
            return operation

        operation = self.update(Collection.SYNC_QUEUE, _append)
        logger.info("Queued %s operation %d", kind.value, operation.id)
        return operation

    def _parse_queue(self, records: List[Any]) -> List[Tuple[Any, Optional[PendingOperation]]]:
        """Pair each raw queue entry with its parsed operation.

        Entries with a missing or unknown action pair with None and are
        left in the file untouched.
        """
        parsed = []
        for position, record in enumerate(records):
            try:
                operation = PendingOperation.from_dict(record, position)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping unreadable sync queue entry %d: %s", position, e)
                operation = None
            parsed.append((record, operation))
        return parsed

    def load_queue(self) -> List[PendingOperation]:
        """Load the pending operations in FIFO order, skipping unknown entries."""
        records = self.read_all(Collection.SYNC_QUEUE)
        return [op for _, op in self._parse_queue(records) if op is not None]

    def remove_operations(self, operation_ids: Iterable[int]) -> int:
        """Remove the given operations from the queue.

        Entries appended after the ids were collected are kept.

        Returns:
            Number of entries removed
        """
        ids = set(operation_ids)

        def _remove(records: List[Dict[str, Any]]) -> int:
            kept = []
            removed = 0
            for record, op in self._parse_queue(records):
                if op is None:
                    kept.append(record)
                elif op.id in ids:
                    removed += 1
                else:
                    # Explicit ids keep later positions stable.
                    kept.append(op.to_dict())
            records[:] = kept
            return removed

        return self.update(Collection.SYNC_QUEUE, _remove)

    def load_user(self) -> Optional[UserSession]:
        """Load the session record, or None when nobody is logged in."""
        with self._locks[Collection.USER]:
            data = self._read(Collection.USER)
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return UserSession.from_dict(data)

    def save_user(self, session: UserSession) -> None:
        """Overwrite the session record."""
        with self._locks[Collection.USER]:
            self._write(Collection.USER, session.to_dict())

    def delete_user(self) -> None:
        """Delete the session record file."""
        path = self._path(Collection.USER)
        with self._locks[Collection.USER]:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StoreError(f"Failed to delete user file: {e}") from e
