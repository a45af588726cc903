"""Turns files arriving in the FTP root into photo records."""

import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from fotos_sync.config import AppConfig
from fotos_sync.database.models import Collection, OperationKind, Photo
from fotos_sync.database.record_store import RecordStore
from fotos_sync.ftp.session import FtpSession
from fotos_sync.models import ImageStreamEvent, StreamAction
from fotos_sync.sync.engine import SyncEngine
from fotos_sync.utils.file_utils import (
    get_image_dimensions,
    is_image,
    to_file_uri,
    wait_for_stable_size,
)
from fotos_sync.utils.timers import DeadlineTimers, ExpiringSet

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class IngestionPipeline:
    """Per-file state machine for ingestion.

    A file moves through pending, stabilizing, classifying, committing and
    synced/queued before the UI gets its ``add`` event. Paths are deduplicated
    for ``dedup_retention`` seconds, and the ``pending`` placeholder is
    forgotten after ``pending_timeout`` seconds if the file never resolves.
    """

    def __init__(
        self,
        config: AppConfig,
        store: RecordStore,
        sync_engine: SyncEngine,
        emit: Callable[[ImageStreamEvent], None],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        pending_timers: Optional[DeadlineTimers] = None,
    ):
        self.config = config
        self.store = store
        self.sync_engine = sync_engine
        self.emit = emit
        self._clock = clock
        self._sleep = sleep
        self.processed = ExpiringSet(config.dedup_retention, clock=clock)
        self.pending = pending_timers or DeadlineTimers()

    def forget(self, file_path: str) -> None:
        """Allow a path to be ingested again, e.g. after its photo was deleted."""
        self.processed.discard(os.path.abspath(file_path))
        logger.info("Removed file from processed files tracking: %s", file_path)

    def reset(self) -> None:
        self.processed.clear()
        self.pending.cancel_all()

    def _expire_pending(self, file_path: str) -> None:
        logger.warning("Pending placeholder expired for %s", file_path)
        self.emit(ImageStreamEvent(StreamAction.ERROR, file_path=file_path,
                                   error=f"Timed out waiting for {os.path.basename(file_path)}"))

    def handle_file(self, file_path: str, session: FtpSession) -> Optional[Photo]:
        """Ingest one file that appeared in the session's directory.

        Args:
            file_path: Path reported by the watcher
            session: Active FTP session the file arrived through

        Returns:
            The committed photo, or None if the file was skipped or rejected
        """
        file_path = os.path.abspath(file_path)
        file_name = os.path.basename(file_path)
        logger.info("Detected new file %s for album %s", file_path, session.album_name)

        if not self.processed.add(file_path):
            logger.info("File already processed: %s", file_path)
            return None

        self.emit(ImageStreamEvent(StreamAction.PENDING, file_path=file_path))
        self.pending.schedule(file_path, self.config.pending_timeout, self._expire_pending)
        try:
            if not wait_for_stable_size(
                file_path,
                window=self.config.stability_window,
                poll_interval=self.config.stability_poll_interval,
                sleep=self._sleep,
                clock=self._clock,
            ):
                logger.info("File disappeared while being written, skipping: %s", file_path)
                return None

            if not is_image(file_path):
                logger.error("File is not a recognized image: %s", file_path)
                self.emit(ImageStreamEvent(StreamAction.ERROR, file_path=file_path,
                                           error=f"Not an image: {file_name}"))
                return None

            if not os.path.exists(file_path):
                logger.info("File no longer exists, skipping: %s", file_path)
                return None

            try:
                photo = self._commit(file_path, session)
            except Exception:
                logger.exception("Storage insertion error for %s", file_path)
                self.emit(ImageStreamEvent(StreamAction.ERROR, file_path=file_path,
                                           error=f"Failed to store photo: {file_name}"))
                return None

            self.emit(
                ImageStreamEvent(
                    StreamAction.ADD,
                    file_path=file_path,
                    image_url=photo.local_image_uri,
                    album_name=session.album_name,
                )
            )
            return photo
        finally:
            self.pending.cancel(file_path)

    def _commit(self, file_path: str, session: FtpSession) -> Photo:
        user = self.store.load_user()
        album_id = None
        for record in self.store.read_all(Collection.ALBUMS):
            if record.get("name") == session.album_name:
                album_id = record.get("id")
                break

        width, height = get_image_dimensions(file_path)
        photo = Photo(
            id=str(uuid.uuid4()),
            album_id=album_id,
            album_name=session.album_name,
            owner_id=user.id if user else None,
            local_image_uri=to_file_uri(file_path),
            created_at=utc_timestamp(),
            source_directory=session.directory,
            width=width,
            height=height,
        )
        self.store.append(Collection.PHOTOS, photo.to_dict())
        logger.info("Photo %s inserted for album %s (%s)", photo.id, photo.album_name, album_id)

        if session.cloud_sync_enabled:
            try:
                self._sync_or_queue(photo, file_path)
            except Exception:
                # A photo that is neither synced nor queued is not kept.
                self._discard(photo.id)
                raise
        return photo

    def _discard(self, photo_id: str) -> None:
        def _remove(records):
            records[:] = [r for r in records if r.get("id") != photo_id]

        self.store.update(Collection.PHOTOS, _remove)
        logger.info("Removed uncommitted photo %s", photo_id)

    def _sync_or_queue(self, photo: Photo, file_path: str) -> None:
        if self.sync_engine.is_online():
            synced = self.sync_engine.sync_photos_to_cloud(
                photo.album_name, photo.album_id, photo_id=photo.id
            )
            if synced:
                photo.cloud_image_url = synced[0].cloud_image_url
                return
            logger.warning("Immediate upload of %s failed, queueing it", photo.id)

        self.store.enqueue(
            OperationKind.SYNC_PHOTO,
            {
                "photoId": photo.id,
                "albumId": photo.album_id,
                "albumName": photo.album_name,
                "filePath": file_path,
                "userId": photo.owner_id,
                "createdAt": photo.created_at,
            },
        )
        logger.info("Photo %s added to sync queue", photo.id)
