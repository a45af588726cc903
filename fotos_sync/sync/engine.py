"""Cloud synchronization: pending-queue drain and photo uploads."""

import base64
import logging
import re
import threading
from typing import Any, Callable, Dict, List, Optional

from fotos_sync.cloud.api_client import ApiClient
from fotos_sync.cloud.object_store import ObjectStore
from fotos_sync.database.models import (
    Album,
    Collection,
    OperationKind,
    PendingOperation,
    Photo,
    UserSession,
)
from fotos_sync.database.record_store import RecordStore
from fotos_sync.models import (
    CloudSyncError,
    FotosSyncError,
    ImageStreamEvent,
    Result,
    StreamAction,
    ValidationError,
)
from fotos_sync.utils.file_utils import from_file_uri
from fotos_sync.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = "Offline, sync queued"
BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/=]+$")
DATA_URI_PATTERN = re.compile(r"^data:image/[\w.+-]+;base64,")


def strip_data_uri(data: str) -> str:
    """Remove a ``data:image/...;base64,`` prefix if present."""
    return DATA_URI_PATTERN.sub("", data, count=1)


class SyncEngine:
    """Reconciles local records with the metadata API and object store."""

    def __init__(
        self,
        store: RecordStore,
        api: ApiClient,
        object_store: ObjectStore,
        is_online: Callable[[], bool],
        emit: Optional[Callable[[ImageStreamEvent], None]] = None,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.store = store
        self.api = api
        self.object_store = object_store
        self.is_online = is_online
        self.emit = emit or (lambda event: None)
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._drain_lock = threading.Lock()
        self._handlers: Dict[OperationKind, Callable[[Dict[str, Any]], None]] = {
            OperationKind.CREATE_ALBUM: self._replay_create_album,
            OperationKind.UPDATE_ALBUM: self._replay_update_album,
            OperationKind.DELETE_ALBUM: self._replay_delete_album,
            OperationKind.SYNC_PHOTO: self._replay_sync_photo,
            OperationKind.DELETE_PHOTO: self._replay_delete_photo,
            OperationKind.REGISTER_USER: self._replay_register,
            OperationKind.RESET_PASSWORD: self._replay_reset_password,
        }

    def _retry(self, fn: Callable[[], Any]) -> Any:
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        return retry_with_backoff(
            fn,
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            **kwargs,
        )

    # Queue drain

    def sync_albums(self) -> Result:
        """Replay the pending-operations queue in FIFO order.

        Every entry is attempted even when an earlier one fails. Entries that
        replayed successfully are removed afterwards; failed entries stay
        queued for the next drain, and entries appended during the drain are
        left untouched.
        """
        if not self.is_online():
            logger.info("Offline, leaving sync queue untouched")
            return Result.fail(message=OFFLINE_MESSAGE)

        if not self._drain_lock.acquire(blocking=False):
            return Result.fail(message="Sync already in progress")
        try:
            try:
                queue = self.store.load_queue()
            except FotosSyncError as e:
                logger.error("Error during cloud sync: %s", e)
                return Result.fail(error=str(e))

            if not queue:
                logger.info("Sync queue is empty.")
                return Result.ok(message="Nothing to sync")

            logger.info("Syncing %d entries to cloud...", len(queue))
            replayed: List[int] = []
            failed: List[int] = []
            for operation in queue:
                try:
                    self.replay(operation)
                    replayed.append(operation.id)
                except Exception as e:
                    logger.warning(
                        "Failed to sync %s entry %d: %s", operation.kind.value, operation.id, e
                    )
                    failed.append(operation.id)

            try:
                self.store.remove_operations(replayed)
            except FotosSyncError as e:
                logger.error("Error clearing synced entries: %s", e)
                return Result.fail(error=str(e))

            logger.info("Sync completed: %d synced, %d kept for retry", len(replayed), len(failed))
            return Result.ok(
                message="Synced successfully" if not failed else "Synced with failures",
                data={"synced": replayed, "failed": failed},
            )
        finally:
            self._drain_lock.release()

    def replay(self, operation: PendingOperation) -> None:
        """Replay one queued operation against the backend."""
        logger.info("Syncing %s entry %d", operation.kind.value, operation.id)
        self._handlers[operation.kind](operation.payload)

    def _upload_cover(self, image_path: Optional[str]) -> Optional[str]:
        if not image_path:
            return None
        return self._retry(lambda: self.object_store.upload(image_path))

    def _set_album_cover_url(self, album_id: str, url: Optional[str]) -> None:
        if not url:
            return

        def _mutate(records: List[Dict[str, Any]]) -> None:
            for index, record in enumerate(records):
                if record.get("id") == album_id:
                    album = Album.from_dict(record)
                    album.cloud_cover_image_url = url
                    records[index] = album.to_dict()

        self.store.update(Collection.ALBUMS, _mutate)

    def _replay_create_album(self, payload: Dict[str, Any]) -> None:
        album = dict(payload.get("album") or {})
        if not album.get("id"):
            raise ValidationError("create entry has no album")
        cover_url = self._upload_cover(album.get("imagePath"))
        body = dict(album, coverImageUrl=cover_url, localImagePath=album.get("imagePath"))
        self._retry(lambda: self.api.create_album(body))
        self._set_album_cover_url(album["id"], cover_url)

    def _replay_update_album(self, payload: Dict[str, Any]) -> None:
        album_id = payload.get("id")
        if not album_id:
            raise ValidationError("update entry has no album id")
        cover_url = self._upload_cover(payload.get("imagePath"))
        fields = {
            "name": payload.get("name"),
            "date": payload.get("date"),
            "userId": payload.get("userId"),
            "coverImageUrl": cover_url,
            "localImagePath": payload.get("imagePath"),
        }
        self._retry(lambda: self.api.update_album(album_id, fields))
        self._set_album_cover_url(album_id, cover_url)

    def _replay_delete_album(self, payload: Dict[str, Any]) -> None:
        album_id = payload.get("id")
        if not album_id:
            raise ValidationError("delete entry has no album id")
        self._retry(lambda: self.api.delete_album(album_id))

    def _replay_delete_photo(self, payload: Dict[str, Any]) -> None:
        photo_id = payload.get("photoId")
        if not photo_id:
            raise ValidationError("delete_photo entry has no photo id")
        self._retry(lambda: self.api.delete_photo(photo_id))

    def _replay_sync_photo(self, payload: Dict[str, Any]) -> None:
        photo_id = payload.get("photoId")
        if not photo_id:
            raise ValidationError("sync_photo entry has no photo id")
        self.sync_photos_to_cloud(
            payload.get("albumName", ""), payload.get("albumId"), photo_id=photo_id
        )

        # A photo deleted locally since it was queued has nothing left to sync.
        record = self._find_photo(photo_id)
        if record is not None and not self.object_store.is_cloud_url(record.cloud_image_url):
            raise CloudSyncError(f"Photo {photo_id} is still not uploaded")

    def _replay_register(self, payload: Dict[str, Any]) -> None:
        user = payload.get("userData")
        if not user:
            raise ValidationError("register entry has no user data")
        response = self._retry(lambda: self.api.register(user))
        if isinstance(response, dict) and response.get("user") and response.get("token"):
            self.store.save_user(UserSession.from_dict(dict(response["user"], token=response["token"])))

    def _replay_reset_password(self, payload: Dict[str, Any]) -> None:
        self._retry(
            lambda: self.api.forgot_password(
                payload.get("email", ""), payload.get("otp", ""), payload.get("newPassword", "")
            )
        )

    # Photo sync

    def _find_photo(self, photo_id: str) -> Optional[Photo]:
        for record in self.store.read_all(Collection.PHOTOS):
            if record.get("id") == photo_id:
                return Photo.from_dict(record)
        return None

    def _set_photo_cloud_url(self, photo_id: str, url: str) -> None:
        def _mutate(records: List[Dict[str, Any]]) -> None:
            for record in records:
                if record.get("id") == photo_id:
                    record["fileUrl"] = url

        self.store.update(Collection.PHOTOS, _mutate)

    def sync_photos_to_cloud(
        self,
        album_name: str,
        album_id: Optional[str] = None,
        photo_id: Optional[str] = None,
    ) -> List[Photo]:
        """Upload an album's local-only photos and register them with the API.

        Each photo is persisted with its cloud URL as soon as it is uploaded.
        A failing photo is logged and skipped; the rest are still attempted.

        Args:
            album_name: Album whose photos are synced
            album_id: Album id sent to the API
            photo_id: Restrict the sync to this photo

        Returns:
            Photos that now carry a cloud URL

        Raises:
            StoreError: If the photo collection cannot be read
        """
        candidates = [
            Photo.from_dict(record)
            for record in self.store.read_all(Collection.PHOTOS)
            if record.get("albumName") == album_name
            and not self.object_store.is_cloud_url(record.get("fileUrl"))
        ]
        if photo_id:
            candidates = [photo for photo in candidates if photo.id == photo_id]
            if not candidates:
                logger.info("No matching photo found for sync: %s in %s", photo_id, album_name)
                return []

        logger.info("Local photos fetched for sync: %s (%d)", album_name, len(candidates))

        synced: List[Photo] = []
        for photo in candidates:
            try:
                synced.append(self._sync_photo(photo, album_name, album_id))
            except (OSError, FotosSyncError) as e:
                logger.error("Failed to sync photo %s: %s", photo.id, e)

        logger.info(
            "Photo sync completed for %s: %d of %d", album_name, len(synced), len(candidates)
        )
        return synced

    def _sync_photo(self, photo: Photo, album_name: str, album_id: Optional[str]) -> Photo:
        file_path = from_file_uri(photo.local_image_uri)
        with open(file_path, "rb") as f:
            encoded = base64.b64encode(f.read()).decode("ascii")

        public_id = self.object_store.new_public_id()
        url = self._retry(lambda: self.object_store.upload_base64(encoded, public_id))
        self._retry(
            lambda: self.api.register_photo(
                {
                    "albumId": album_id or photo.album_id,
                    "imageUrl": url,
                    "originalImageUrl": photo.local_image_uri,
                    "albumName": album_name,
                    "photoId": photo.id,
                }
            )
        )

        self._set_photo_cloud_url(photo.id, url)
        photo.cloud_image_url = url
        logger.info("Updated photo %s with cloud URL %s", photo.id, url)
        self.emit(ImageStreamEvent(StreamAction.UPLOAD, file_path=file_path, image_url=url))
        return photo

    def upload_image(self, base64_image: str, album_id: str) -> Result:
        """Upload a single base64 image straight to the cloud for an album."""
        if not base64_image or not album_id:
            logger.error("Missing image data or album id")
            return Result.fail(error="Invalid image data or album ID")

        data = strip_data_uri(base64_image)
        if not BASE64_PATTERN.match(data):
            logger.error("Invalid base64 data")
            return Result.fail(error="Invalid base64 image data")

        try:
            url = self._retry(lambda: self.object_store.upload_base64(data))
            self.emit(ImageStreamEvent(StreamAction.UPLOAD, image_url=url))
            self._retry(lambda: self.api.register_photo({"albumId": album_id, "imageUrl": url}))
        except FotosSyncError as e:
            logger.error("Image upload error: %s", e)
            return Result.fail(error=str(e))

        logger.info("Photo saved to database: %s", url)
        return Result.ok(data={"url": url})
