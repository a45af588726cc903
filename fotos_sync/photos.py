"""Photo queries and deletion."""

import logging
import os
from typing import Any, Callable, Dict, Iterable, List, Optional

from fotos_sync.cloud.api_client import ApiClient
from fotos_sync.database.models import Collection, OperationKind, Photo
from fotos_sync.database.record_store import RecordStore
from fotos_sync.models import FotosSyncError, Result, ValidationError
from fotos_sync.sync.engine import SyncEngine
from fotos_sync.utils.file_utils import from_file_uri

logger = logging.getLogger(__name__)


class PhotoService:
    """Lists an album's photos and removes photo records."""

    def __init__(
        self,
        store: RecordStore,
        api: ApiClient,
        sync_engine: SyncEngine,
        on_photo_removed: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.api = api
        self.sync_engine = sync_engine
        self.on_photo_removed = on_photo_removed or (lambda path: None)

    def _album_id_for(self, album_name: str) -> Optional[str]:
        for record in self.store.read_all(Collection.ALBUMS):
            if record.get("name") == album_name:
                return record.get("id")
        return None

    def _normalize_cloud_photo(self, raw: Dict[str, Any], album_id: str, album_name: str) -> Photo:
        original = raw.get("originalImageUrl")
        return Photo(
            id=raw["id"],
            album_id=raw.get("albumId") or album_id,
            album_name=raw.get("albumName") or album_name,
            owner_id=raw.get("userId"),
            local_image_uri=original or raw.get("imageUrl", ""),
            created_at=raw.get("createdAt", ""),
            source_directory=os.path.dirname(from_file_uri(original)) if original else "",
            cloud_image_url=raw.get("imageUrl"),
        )

    def fetch_photos(self, album_name: str, cloud_sync: bool = False) -> List[Photo]:
        """List the photos of an album.

        With ``cloud_sync`` the album's local photos are first replaced by the
        backend's copy.

        Raises:
            ValidationError: If cloud sync is requested for an unknown album
            FotosSyncError: If the store or API fails
        """
        logger.info("Fetching photos for album %s", album_name)
        album_id = self._album_id_for(album_name)

        if cloud_sync:
            if not album_id:
                raise ValidationError(f"No album found for albumName: {album_name}")
            logger.info("Syncing photos from cloud for %s (%s)", album_name, album_id)
            cloud_photos = [
                self._normalize_cloud_photo(raw, album_id, album_name)
                for raw in self.api.list_cloud_photos(album_id)
            ]

            def _replace(records: List[Dict[str, Any]]) -> None:
                records[:] = [r for r in records if r.get("albumId") != album_id]
                records.extend(photo.to_dict() for photo in cloud_photos)

            self.store.update(Collection.PHOTOS, _replace)
            logger.info("Local photos overwritten with %d cloud photos", len(cloud_photos))

        photos = []
        for record in self.store.read_all(Collection.PHOTOS):
            if record.get("albumName") == album_name or (album_id and record.get("albumId") == album_id):
                photo = Photo.from_dict(record)
                photo.album_id = photo.album_id or album_id
                photo.album_name = photo.album_name or album_name
                if not photo.source_directory and photo.local_image_uri.startswith("file://"):
                    photo.source_directory = os.path.dirname(from_file_uri(photo.local_image_uri))
                photos.append(photo)

        logger.info("Fetched %d photos for album %s", len(photos), album_name)
        return photos

    def delete_photo(self, photo_id: str) -> Result:
        """Delete one photo record."""
        result = self.bulk_delete_photos([photo_id])
        if result.success:
            logger.info("Photo metadata deleted: %s", photo_id)
        return result

    def bulk_delete_photos(self, photo_ids: Iterable[str]) -> Result:
        """Delete photo records by id.

        The image files stay on disk. Their paths are released from the
        ingestion dedup set, and photos already uploaded get a
        ``delete_photo`` operation queued.
        """
        ids = set(photo_ids)
        logger.info("Deleting %d photos", len(ids))
        try:

            def _remove(records: List[Dict[str, Any]]) -> List[Photo]:
                removed = [Photo.from_dict(r) for r in records if r.get("id") in ids]
                records[:] = [r for r in records if r.get("id") not in ids]
                return removed

            removed = self.store.update(Collection.PHOTOS, _remove)
            for photo in removed:
                if photo.local_image_uri.startswith("file://"):
                    self.on_photo_removed(from_file_uri(photo.local_image_uri))
                if self.sync_engine.object_store.is_cloud_url(photo.cloud_image_url):
                    self.store.enqueue(
                        OperationKind.DELETE_PHOTO,
                        {"photoId": photo.id, "albumId": photo.album_id, "userId": photo.owner_id},
                    )
                    logger.info("Photo deletion added to sync queue: %s", photo.id)
        except FotosSyncError as e:
            logger.error("Error deleting photos: %s", e)
            return Result.fail(error=f"Failed to delete photos: {e}")

        return Result.ok(data={"changes": len(removed)})
