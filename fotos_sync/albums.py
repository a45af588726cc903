"""Album lifecycle: local records first, cloud replay through the sync queue."""

import base64
import binascii
import logging
import os
import uuid
from typing import Any, Callable, Dict, List, Optional

from fotos_sync.cloud.api_client import ApiClient
from fotos_sync.config import AppConfig
from fotos_sync.database.models import Album, Collection, OperationKind, Photo
from fotos_sync.database.record_store import RecordStore
from fotos_sync.models import FotosSyncError, Result, ValidationError
from fotos_sync.sync.engine import SyncEngine, strip_data_uri
from fotos_sync.utils.file_utils import from_file_uri

logger = logging.getLogger(__name__)


class AlbumService:
    """Creates, lists, edits and deletes albums.

    Every mutation is written locally and appended to the sync queue; when the
    backend is reachable the queue is drained straight away.
    """

    def __init__(
        self,
        config: AppConfig,
        store: RecordStore,
        api: ApiClient,
        sync_engine: SyncEngine,
        on_photo_removed: Optional[Callable[[str], None]] = None,
    ):
        self.config = config
        self.store = store
        self.api = api
        self.sync_engine = sync_engine
        self.on_photo_removed = on_photo_removed or (lambda path: None)

    def _current_user_id(self) -> Optional[str]:
        user = self.store.load_user()
        return user.id if user else None

    def _save_cover_image(self, album_id: str, image: Optional[Dict[str, str]]) -> Optional[str]:
        """Write an uploaded cover image into the images directory.

        Args:
            album_id: Album the image belongs to
            image: Dict with ``base64`` data and original file ``name``

        Returns:
            Path of the written image, or None if no image was given
        """
        if not image or not image.get("base64") or not image.get("name"):
            return None
        try:
            data = base64.b64decode(strip_data_uri(image["base64"]), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError(f"Invalid cover image data: {e}") from e

        extension = os.path.splitext(image["name"])[1]
        image_path = os.path.join(self.config.image_dir, f"{album_id}{extension}")
        os.makedirs(self.config.image_dir, exist_ok=True)
        with open(image_path, "wb") as f:
            f.write(data)
        logger.info("Cover image saved: %s", image_path)
        return image_path

    def _sync_if_online(self) -> None:
        result = self.sync_engine.sync_albums()
        if not result.success:
            logger.info("Album change left in sync queue: %s", result.message or result.error)

    def create_album(self, name: str, date: str, image: Optional[Dict[str, str]] = None) -> Result:
        """Create an album and queue it for the cloud."""
        if not name or not date:
            return Result.fail(error="Album name and date are required")

        logger.info("Creating new album %s (%s)", name, date)
        try:
            self.store.ensure_structure()
            album_id = uuid.uuid4().hex
            image_path = self._save_cover_image(album_id, image) or ""
            album = Album(
                id=album_id,
                owner_id=self._current_user_id(),
                name=name,
                date=date,
                local_image_path=image_path,
            )
            self.store.append(Collection.ALBUMS, album.to_dict())
            self.store.enqueue(OperationKind.CREATE_ALBUM, {"album": album.to_dict()})
        except (OSError, FotosSyncError) as e:
            logger.error("Failed to create album: %s", e)
            return Result.fail(error=str(e))

        self._sync_if_online()
        return Result.ok(data=album)

    def get_albums(self, force_cloud_sync: bool = False) -> List[Album]:
        """List the current user's albums.

        With ``force_cloud_sync`` and a reachable backend, the user's local
        albums are replaced wholesale by the cloud copy first.
        """
        try:
            self.store.ensure_structure()
            user_id = self._current_user_id()

            if force_cloud_sync and self.sync_engine.is_online():
                logger.info("Fetching albums from cloud...")
                cloud_albums = [Album.from_dict(a) for a in self.api.list_albums()]

                def _replace(records: List[Dict[str, Any]]) -> None:
                    records[:] = [r for r in records if r.get("userId") != user_id]
                    records.extend(album.to_dict() for album in cloud_albums)

                self.store.update(Collection.ALBUMS, _replace)
                logger.info("Local albums replaced with %d cloud albums", len(cloud_albums))
                return cloud_albums

            albums = [
                Album.from_dict(record)
                for record in self.store.read_all(Collection.ALBUMS)
                if record.get("userId") == user_id
            ]
            logger.info("Loaded %d albums from local storage", len(albums))
            return albums
        except (KeyError, TypeError) as e:
            logger.error("Malformed album data: %s", e)
            return []
        except FotosSyncError as e:
            logger.error("Error getting albums: %s", e)
            return []

    def find_album_by_name(self, name: str) -> Optional[Album]:
        for record in self.store.read_all(Collection.ALBUMS):
            if record.get("name") == name:
                return Album.from_dict(record)
        return None

    def update_album(
        self,
        album_id: str,
        name: Optional[str] = None,
        date: Optional[str] = None,
        image: Optional[Dict[str, str]] = None,
    ) -> Result:
        """Edit an album in place and queue the change."""
        logger.info("Updating album %s", album_id)
        try:
            self.store.ensure_structure()
            user_id = self._current_user_id()
            new_image_path = self._save_cover_image(album_id, image)

            def _edit(records: List[Dict[str, Any]]) -> Optional[Album]:
                for index, record in enumerate(records):
                    if record.get("id") == album_id:
                        album = Album.from_dict(record)
                        album.name = name or album.name
                        album.date = date or album.date
                        album.local_image_path = new_image_path or album.local_image_path
                        album.owner_id = user_id
                        records[index] = album.to_dict()
                        return album
                return None

            album = self.store.update(Collection.ALBUMS, _edit)
            if album is None:
                logger.error("Album not found: %s", album_id)
                return Result.fail(error="Album not found")

            self.store.enqueue(
                OperationKind.UPDATE_ALBUM,
                {
                    "id": album.id,
                    "name": album.name,
                    "date": album.date,
                    "imagePath": album.local_image_path,
                    "userId": user_id,
                },
            )
        except (OSError, FotosSyncError) as e:
            logger.error("Error updating album: %s", e)
            return Result.fail(error=str(e))

        logger.info("Album updated successfully: %s", album_id)
        self._sync_if_online()
        return Result.ok(data=album)

    def delete_album(self, album_id: str) -> Result:
        """Delete an album and every photo that references it.

        Photos already uploaded get a ``delete_photo`` operation queued so the
        cloud copy is removed later.
        """
        logger.info("Deleting album %s", album_id)
        try:
            self.store.ensure_structure()
            albums = self.store.read_all(Collection.ALBUMS)
            if not any(record.get("id") == album_id for record in albums):
                logger.error("Album not found for deletion: %s", album_id)
                return Result.fail(error="Album not found")

            def _remove_photos(records: List[Dict[str, Any]]) -> List[Photo]:
                removed = [Photo.from_dict(r) for r in records if r.get("albumId") == album_id]
                records[:] = [r for r in records if r.get("albumId") != album_id]
                return removed

            removed_photos = self.store.update(Collection.PHOTOS, _remove_photos)
            for photo in removed_photos:
                self.on_photo_removed(from_file_uri(photo.local_image_uri))
                if self.sync_engine.object_store.is_cloud_url(photo.cloud_image_url):
                    self.store.enqueue(
                        OperationKind.DELETE_PHOTO,
                        {"photoId": photo.id, "albumId": photo.album_id, "userId": photo.owner_id},
                    )

            def _remove_album(records: List[Dict[str, Any]]) -> None:
                records[:] = [r for r in records if r.get("id") != album_id]

            self.store.update(Collection.ALBUMS, _remove_album)
            self.store.enqueue(
                OperationKind.DELETE_ALBUM, {"id": album_id, "userId": self._current_user_id()}
            )
        except FotosSyncError as e:
            logger.error("Error deleting album: %s", e)
            return Result.fail(error=str(e))

        logger.info(
            "Album %s and %d associated photos deleted", album_id, len(removed_photos)
        )
        self._sync_if_online()
        return Result.ok(data={"changes": {"albums": 1, "photos": len(removed_photos)}})
