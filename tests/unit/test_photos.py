"""Tests for the photo service."""

import os

import pytest

from fotos_sync.database.models import Collection, OperationKind, Photo
from fotos_sync.models import ValidationError
from fotos_sync.photos import PhotoService

CLOUD_URL = "https://res.cloudinary.com/demo/p2.jpg"


@pytest.fixture
def removed_paths():
    return []


@pytest.fixture
def photos(store, api, sync_engine, removed_paths):
    return PhotoService(store, api, sync_engine, on_photo_removed=removed_paths.append)


@pytest.fixture
def stored_photos(store, wedding_album):
    records = [
        Photo("p1", "A1", "Wedding", "U1", "file:///ftp/wedding/p1.jpg", "2024-06-01T10:00:00.000Z"),
        Photo("p2", "A1", "Wedding", "U1", "file:///ftp/wedding/p2.jpg", "2024-06-01T10:01:00.000Z",
              cloud_image_url=CLOUD_URL),
        Photo("p3", None, "Wedding", "U1", "file:///ftp/wedding/p3.jpg", "2024-06-01T10:02:00.000Z"),
        Photo("p4", "B1", "Party", "U1", "file:///ftp/party/p4.jpg", "2024-06-01T10:03:00.000Z"),
    ]
    store.write_all(Collection.PHOTOS, [photo.to_dict() for photo in records])
    return records


def test_fetch_photos_by_album_name(photos, stored_photos):
    result = photos.fetch_photos("Wedding")

    assert [photo.id for photo in result] == ["p1", "p2", "p3"]
    # Photos ingested before the album existed pick up its id.
    assert result[2].album_id == "A1"
    assert result[0].source_directory == os.path.normpath("/ftp/wedding")


def test_fetch_photos_unknown_album(photos, stored_photos):
    assert photos.fetch_photos("Nope") == []


def test_fetch_photos_from_cloud_replaces_album(photos, store, api, stored_photos):
    api.list_cloud_photos.return_value = [
        {
            "id": "c1",
            "albumId": "A1",
            "imageUrl": "https://res.cloudinary.com/demo/c1.jpg",
            "originalImageUrl": "file:///ftp/wedding/c1.jpg",
            "createdAt": "2024-06-02T00:00:00.000Z",
        }
    ]

    result = photos.fetch_photos("Wedding", cloud_sync=True)

    api.list_cloud_photos.assert_called_once_with("A1")
    # p3 has no album id, so it survives the replacement.
    assert [photo.id for photo in result] == ["p3", "c1"]
    cloud = result[1]
    assert cloud.cloud_image_url == "https://res.cloudinary.com/demo/c1.jpg"
    assert cloud.local_image_uri == "file:///ftp/wedding/c1.jpg"
    assert "p4" in {record["id"] for record in store.read_all(Collection.PHOTOS)}


def test_fetch_photos_from_cloud_requires_album(photos, stored_photos):
    with pytest.raises(ValidationError):
        photos.fetch_photos("Nope", cloud_sync=True)


def test_bulk_delete_photos(photos, store, stored_photos, removed_paths):
    result = photos.bulk_delete_photos(["p1", "p2", "missing"])

    assert result.data == {"changes": 2}
    assert [r["id"] for r in store.read_all(Collection.PHOTOS)] == ["p3", "p4"]
    assert sorted(removed_paths) == [
        os.path.normpath("/ftp/wedding/p1.jpg"),
        os.path.normpath("/ftp/wedding/p2.jpg"),
    ]
    queue = store.load_queue()
    assert [op.kind for op in queue] == [OperationKind.DELETE_PHOTO]
    assert queue[0].payload["photoId"] == "p2"


def test_delete_photo(photos, store, stored_photos):
    result = photos.delete_photo("p4")

    assert result.success
    assert "p4" not in {r["id"] for r in store.read_all(Collection.PHOTOS)}
    assert store.load_queue() == []
