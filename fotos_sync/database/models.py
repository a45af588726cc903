"""Record types stored in the local JSON collections."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Collection(str, Enum):
    """Backing collection files in the data directory."""
    ALBUMS = "album.json"
    PHOTOS = "photos.json"
    SYNC_QUEUE = "syncQueue.json"
    USER = "user.json"


class OperationKind(str, Enum):
    """Pending operation kinds, stored under their wire names."""
    CREATE_ALBUM = "create"
    UPDATE_ALBUM = "update"
    DELETE_ALBUM = "delete"
    SYNC_PHOTO = "sync_photo"
    DELETE_PHOTO = "delete_photo"
    REGISTER_USER = "register"
    RESET_PASSWORD = "forgot-password"


@dataclass
class Album:
    """Data class for a locally stored album."""
    id: str
    owner_id: Optional[str]
    name: str
    date: str
    local_image_path: str = ""
    cloud_cover_image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "userId": self.owner_id,
            "name": self.name,
            "date": self.date,
            "imagePath": self.local_image_path,
        }
        if self.cloud_cover_image_url:
            data["coverImageUrl"] = self.cloud_cover_image_url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Album":
        return cls(
            id=data["id"],
            owner_id=data.get("userId"),
            name=data.get("name", ""),
            date=data.get("date", ""),
            local_image_path=data.get("imagePath") or data.get("localImagePath") or "",
            cloud_cover_image_url=data.get("coverImageUrl"),
        )


@dataclass
class Photo:
    """Data class for one ingested photo.

    ``album_id`` stays ``None`` when no album matched ``album_name`` at
    ingestion time; ``album_name`` is what listings filter on.
    """
    id: str
    album_id: Optional[str]
    album_name: str
    owner_id: Optional[str]
    local_image_uri: str
    created_at: str
    source_directory: str = ""
    cloud_image_url: Optional[str] = None
    width: int = 0
    height: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "albumId": self.album_id,
            "albumName": self.album_name,
            "userId": self.owner_id,
            "imageUrl": self.local_image_uri,
            "createdAt": self.created_at,
            "directory": self.source_directory,
            "width": self.width,
            "height": self.height,
        }
        if self.cloud_image_url:
            data["fileUrl"] = self.cloud_image_url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Photo":
        return cls(
            id=data["id"],
            album_id=data.get("albumId"),
            album_name=data.get("albumName", ""),
            owner_id=data.get("userId"),
            local_image_uri=data.get("imageUrl", ""),
            created_at=data.get("createdAt", ""),
            source_directory=data.get("directory", ""),
            cloud_image_url=data.get("fileUrl"),
            width=data.get("width") or 0,
            height=data.get("height") or 0,
        )


@dataclass
class PendingOperation:
    """A queued mutation waiting to be replayed against the backend."""
    id: int
    kind: OperationKind
    payload: Dict[str, Any] = field(default_factory=dict)
    enqueued_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action": self.kind.value,
            "payload": self.payload,
            "enqueuedAt": self.enqueued_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], position: int = 0) -> "PendingOperation":
        """Build an operation, accepting flat entries written by older releases.

        Raises:
            ValueError: If the entry is not an object or its action is unknown
            KeyError: If the entry has no action
        """
        if not isinstance(data, dict):
            raise ValueError(f"queue entry is not an object: {data!r}")
        if "payload" in data:
            payload = dict(data["payload"] or {})
            op_id = data.get("id")
        else:
            # Flat entries keep their own "id" (an album id) in the payload.
            payload = {
                key: value
                for key, value in data.items()
                if key not in ("action", "enqueuedAt")
            }
            op_id = None
        if not isinstance(op_id, int) or isinstance(op_id, bool):
            op_id = position + 1
        return cls(
            id=op_id,
            kind=OperationKind(data["action"]),
            payload=payload,
            enqueued_at=data.get("enqueuedAt", ""),
        )


@dataclass
class UserSession:
    """Data class for the logged-in user stored in user.json."""
    id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    email_verified: bool = False
    auth_token: Optional[str] = None
    trial_start: Optional[str] = None
    subscription_end: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "emailVerified": self.email_verified,
            "token": self.auth_token,
            "trialStart": self.trial_start,
            "subscriptionEnd": self.subscription_end,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserSession":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            email_verified=bool(data.get("emailVerified")),
            auth_token=data.get("token"),
            trial_start=data.get("trialStart"),
            subscription_end=data.get("subscriptionEnd"),
        )
