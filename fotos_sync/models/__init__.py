"""Shared result types, UI events and exceptions for fotos-sync."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class StreamAction(str, Enum):
    """Image-stream event kinds pushed to the UI."""
    PENDING = "pending"
    ADD = "add"
    UPLOAD = "upload"
    ERROR = "error"


@dataclass
class ImageStreamEvent:
    """Represents one push notification about an ingested file."""
    action: StreamAction
    file_path: Optional[str] = None
    image_url: Optional[str] = None
    album_name: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"action": self.action.value}
        if self.file_path is not None:
            data["filePath"] = self.file_path
        if self.image_url is not None:
            data["imageUrl"] = self.image_url
        if self.album_name is not None:
            data["albumName"] = self.album_name
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class Result:
    """Success/error result returned across the command boundary."""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: Any = None

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "Result":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: Optional[str] = None, message: Optional[str] = None) -> "Result":
        return cls(success=False, error=error, message=message)

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class FotosSyncError(Exception):
    """Base exception for fotos-sync operations."""


class StoreError(FotosSyncError):
    """Raised when a local JSON collection cannot be read or written."""


class ValidationError(FotosSyncError):
    """Raised when a command receives missing or invalid input."""


class CloudSyncError(FotosSyncError):
    """Base exception for remote backend failures."""


class ApiError(CloudSyncError):
    """Raised when the metadata API call fails."""


class UploadError(CloudSyncError):
    """Raised when the object store rejects an upload."""


class FtpServerError(FotosSyncError):
    """Raised when the FTP listener cannot be started."""
