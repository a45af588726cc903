"""Image uploads to the Cloudinary object store."""

import logging
import uuid
from typing import Dict, Optional

import cloudinary
import cloudinary.uploader

from fotos_sync.models import UploadError

logger = logging.getLogger(__name__)


class ObjectStore:
    """Uploads images and recognises URLs that point at uploaded copies."""

    def __init__(
        self,
        credentials: Dict[str, Optional[str]],
        folder: str = "albums",
        url_prefix: str = "https://res.cloudinary.com",
    ):
        self.folder = folder
        self.url_prefix = url_prefix
        configured = {key: value for key, value in credentials.items() if value}
        if configured:
            cloudinary.config(**configured)

    def is_cloud_url(self, url: Optional[str]) -> bool:
        """Check whether a URL marks an image as cloud-resident."""
        return bool(url) and url.startswith(self.url_prefix)

    @staticmethod
    def new_public_id() -> str:
        return f"image-{uuid.uuid4()}"

    def upload(self, source: str, public_id: Optional[str] = None) -> str:
        """Upload an image.

        Args:
            source: Local file path or a base64 data URI
            public_id: Object id, generated when omitted

        Returns:
            The secure URL of the uploaded image

        Raises:
            UploadError: If the upload fails or returns no URL
        """
        options = {"folder": self.folder, "resource_type": "image"}
        if public_id:
            options["public_id"] = public_id
        try:
            result = cloudinary.uploader.upload(source, **options)
        except Exception as e:
            raise UploadError(f"Image upload failed: {e}") from e

        url = result.get("secure_url") if result else None
        if not url:
            raise UploadError("Image upload returned no URL")
        logger.info("Image uploaded to object store: %s", url)
        return url

    def upload_base64(self, base64_data: str, public_id: Optional[str] = None) -> str:
        """Upload raw base64 image bytes under a fresh object id."""
        return self.upload(
            f"data:image/jpeg;base64,{base64_data}",
            public_id=public_id or self.new_public_id(),
        )
