"""Utility functions for fotos-sync."""

from .file_utils import from_file_uri, get_image_dimensions, is_image, to_file_uri
from .retry import retry_with_backoff

__all__ = ["is_image", "get_image_dimensions", "to_file_uri", "from_file_uri", "retry_with_backoff"]
