"""File utilities for fotos-sync."""

import logging
import os
import time
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import quote, unquote, urlparse

from PIL import Image

logger = logging.getLogger(__name__)

# Leading-byte signatures, hex encoded. Camera raw formats reuse the TIFF headers.
IMAGE_SIGNATURES: Dict[str, List[str]] = {
    "jpg": ["ffd8ff"],
    "png": ["89504e47"],
    "gif": ["47494638"],
    "webp": ["52494646"],
    "tiff": ["49492a00", "4d4d002a"],
    "bmp": ["424d"],
    "cr2": ["49492a00"],
    "cr3": ["66747970637278"],
    "nef": ["4d4d002a"],
    "arw": ["49492a00", "4d4d002a"],
}

SIGNATURE_READ_SIZE = 8


def detect_image_format(file_path: str) -> Optional[str]:
    """Detect the image format of a file from its leading bytes.

    Args:
        file_path: Path to the file to inspect

    Returns:
        Format key from IMAGE_SIGNATURES, or None if no signature matches
    """
    with open(file_path, "rb") as f:
        head = f.read(SIGNATURE_READ_SIZE).hex().lower()

    for image_format, signatures in IMAGE_SIGNATURES.items():
        if any(head.startswith(signature) for signature in signatures):
            return image_format
    return None


def is_image(file_path: str) -> bool:
    """Check if a file is an image based on its content, never its extension.

    Args:
        file_path: Path to the file to check

    Returns:
        True if the leading bytes match a known image signature. Read errors
        are logged and reported as False.
    """
    try:
        return detect_image_format(file_path) is not None
    except OSError as e:
        logger.error("Failed to validate file as image %s: %s", file_path, e)
        return False


def to_file_uri(file_path: str) -> str:
    """Convert a local path to a file:// URI."""
    absolute = os.path.abspath(file_path).replace("\\", "/")
    if not absolute.startswith("/"):
        absolute = "/" + absolute
    return "file://" + quote(absolute)


def from_file_uri(uri: str) -> str:
    """Convert a file:// URI back to a local path.

    Plain paths are returned unchanged.
    """
    if not uri.startswith("file://"):
        return uri
    path = unquote(urlparse(uri).path)
    # Windows drive paths come back as /C:/...
    if len(path) > 2 and path[0] == "/" and path[2] == ":":
        path = path[1:]
    return os.path.normpath(path)


def get_file_size(file_path: str) -> Optional[int]:
    """Get a file's size, or None if it no longer exists."""
    try:
        return os.path.getsize(file_path)
    except OSError:
        return None


def wait_for_stable_size(
    file_path: str,
    window: float = 2.0,
    poll_interval: float = 0.2,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Block until a file has stopped growing.

    The file counts as stable once its size has not changed for ``window``
    seconds, checked every ``poll_interval`` seconds.

    Args:
        file_path: File being written
        window: Quiescence period in seconds
        poll_interval: Seconds between size checks
        sleep: Sleep function
        clock: Monotonic clock

    Returns:
        True once stable, False if the file disappeared while waiting
    """
    last_size = get_file_size(file_path)
    if last_size is None:
        return False
    stable_since = clock()

    while clock() - stable_since < window:
        sleep(poll_interval)
        size = get_file_size(file_path)
        if size is None:
            return False
        if size != last_size:
            logger.debug("%s still growing (%d -> %d bytes)", file_path, last_size, size)
            last_size = size
            stable_since = clock()

    return True


def get_image_dimensions(file_path: str) -> Tuple[int, int]:
    """Get dimensions of an image file.

    Args:
        file_path: Path to image file

    Returns:
        Tuple containing width and height of image, (0, 0) when Pillow
        cannot decode the format
    """
    try:
        with Image.open(file_path) as img:
            return img.size
    except (IOError, OSError) as e:
        logger.warning("Failed to get dimensions for %s: %s", file_path, str(e))
        return (0, 0)


def is_hidden(file_path: str) -> bool:
    """Check whether any component of a path is a dotfile."""
    return any(
        part.startswith(".") and part not in (".", "..")
        for part in file_path.replace("\\", "/").split("/")
    )
