"""
Image Store Module.

Manages the upload target for site images: deterministic upload paths,
validated writes with progress reporting and tolerant deletes.
"""

import io
import logging
import os
import re
import time
from pathlib import Path
from typing import Callable, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from atelier.app.constants import IMAGE_CATEGORIES, UPLOAD_CHUNK_SIZE
from atelier.core.paths import get_user_data_path

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.]")
_EXTENSION = re.compile(r"\.[^/.]+$")


def generate_image_path(category: str, filename: str) -> str:
    """
    Generates a unique storage path for an uploaded image.

    Example: ``hero/1717000000000_my_photo.jpg``

    Raises:
        ValueError: If the category is unknown.
    """
    if category not in IMAGE_CATEGORIES:
        raise ValueError(f"Unknown image category: {category}")
    timestamp = int(time.time() * 1000)
    clean_filename = _UNSAFE_FILENAME_CHARS.sub("_", filename)
    return f"{category}/{timestamp}_{clean_filename}"


def generate_ai_image_path(original_path: str, version: int) -> str:
    """Generates the path for an AI-edited version of an image."""
    base_path = _EXTENSION.sub("", original_path)
    return f"{base_path}_ai_v{version}.png"


def inspect_image(data: bytes) -> Tuple[str, Tuple[int, int]]:
    """
    Validates image bytes.

    Returns:
        (format, (width, height))

    Raises:
        ValueError: If the data is not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
        # verify() leaves the image unusable; reopen for metadata.
        with Image.open(io.BytesIO(data)) as img:
            return (img.format or "UNKNOWN"), img.size
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"Not a valid image: {e}") from e


class ImageStore:
    """
    Stores uploaded images below a root directory and serves them under a
    base URL.
    """

    def __init__(self, root: str, base_url: str = "/media/") -> None:
        """
        Args:
            root: Directory receiving uploaded files.
            base_url: URL prefix under which ``root`` is served.
        """
        self.root = Path(root)
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "ImageStore":
        """Builds a store from ATELIER_ASSET_ROOT and ATELIER_ASSET_BASE_URL."""
        root = os.environ.get("ATELIER_ASSET_ROOT") or get_user_data_path("media")
        base_url = os.environ.get("ATELIER_ASSET_BASE_URL") or "/media/"
        return cls(root, base_url)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def upload(
        self,
        data: bytes,
        path: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Validates and writes an image, reporting progress in percent.

        Args:
            data: Encoded image bytes.
            path: Relative storage path (see generate_image_path).
            progress_callback: Receives 0..100 while writing.

        Returns:
            str: Public URL of the stored image.

        Raises:
            ValueError: If data is not an image or path escapes the root.
            OSError: If the file cannot be written.
        """
        image_format, size = inspect_image(data)
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        total = len(data)
        written = 0
        try:
            with open(target, "wb") as f:
                if progress_callback:
                    progress_callback(0)
                for offset in range(0, total, UPLOAD_CHUNK_SIZE):
                    chunk = data[offset : offset + UPLOAD_CHUNK_SIZE]
                    f.write(chunk)
                    written += len(chunk)
                    if progress_callback:
                        progress_callback(int(written * 100 / total))
        except OSError as e:
            logger.error(f"Failed to upload image {path}: {e}")
            if target.exists():
                target.unlink()
            raise

        logger.info(f"Uploaded {image_format} image {path} ({size[0]}x{size[1]})")
        return self.url_for(path)

    def delete(self, url_or_path: str) -> bool:
        """
        Deletes a stored image. Missing files are not an error.

        Returns:
            bool: True if a file was removed.
        """
        path = url_or_path
        if path.startswith(self.base_url):
            path = path[len(self.base_url) :]
        try:
            target = self._resolve(path)
            target.unlink()
            return True
        except FileNotFoundError:
            logger.debug(f"Image already deleted: {url_or_path}")
            return False
        except (OSError, ValueError) as e:
            logger.error(f"Error deleting image {url_or_path}: {e}")
            return False

    def _resolve(self, path: str) -> Path:
        root = self.root.resolve()
        target = (root / path).resolve()
        if root not in target.parents:
            raise ValueError(f"Path escapes image root: {path}")
        return target
