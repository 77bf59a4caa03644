"""
Image Pipeline Module.

Manages the image upload flow of the admin editors:
local file -> optional AI edit -> explicit confirmation -> upload.

No image is persisted until the user confirms either the original or the
edited version.
"""

import base64
import binascii
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from PySide6.QtCore import QObject, Signal

from atelier.services.image_store import ImageStore, generate_image_path

logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:(?P<mime>[^;,]+)?(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)


class PipelineStatus(str, Enum):
    IDLE = "idle"
    SELECTED = "selected"
    EDITING = "editing"
    CONFIRMING = "confirming"
    UPLOADING = "uploading"
    SAVED = "saved"
    ERROR = "error"


def decode_image_data(data: str, default_mime: str = "image/png") -> Tuple[bytes, str]:
    """
    Decodes a base64 string or a ``data:`` URI.

    Returns:
        (raw bytes, mime type)

    Raises:
        ValueError: If the payload is not valid base64.
    """
    mime = default_mime
    payload = data.strip()
    match = _DATA_URI.match(payload)
    if match:
        mime = match.group("mime") or default_mime
        payload = match.group("data")
    elif "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=True), mime
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e


class ImagePipeline(QObject):
    """
    State machine for selecting, optionally editing and uploading one image.

    Upload failures are reported through the error status; retry() uploads
    the same bytes again.
    """

    status_changed = Signal(object)  # PipelineStatus
    progress_changed = Signal(int)
    persisted = Signal(str)  # URL of the uploaded image
    error_occurred = Signal(str)

    def __init__(
        self,
        image_store: ImageStore,
        category: str,
        parent: Optional[QObject] = None,
    ) -> None:
        """
        Args:
            image_store: Upload target.
            category: Upload folder (hero, atelier, gallery, blog, portraits).
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self._store = image_store
        self._category = category
        self._status = PipelineStatus.IDLE
        self._progress = 0
        self._error: Optional[Exception] = None
        self._file_name: Optional[str] = None
        self._original: Optional[bytes] = None
        self._edited: Optional[str] = None

    @property
    def status(self) -> PipelineStatus:
        return self._status

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def file_name(self) -> Optional[str]:
        return self._file_name

    @property
    def original_data(self) -> Optional[bytes]:
        return self._original

    @property
    def edited_image(self) -> Optional[str]:
        return self._edited

    def select_file(self, path: str) -> None:
        """
        Loads a local file for preview. Nothing is uploaded.

        Raises:
            OSError: If the file cannot be read.
        """
        file_path = Path(path)
        data = file_path.read_bytes()
        self._original = data
        self._file_name = file_path.name
        self._edited = None
        self._error = None
        self._set_progress(0)
        self._set_status(PipelineStatus.SELECTED)

    def open_editor(self) -> None:
        """Enters the editing step. Ignored when no file is selected."""
        if self._original is None:
            return
        self._set_status(PipelineStatus.EDITING)

    def set_edited_image(self, image: str) -> None:
        """Stores the edited image (data URI or base64) returned by the editor."""
        self._edited = image
        self._set_status(PipelineStatus.EDITING)

    def confirm_original(self) -> Optional[str]:
        """
        Uploads the original file.

        Returns:
            The image URL, or None if nothing was uploaded.
        """
        if self._original is None:
            logger.error("No original image to upload")
            return None
        self._set_status(PipelineStatus.CONFIRMING)
        return self._upload(self._original)

    def confirm_edited(self) -> Optional[str]:
        """
        Uploads the edited image.

        Returns:
            The image URL, or None if nothing was uploaded.
        """
        if not self._edited:
            logger.error("No edited image to upload")
            return None
        self._set_status(PipelineStatus.CONFIRMING)
        try:
            data, _mime = decode_image_data(self._edited)
        except ValueError as e:
            self._fail(e)
            return None
        return self._upload(data)

    def retry(self) -> Optional[str]:
        """Repeats the last upload, preferring the edited image."""
        if self._edited:
            return self.confirm_edited()
        if self._original is not None:
            return self.confirm_original()
        return None

    def cancel(self) -> None:
        """Drops local data and returns to idle."""
        self._original = None
        self._edited = None
        self._file_name = None
        self._error = None
        self._set_progress(0)
        self._set_status(PipelineStatus.IDLE)

    def reset(self) -> None:
        self.cancel()

    def _upload(self, data: bytes) -> Optional[str]:
        file_name = self._file_name or "image.png"
        if self._edited and not file_name.lower().endswith(".png"):
            file_name = f"{Path(file_name).stem}.png"
        path = generate_image_path(self._category, file_name)

        self._set_progress(0)
        self._set_status(PipelineStatus.UPLOADING)
        try:
            url = self._store.upload(data, path, self._set_progress)
        except Exception as e:
            logger.error(f"Image upload error: {e}")
            self._fail(e)
            return None

        self._error = None
        self._set_progress(100)
        self._set_status(PipelineStatus.SAVED)
        self.persisted.emit(url)
        return url

    def _fail(self, error: Exception) -> None:
        self._error = error
        self._set_status(PipelineStatus.ERROR)
        self.error_occurred.emit(str(error))

    def _set_progress(self, progress: int) -> None:
        if progress != self._progress:
            self._progress = progress
            self.progress_changed.emit(progress)

    def _set_status(self, status: PipelineStatus) -> None:
        if status is self._status:
            return
        logger.debug(f"Image pipeline ({self._category}): {self._status.value} -> {status.value}")
        self._status = status
        self.status_changed.emit(status)
