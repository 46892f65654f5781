"""
Receipt Upload

Validates a receipt file and stores it under "<owner>/<epoch millis>.<ext>".
The returned public URL is what gets saved on the expense row.

DESIGN DECISION: We check files before uploading rather than after:
1. Only pdf/png/jpg/jpeg are accepted
2. Size is capped by configuration
3. Images must decode with Pillow, PDFs must carry the PDF signature
A corrupt receipt is rejected with a clear message instead of being stored.
"""

import mimetypes
import time
from io import BytesIO
from typing import Optional

import structlog
from PIL import Image, UnidentifiedImageError

from expense_tracker.config import AppSettings, get_settings
from expense_tracker.services.storage import ObjectStorageError, ObjectStorageInterface


logger = structlog.get_logger(__name__)

IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "webp"}


class ReceiptError(Exception):
    """Base exception for receipt handling."""
    pass


class ReceiptValidationError(ReceiptError):
    """The file is not an acceptable receipt."""
    pass


class ReceiptUploadError(ReceiptError):
    """The object store rejected the upload."""
    pass


def file_extension(filename: str) -> str:
    """Lower-cased extension without the dot ('' if none)."""
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].strip().lower()


class ReceiptUploader:
    """Validates and stores receipt files for one object store."""

    def __init__(
        self,
        storage: ObjectStorageInterface,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().app

    def validate(self, filename: str, data: bytes) -> str:
        """
        Check that a file is an acceptable receipt.

        Returns:
            The normalized file extension

        Raises:
            ReceiptValidationError: With a user-facing message
        """
        extension = file_extension(filename)
        allowed = self._settings.supported_formats_list
        if extension not in allowed:
            raise ReceiptValidationError(
                f"Unsupported receipt type '.{extension}'. Allowed: {', '.join(allowed)}"
            )

        if not data:
            raise ReceiptValidationError("Receipt file is empty")
        if len(data) > self._settings.max_upload_size_bytes:
            raise ReceiptValidationError(
                f"Receipt is larger than {self._settings.max_upload_size_mb} MB"
            )

        if extension in IMAGE_EXTENSIONS:
            try:
                with Image.open(BytesIO(data)) as img:
                    img.verify()
            except (UnidentifiedImageError, OSError, SyntaxError) as e:
                raise ReceiptValidationError(f"Receipt image could not be read: {e}")
        elif extension == "pdf" and not data.startswith(b"%PDF"):
            raise ReceiptValidationError("Receipt is not a valid PDF file")

        return extension

    @staticmethod
    def build_path(owner: str, extension: str, now: Optional[float] = None) -> str:
        """
        Generate the storage path for a new receipt.

        Format: {owner}/{epoch_millis}.{extension}
        """
        timestamp = int((time.time() if now is None else now) * 1000)
        return f"{owner}/{timestamp}.{extension}"

    async def upload(self, owner: str, filename: str, data: bytes) -> str:
        """
        Validate and upload a receipt.

        Returns:
            The public URL to store as the expense's receipt reference

        Raises:
            ReceiptValidationError: If the file is rejected
            ReceiptUploadError: If the upload fails
        """
        extension = self.validate(filename, data)
        path = self.build_path(owner, extension)
        content_type, _ = mimetypes.guess_type(filename)

        try:
            await self._storage.upload(path, data, content_type)
        except ObjectStorageError as e:
            raise ReceiptUploadError(f"Failed to upload receipt: {e}")

        logger.info("receipt_uploaded", path=path, size_bytes=len(data))
        return await self._storage.public_url(path)
