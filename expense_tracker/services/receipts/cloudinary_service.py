"""
Receipt Storage using Cloudinary

DESIGN DECISION: Cloudinary is offered as an alternative receipt store:
1. Handles both images and PDFs (resource_type="auto")
2. Generates expiring, signed download URLs
3. Free tier sufficient for personal use

Receipts live in a folder named after the bucket, so stored URLs look like
.../upload/v123/receipts/<owner>/<millis>.png and the attachment resolver can
recover "<owner>/<millis>.png" exactly as it does for Supabase Storage.
"""

import asyncio
import time
from typing import Optional

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_tracker.audit import AuditLogger
from expense_tracker.config import CloudinarySettings, get_settings
from expense_tracker.services.storage import ObjectStorageError, ObjectStorageInterface


def split_path(path: str) -> tuple[str, str]:
    """Split "<owner>/<millis>.pdf" into ("<owner>/<millis>", "pdf")."""
    if "." not in path.rsplit("/", 1)[-1]:
        return path, ""
    stem, extension = path.rsplit(".", 1)
    return stem, extension.lower()


def resource_type_for(extension: str) -> str:
    # Cloudinary serves PDFs as images; anything else unknown is raw
    if extension in ("png", "jpg", "jpeg", "webp", "pdf"):
        return "image"
    return "raw"


class CloudinaryReceiptStorage(ObjectStorageInterface):
    """
    Object storage for receipts on Cloudinary.

    The SDK is synchronous; calls run in a worker thread.
    """

    def __init__(
        self,
        folder: Optional[str] = None,
        settings: Optional[CloudinarySettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or get_settings().cloudinary
        self._folder = folder or get_settings().supabase.receipts_bucket
        self._audit_logger = audit_logger
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def _public_id(self, path: str) -> tuple[str, str]:
        stem, extension = split_path(path)
        return f"{self._folder}/{stem}", extension

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        self._configure()
        public_id, extension = self._public_id(path)
        try:
            await asyncio.to_thread(
                cloudinary.uploader.upload,
                data,
                public_id=public_id,
                resource_type=resource_type_for(extension),
                overwrite=False,
            )
        except cloudinary.exceptions.Error as e:
            await self._report_failure(str(e))
            raise ObjectStorageError(f"Cloudinary error: {e}")
        except Exception as e:
            await self._report_failure(str(e))
            raise ObjectStorageError(f"Failed to upload receipt: {e}")

    async def _report_failure(self, error_message: str) -> None:
        if self._audit_logger:
            await self._audit_logger.log_external_service_error("cloudinary", error_message)

    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        self._configure()
        public_id, extension = self._public_id(path)
        try:
            return cloudinary.utils.private_download_url(
                public_id,
                extension,
                resource_type=resource_type_for(extension),
                type="upload",
                expires_at=int(time.time()) + ttl_seconds,
            )
        except Exception as e:
            raise ObjectStorageError(f"Failed to sign receipt URL: {e}")

    async def public_url(self, path: str) -> str:
        self._configure()
        public_id, extension = self._public_id(path)
        url, _ = cloudinary.utils.cloudinary_url(
            public_id,
            format=extension or None,
            resource_type=resource_type_for(extension),
        )
        return url
