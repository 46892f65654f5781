"""
Attachment Resolver

Turns a stored receipt reference (the public URL saved on the expense row)
into a short-lived signed URL for display or download.

The storage path is recovered from the reference by locating the bucket
segment: ".../receipts/<owner>/<file>" -> "<owner>/<file>". If anything goes
wrong the raw reference is returned so the caller can still try it directly.
"""

from typing import Optional

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.services.storage import ObjectStorageInterface


logger = structlog.get_logger(__name__)

ONE_WEEK_SECONDS = 7 * 24 * 60 * 60


class AttachmentResolver:
    """Best-effort receipt URL signing; never raises."""

    def __init__(
        self,
        storage: ObjectStorageInterface,
        bucket: str = "receipts",
        ttl_seconds: int = ONE_WEEK_SECONDS,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._bucket = bucket
        self._ttl_seconds = ttl_seconds
        self._audit_logger = audit_logger

    def storage_path(self, receipt_ref: str) -> Optional[str]:
        """
        Extract the in-bucket path from a receipt reference.

        Returns None if the bucket segment is missing or nothing follows it.
        """
        if not receipt_ref:
            return None
        # Drop any query string (e.g. a previously signed token)
        parts = receipt_ref.split("?", 1)[0].split("/")
        try:
            index = parts.index(self._bucket)
        except ValueError:
            return None
        path = "/".join(part for part in parts[index + 1:] if part)
        return path or None

    async def resolve_for_display(self, receipt_ref: str) -> str:
        """
        Get a URL the user can open for this receipt.

        Returns a signed URL valid for the configured TTL, or the
        reference itself if it cannot be signed.
        """
        try:
            path = self.storage_path(receipt_ref)
            if path is None:
                logger.info("receipt_ref_not_in_bucket", bucket=self._bucket)
                return receipt_ref
            return await self._storage.signed_url(path, self._ttl_seconds)
        except Exception as e:
            logger.warning("receipt_signing_failed", error=str(e))
            if self._audit_logger:
                try:
                    await self._audit_logger.log_attachment_resolution_failed(
                        receipt_ref=str(receipt_ref),
                        error_message=str(e),
                    )
                except Exception:
                    logger.exception("audit_log_failed")
            return receipt_ref
