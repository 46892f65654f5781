"""Receipt storage, upload and display URL resolution."""

from expense_tracker.services.receipts.cloudinary_service import CloudinaryReceiptStorage
from expense_tracker.services.receipts.resolver import ONE_WEEK_SECONDS, AttachmentResolver
from expense_tracker.services.receipts.uploader import (
    ReceiptError,
    ReceiptUploader,
    ReceiptUploadError,
    ReceiptValidationError,
)

__all__ = [
    "AttachmentResolver",
    "CloudinaryReceiptStorage",
    "ONE_WEEK_SECONDS",
    "ReceiptError",
    "ReceiptUploadError",
    "ReceiptUploader",
    "ReceiptValidationError",
]
