"""Tests for receipt upload, signing and the Cloudinary adapter."""

import cloudinary.exceptions
import pytest
from unittest.mock import patch
from tenacity import stop_after_attempt

from expense_tracker.config import CloudinarySettings
from expense_tracker.models.audit import AuditEventType
from expense_tracker.services.receipts import (
    AttachmentResolver,
    CloudinaryReceiptStorage,
    ONE_WEEK_SECONDS,
    ReceiptUploader,
    ReceiptUploadError,
    ReceiptValidationError,
)
from expense_tracker.services.receipts.cloudinary_service import resource_type_for, split_path
from expense_tracker.services.receipts.uploader import file_extension
from expense_tracker.services.storage import ObjectStorageError

from tests.conftest import png_bytes


PUBLIC_REF = "https://storage.local/public/receipts/user-1/1700000000000.png"


class TestAttachmentResolver:
    """Tests for best-effort receipt URL signing."""

    def test_storage_path_from_public_url(self):
        resolver = AttachmentResolver(storage=None)
        assert resolver.storage_path(PUBLIC_REF) == "user-1/1700000000000.png"

    def test_storage_path_ignores_query_string(self):
        resolver = AttachmentResolver(storage=None)
        ref = "https://x/sign/receipts/user-1/a.pdf?token=abc"
        assert resolver.storage_path(ref) == "user-1/a.pdf"

    def test_storage_path_missing_bucket(self):
        resolver = AttachmentResolver(storage=None)
        assert resolver.storage_path("https://x/public/other/user-1/a.pdf") is None
        assert resolver.storage_path("https://x/public/receipts/") is None
        assert resolver.storage_path("") is None

    @pytest.mark.asyncio
    async def test_resolves_to_signed_url(self, object_storage):
        object_storage.files["user-1/1700000000000.png"] = b"data"
        resolver = AttachmentResolver(object_storage)

        url = await resolver.resolve_for_display(PUBLIC_REF)

        assert url.startswith("https://storage.local/sign/receipts/user-1/1700000000000.png")
        assert object_storage.signed_requests == [("user-1/1700000000000.png", ONE_WEEK_SECONDS)]

    @pytest.mark.asyncio
    async def test_malformed_ref_returned_unchanged(self, object_storage):
        """Test that a malformed reference never raises."""
        resolver = AttachmentResolver(object_storage)

        assert await resolver.resolve_for_display("not a url") == "not a url"
        assert object_storage.signed_requests == []

    @pytest.mark.asyncio
    async def test_signing_failure_returns_raw_ref(self, object_storage, audit_logger, audit_storage):
        object_storage.fail_signing = True
        resolver = AttachmentResolver(object_storage, audit_logger=audit_logger)

        assert await resolver.resolve_for_display(PUBLIC_REF) == PUBLIC_REF
        assert [e.event_type for e in audit_storage.events] == [
            AuditEventType.ATTACHMENT_RESOLUTION_FAILED
        ]

    @pytest.mark.asyncio
    async def test_missing_object_returns_raw_ref(self, object_storage):
        resolver = AttachmentResolver(object_storage)
        assert await resolver.resolve_for_display(PUBLIC_REF) == PUBLIC_REF

    @pytest.mark.asyncio
    async def test_custom_ttl(self, object_storage):
        object_storage.files["user-1/1700000000000.png"] = b"data"
        resolver = AttachmentResolver(object_storage, ttl_seconds=60)
        url = await resolver.resolve_for_display(PUBLIC_REF)
        assert url.endswith("expires_in=60")


class TestReceiptUploader:
    """Tests for receipt validation and upload."""

    def test_file_extension(self):
        assert file_extension("Scan.PDF") == "pdf"
        assert file_extension("noext") == ""

    def test_build_path(self):
        assert ReceiptUploader.build_path("user-1", "png", now=1700000000.5) == "user-1/1700000000500.png"

    def test_rejects_unsupported_extension(self, object_storage, app_settings):
        uploader = ReceiptUploader(object_storage, app_settings)
        with pytest.raises(ReceiptValidationError):
            uploader.validate("receipt.exe", b"MZ")

    def test_rejects_empty_file(self, object_storage, app_settings):
        uploader = ReceiptUploader(object_storage, app_settings)
        with pytest.raises(ReceiptValidationError):
            uploader.validate("receipt.png", b"")

    def test_rejects_oversized_file(self, object_storage, app_settings):
        uploader = ReceiptUploader(object_storage, app_settings)
        with pytest.raises(ReceiptValidationError):
            uploader.validate("receipt.pdf", b"%PDF" + b"0" * (1024 * 1024))

    def test_rejects_corrupt_image(self, object_storage, app_settings):
        uploader = ReceiptUploader(object_storage, app_settings)
        with pytest.raises(ReceiptValidationError):
            uploader.validate("receipt.png", b"definitely not a png")

    def test_rejects_fake_pdf(self, object_storage, app_settings):
        uploader = ReceiptUploader(object_storage, app_settings)
        with pytest.raises(ReceiptValidationError):
            uploader.validate("receipt.pdf", b"hello")

    def test_accepts_valid_files(self, object_storage, app_settings):
        uploader = ReceiptUploader(object_storage, app_settings)
        assert uploader.validate("receipt.PNG", png_bytes()) == "png"
        assert uploader.validate("receipt.pdf", b"%PDF-1.7\n...") == "pdf"

    @pytest.mark.asyncio
    async def test_upload_returns_public_url(self, object_storage, app_settings):
        uploader = ReceiptUploader(object_storage, app_settings)

        url = await uploader.upload("user-1", "lunch.png", png_bytes())

        [path] = object_storage.files
        assert path.startswith("user-1/") and path.endswith(".png")
        assert url == f"https://storage.local/public/receipts/{path}"

    @pytest.mark.asyncio
    async def test_upload_failure_wrapped(self, object_storage, app_settings):
        uploader = ReceiptUploader(object_storage, app_settings)
        with patch.object(ReceiptUploader, "build_path", return_value="user-1/1.pdf"):
            await uploader.upload("user-1", "a.pdf", b"%PDF-1.4")
            with pytest.raises(ReceiptUploadError):
                await uploader.upload("user-1", "b.pdf", b"%PDF-1.4")


class TestCloudinaryReceiptStorage:
    """Tests for the Cloudinary adapter (SDK mocked)."""

    @pytest.fixture
    def cloudinary_settings(self):
        return CloudinarySettings(cloud_name="demo", api_key="key", api_secret="secret")

    def test_split_path(self):
        assert split_path("user-1/1700.pdf") == ("user-1/1700", "pdf")
        assert split_path("user-1/noext") == ("user-1/noext", "")

    def test_resource_type(self):
        assert resource_type_for("pdf") == "image"
        assert resource_type_for("png") == "image"
        assert resource_type_for("zip") == "raw"

    @pytest.mark.asyncio
    async def test_upload_uses_bucket_folder(self, cloudinary_settings):
        storage = CloudinaryReceiptStorage(folder="receipts", settings=cloudinary_settings)
        with patch("cloudinary.uploader.upload") as upload:
            await storage.upload("user-1/1700.png", b"data", "image/png")

        upload.assert_called_once()
        assert upload.call_args.kwargs["public_id"] == "receipts/user-1/1700"
        assert upload.call_args.kwargs["resource_type"] == "image"

    @pytest.mark.asyncio
    async def test_signed_url_expires(self, cloudinary_settings):
        storage = CloudinaryReceiptStorage(folder="receipts", settings=cloudinary_settings)
        with patch("cloudinary.utils.private_download_url", return_value="https://signed") as sign:
            url = await storage.signed_url("user-1/1700.pdf", 3600)

        assert url == "https://signed"
        args, kwargs = sign.call_args
        assert args == ("receipts/user-1/1700", "pdf")
        assert kwargs["expires_at"] > 3600

    @pytest.mark.asyncio
    async def test_public_url_contains_bucket_path(self, cloudinary_settings):
        """Test that the resolver can find the path again in a stored URL."""
        storage = CloudinaryReceiptStorage(folder="receipts", settings=cloudinary_settings)

        url = await storage.public_url("user-1/1700.png")

        assert AttachmentResolver(storage).storage_path(url) == "user-1/1700.png"

    @pytest.mark.asyncio
    async def test_upload_failure_audited(self, cloudinary_settings, audit_logger, audit_storage):
        storage = CloudinaryReceiptStorage(
            folder="receipts",
            settings=cloudinary_settings,
            audit_logger=audit_logger,
        )
        upload_once = CloudinaryReceiptStorage.upload.retry_with(stop=stop_after_attempt(1))

        with patch("cloudinary.uploader.upload", side_effect=cloudinary.exceptions.Error("Invalid signature")):
            with pytest.raises(ObjectStorageError, match="Invalid signature"):
                await upload_once(storage, "user-1/1700.png", b"data", "image/png")

        [event] = audit_storage.events
        assert event.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert event.details == {"service": "cloudinary"}
        assert event.error_message == "Invalid signature"
