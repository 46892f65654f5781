"""Tests for environment-driven configuration."""

import pytest
from decimal import Decimal

from expense_tracker.config import (
    AppSettings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestAppSettings:
    """Tests for application tunables."""

    def test_defaults(self):
        settings = AppSettings()
        assert settings.receipt_backend == "supabase"
        assert settings.signed_url_ttl_seconds == 7 * 24 * 60 * 60
        assert settings.reference_currency == "USD"
        assert settings.currency_rates["EUR"] == Decimal("1.09")
        assert settings.supported_formats_list == ["pdf", "png", "jpg", "jpeg"]

    def test_upload_size_in_bytes(self):
        assert AppSettings(max_upload_size_mb=2).max_upload_size_bytes == 2 * 1024 * 1024

    def test_rates_upper_cased(self):
        settings = AppSettings(currency_rates={"eur": Decimal("1.1")})
        assert settings.currency_rates == {"EUR": Decimal("1.1")}

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            AppSettings(currency_rates={"EUR": Decimal("-1")})

    def test_unknown_receipt_backend_rejected(self):
        with pytest.raises(ValueError):
            AppSettings(receipt_backend="s3")

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("RECEIPT_BACKEND", "cloudinary")
        monkeypatch.setenv("SIGNED_URL_TTL_SECONDS", "3600")
        settings = AppSettings()
        assert settings.receipt_backend == "cloudinary"
        assert settings.signed_url_ttl_seconds == 3600


class TestSupabaseSettings:
    def test_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "anon-key")
        monkeypatch.setenv("SUPABASE_RECEIPTS_BUCKET", "bills")
        settings = SupabaseSettings()
        assert settings.url == "https://project.supabase.co"
        assert settings.receipts_bucket == "bills"
        assert settings.expenses_table == "expenses"


class TestValidateAllSettings:
    def test_reports_missing_supabase(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_KEY", raising=False)
        results = validate_all_settings()
        assert results["supabase"] is False
        assert "supabase_error" in results
        assert results["app"] is True
        assert "cloudinary" not in results

    def test_cloudinary_checked_when_selected(self, monkeypatch):
        monkeypatch.setenv("RECEIPT_BACKEND", "cloudinary")
        monkeypatch.delenv("CLOUDINARY_CLOUD_NAME", raising=False)
        results = validate_all_settings()
        assert results["cloudinary"] is False
