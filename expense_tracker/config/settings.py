"""
Configuration Management for Expense Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Backends (Supabase, Cloudinary) and tunables (rate table, signed URL TTL,
upload limits) are read from the environment or a .env file and validated
at startup.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CURRENCY_RATES: dict[str, Decimal] = {
    "USD": Decimal("1"),
    "EUR": Decimal("1.09"),
    "GBP": Decimal("1.27"),
    "CAD": Decimal("0.74"),
    "AUD": Decimal("0.66"),
    "JPY": Decimal("0.0067"),
}


class SupabaseSettings(BaseSettings):
    """Supabase database, realtime and storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Supabase project URL"
    )
    key: str = Field(
        ...,
        description="Supabase anon or service key"
    )
    schema_name: str = Field(
        default="public",
        description="Postgres schema holding the expenses table"
    )
    expenses_table: str = Field(
        default="expenses",
        description="Name of the expenses table"
    )
    receipts_bucket: str = Field(
        default="receipts",
        description="Storage bucket for receipt files"
    )


class CloudinarySettings(BaseSettings):
    """Cloudinary receipt storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Receipts
    receipt_backend: str = Field(
        default="supabase",
        pattern="^(supabase|cloudinary)$",
        description="Object store used for receipt files"
    )
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt file size in MB"
    )
    supported_receipt_formats: str = Field(
        default="pdf,png,jpg,jpeg",
        description="Comma-separated list of accepted receipt extensions"
    )
    signed_url_ttl_seconds: int = Field(
        default=604800,
        ge=60,
        description="Lifetime of signed receipt URLs (one week)"
    )

    # Currency normalization
    reference_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency every amount is normalized into"
    )
    currency_rates: dict[str, Decimal] = Field(
        default_factory=lambda: dict(DEFAULT_CURRENCY_RATES),
        description="Static rate table: units of reference currency per unit"
    )

    # Views
    default_range_months: int = Field(
        default=1,
        ge=0,
        le=120,
        description="Default date range shown, in months back from today"
    )
    sync_subscribe_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts to open a live update channel before degrading"
    )

    @field_validator('currency_rates')
    @classmethod
    def validate_currency_rates(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        """Upper-case codes and reject negative rates."""
        rates = {}
        for code, rate in v.items():
            if rate < 0:
                raise ValueError(f"Currency rate for {code} cannot be negative")
            rates[code.strip().upper()] = rate
        return rates

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported receipt formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_receipt_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a partial configuration
    # (e.g. no Cloudinary account) still works.

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an extra
    "<name>_error" entry for every failing section.
    """
    results = {}

    settings = get_settings()

    sections = {
        "supabase": lambda: settings.supabase,
        "app": lambda: settings.app,
    }
    if settings.app.receipt_backend == "cloudinary":
        sections["cloudinary"] = lambda: settings.cloudinary

    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
