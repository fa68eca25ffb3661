"""Configuration management for Supplier Catalog Engine.

Settings come from three layers: built-in defaults, ``settings.json`` in the
config directory, and ``CATALOG_*`` environment variables (including the
``.env`` file, which is where the access token belongs).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from decimal import Decimal
from pathlib import Path

from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

TRUTHY = ("true", "1", "yes", "on")


def get_config_dir() -> Path:
    """~/.catalog-engine, created on demand."""
    path = Path.home() / ".catalog-engine"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    path = get_config_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    return get_data_dir() / "catalog.db"


def settings_file() -> Path:
    return get_config_dir() / "settings.json"


class ShippingTierConfig(BaseModel):
    """One weight band of the shipping matrix."""

    max_weight_kg: Decimal
    cost_foreign: Decimal


def _default_tiers() -> list[ShippingTierConfig]:
    return [
        ShippingTierConfig(max_weight_kg=Decimal("0.5"), cost_foreign=Decimal("5.00")),
        ShippingTierConfig(max_weight_kg=Decimal("1.0"), cost_foreign=Decimal("7.00")),
        ShippingTierConfig(max_weight_kg=Decimal("1.5"), cost_foreign=Decimal("9.00")),
        ShippingTierConfig(max_weight_kg=Decimal("2.0"), cost_foreign=Decimal("11.00")),
        ShippingTierConfig(max_weight_kg=Decimal("3.0"), cost_foreign=Decimal("15.00")),
        ShippingTierConfig(max_weight_kg=Decimal("5.0"), cost_foreign=Decimal("22.00")),
    ]


class ShippingConfig(BaseModel):
    """Shipping cost configuration (weights in kg, dimensions in cm)."""

    volumetric_divisor: Decimal = Decimal("6000")
    default_length_cm: Decimal = Decimal("25")
    default_width_cm: Decimal = Decimal("20")
    default_height_cm: Decimal = Decimal("3")
    default_weight_kg: Decimal = Decimal("0.3")
    min_billable_weight_kg: Decimal = Decimal("0.05")
    tiers: list[ShippingTierConfig] = Field(default_factory=_default_tiers)

    @field_validator("tiers")
    @classmethod
    def _sort_tiers(cls, tiers: list[ShippingTierConfig]) -> list[ShippingTierConfig]:
        return sorted(tiers, key=lambda t: t.max_weight_kg)


class PricingConfig(BaseModel):
    """Pricing constants and the built-in fallback rule."""

    exchange_rate: Decimal = Decimal("3.75")  # foreign -> local
    default_shipping_foreign: Decimal = Decimal("5")

    # Built-in rule, used when neither a category nor a default rule exists
    margin_percent: Decimal = Decimal("40")
    min_profit: Decimal = Decimal("35")
    vat_percent: Decimal = Decimal("15")
    payment_fee_percent: Decimal = Decimal("2.9")
    smart_rounding_enabled: bool = True
    rounding_targets: list[Decimal] = Field(
        default_factory=lambda: [Decimal(v) for v in ("49", "79", "99", "149", "199", "249", "299")]
    )


class JobConfig(BaseModel):
    """Job engine configuration."""

    page_size: int = 20
    max_pages_per_unit: int = 5
    max_steps: int = 2000
    detail_concurrency: int = 5
    seen_cache_size: int = 500

    @field_validator("page_size")
    @classmethod
    def _clamp_page_size(cls, value: int) -> int:
        return clamp_page_size(value)

    @field_validator("max_pages_per_unit")
    @classmethod
    def _clamp_max_pages(cls, value: int) -> int:
        return clamp_max_pages(value)


class ApiConfig(BaseModel):
    """Supplier catalog API configuration."""

    base_url: str = "https://developers.cjdropshipping.com/api2.0/v1"
    access_token: str = ""
    mock_mode: bool = False
    request_timeout_seconds: int = 25
    requests_per_second: float = 2.0
    burst: int = 4

    def apply_secrets(self, values: Mapping[str, str | None]) -> None:
        """Take the token, base URL and mock switch from .env entries."""
        if values.get("CATALOG_ACCESS_TOKEN"):
            self.access_token = values["CATALOG_ACCESS_TOKEN"]
        if values.get("CATALOG_BASE_URL"):
            self.base_url = values["CATALOG_BASE_URL"]
        mock = values.get("CATALOG_MOCK_MODE")
        if mock:
            self.mock_mode = mock.strip().lower() in TRUTHY


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=str(get_config_dir() / ".env"),
        env_file_encoding="utf-8",
        env_prefix="CATALOG_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    api: ApiConfig = Field(default_factory=ApiConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    shipping: ShippingConfig = Field(default_factory=ShippingConfig)
    jobs: JobConfig = Field(default_factory=JobConfig)

    log_level: str = "INFO"
    debug_mode: bool = False

    def save(self) -> None:
        """Write settings.json. The access token stays in .env."""
        path = settings_file()
        # JSON mode renders Decimals as strings, so amounts load back exactly
        payload = self.model_dump(mode="json", exclude={"api": {"access_token"}})
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.debug(f"Settings saved to {path}")

    @classmethod
    def load(cls) -> "Settings":
        """Defaults, overlaid by settings.json, overlaid by secrets from .env."""
        path = settings_file()
        settings = cls()
        if path.exists():
            try:
                settings = cls.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable settings file {path}: {e}")

        env_path = get_config_dir() / ".env"
        if env_path.exists():
            settings.api.apply_secrets(dotenv_values(env_path))
        return settings


def clamp_page_size(value: int) -> int:
    """Clamp a requested page size into 1..50."""
    return max(1, min(50, int(value)))


def clamp_max_pages(value: int) -> int:
    """Clamp a requested pages-per-unit limit into 1..40."""
    return max(1, min(40, int(value)))


_settings: Settings | None = None


def get_settings() -> Settings:
    """The process-wide settings, loaded on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_settings() -> Settings:
    """Discard the cached settings and load them again."""
    global _settings
    _settings = None
    return get_settings()
