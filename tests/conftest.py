"""Pytest configuration and fixtures."""

from __future__ import annotations

import threading
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

from catalog_engine.core.config import Settings
from catalog_engine.core.models import PricingRule, RuleScope, SupplierVariant, WorkUnit
from catalog_engine.db.session import close_database, configure_database, init_database


@pytest.fixture
def settings() -> Settings:
    """Create default settings for testing."""
    s = Settings()
    s.api.mock_mode = True
    return s


@pytest.fixture(autouse=True)
def database(tmp_path: Path):
    """Every test gets its own SQLite file."""
    configure_database(f"sqlite:///{tmp_path / 'test.db'}")
    init_database(use_migrations=False)
    yield
    configure_database(None)


class FakeCatalog:
    """In-memory catalog source.

    ``pages`` maps a unit value to its listing pages (page 1 first); a page
    may be an exception instance, which is raised instead. ``details`` maps a
    product id to its detail payload or an exception.
    """

    def __init__(
        self,
        pages: dict[str, list[Any]] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.pages = pages or {}
        self.details = details or {}
        self.page_calls: list[tuple[str, int, int]] = []
        self.detail_calls: list[str] = []
        self._lock = threading.Lock()

    def list_page(self, unit: WorkUnit, page_number: int, page_size: int) -> list[dict[str, Any]]:
        self.page_calls.append((unit.value, page_number, page_size))
        pages = self.pages.get(unit.value, [])
        if page_number > len(pages):
            return []
        page = pages[page_number - 1]
        if isinstance(page, Exception):
            raise page
        return page

    def fetch_detail(self, product_id: str) -> dict[str, Any]:
        with self._lock:
            self.detail_calls.append(product_id)
        detail = self.details.get(product_id)
        if isinstance(detail, Exception):
            raise detail
        if detail is None:
            return make_detail(product_id)
        return detail


def listing(*product_ids: str) -> list[dict[str, Any]]:
    """A listing page with the given product ids."""
    return [{"pid": pid, "productNameEn": f"Product {pid}"} for pid in product_ids]


def make_detail(
    product_id: str,
    cost: str = "10",
    category: str = "Accessories",
    variant_keys: tuple[str, ...] = ("Black-M",),
) -> dict[str, Any]:
    """A detail payload with one variant per key."""
    return {
        "pid": product_id,
        "productNameEn": f"Product {product_id}",
        "categoryName": category,
        "variants": [
            {
                "vid": f"{product_id}-V{i}",
                "variantSku": f"SKU-{product_id}-{i}",
                "variantKey": key,
                "variantSellPrice": cost,
                "variantWeight": 300,
                "variantLength": 20,
                "variantWidth": 15,
                "variantHeight": 3,
                "inventoryNum": 10,
            }
            for i, key in enumerate(variant_keys)
        ],
    }


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def category_rule() -> PricingRule:
    """A rule with a different margin for one category."""
    return PricingRule(
        scope=RuleScope.CATEGORY,
        category="Shoes",
        margin_percent=Decimal("60"),
        min_profit=Decimal("50"),
        vat_percent=Decimal("15"),
        payment_fee_percent=Decimal("2.9"),
        smart_rounding_enabled=True,
        rounding_targets=[Decimal(v) for v in ("99", "149", "199", "299")],
    )


@pytest.fixture
def default_rule() -> PricingRule:
    return PricingRule(
        scope=RuleScope.DEFAULT,
        margin_percent=Decimal("30"),
        min_profit=Decimal("20"),
        smart_rounding_enabled=False,
    )


@pytest.fixture
def apparel_variants() -> list[SupplierVariant]:
    """Colour x size variants of one garment."""
    return [
        SupplierVariant(variant_id="v1", sku="SKU1", variant_key="Black-M", display_name="Black M"),
        SupplierVariant(variant_id="v2", sku="SKU2", variant_key="Black-XL", display_name="Black XL"),
        SupplierVariant(variant_id="v3", sku="SKU3", variant_key="White-M", display_name="White M"),
        SupplierVariant(
            variant_id="v4",
            sku="SKU4",
            variant_key="Black And Silver-2XL",
            display_name="Black And Silver 2XL",
        ),
    ]
