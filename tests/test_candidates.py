"""Tests for mapping catalog payloads into priced candidates."""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import make_detail

from catalog_engine.core.candidates import (
    CandidateMapper,
    CandidateMappingError,
    product_identifier,
    to_decimal,
)
from catalog_engine.core.config import Settings
from catalog_engine.core.models import PricingRule, VariantCandidate
from catalog_engine.core.pricing import PricingRuleSet


@pytest.fixture
def mapper(settings: Settings) -> CandidateMapper:
    return CandidateMapper(settings)


class TestHelpers:
    """Tests for payload helpers."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("12.5", Decimal("12.5")),
            (12.5, Decimal("12.5")),
            (7, Decimal("7")),
            ("3.20 -- 5.60", Decimal("3.20")),
            ("$4.99", Decimal("4.99")),
            ("n/a", None),
            (None, None),
            (True, None),
        ],
    )
    def test_to_decimal(self, value: object, expected: Decimal | None) -> None:
        assert to_decimal(value) == expected

    def test_product_identifier(self) -> None:
        assert product_identifier({"pid": " P1 "}) == "P1"
        assert product_identifier({"productId": "P2"}) == "P2"
        assert product_identifier({"name": "no id"}) == ""


class TestMapItem:
    """Tests for CandidateMapper.map_item."""

    def test_maps_variants(self, mapper: CandidateMapper) -> None:
        detail = make_detail("P1", cost="10", variant_keys=("Black-M", "White-XXL"))

        item = mapper.map_item(detail)

        assert item.supplier_product_id == "P1"
        assert item.name == "Product P1"
        assert item.category == "Accessories"
        assert [v.variant_id for v in item.variants] == ["P1-V0", "P1-V1"]
        assert item.variants[1].size == "2xl"
        assert item.variants[1].color == "white"
        assert item.raw is detail

    def test_prices_each_variant(self, mapper: CandidateMapper) -> None:
        item = mapper.map_item(make_detail("P1", cost="10"))
        variant = item.variants[0]

        assert variant.shipping_foreign == Decimal("5.00")
        assert variant.billed_weight_kg == Decimal("0.300")
        assert variant.retail_local == Decimal("149")
        assert variant.landed_local == Decimal("66.56")

    def test_metrics(self, mapper: CandidateMapper) -> None:
        detail = make_detail("P1", variant_keys=("Black-M", "Black-L"))
        detail["variants"][0]["variantSellPrice"] = "30"
        detail["variants"][1]["inventoryNum"] = -5

        item = mapper.map_item(detail)

        assert item.metrics.variant_count == 2
        assert item.metrics.priced_variant_count == 2
        assert item.metrics.stock_sum == 10
        assert item.metrics.min_cost_foreign == Decimal("10")
        assert item.metrics.min_retail_local == Decimal("149")

    def test_unpriced_variant(self, mapper: CandidateMapper) -> None:
        detail = make_detail("P1", variant_keys=("Black-M", "Black-L"))
        detail["variants"][1]["variantSellPrice"] = None

        item = mapper.map_item(detail)

        assert item.variants[1].retail_local is None
        assert item.metrics.priced_variant_count == 1

    def test_product_without_variants(self, mapper: CandidateMapper) -> None:
        detail = {"pid": "P9", "productNameEn": "Mug", "sellPrice": "4.50", "productWeight": 350, "inventoryNum": 12}

        item = mapper.map_item(detail)

        assert len(item.variants) == 1
        variant = item.variants[0]
        assert variant.variant_id == "P9"
        assert variant.cost_foreign == Decimal("4.50")
        assert variant.weight_grams == 350
        assert variant.stock == 12
        assert variant.retail_local is not None

    def test_product_sku_list_as_variants(self, mapper: CandidateMapper) -> None:
        detail = {
            "pid": "P3",
            "productSku": [{"vid": "A", "variantKey": "Red-S", "variantSellPrice": 5}],
        }
        item = mapper.map_item(detail)
        assert [v.variant_id for v in item.variants] == ["A"]

    def test_fallback_identifier(self, mapper: CandidateMapper) -> None:
        item = mapper.map_item({"productNameEn": "Nameless"}, fallback_id="LISTED-1")
        assert item.supplier_product_id == "LISTED-1"

    def test_category_rule_applies(self, mapper: CandidateMapper, category_rule: PricingRule) -> None:
        rules = PricingRuleSet([category_rule])

        shoes = mapper.map_item(make_detail("P1", cost="30", category="Shoes"), rules)
        bags = mapper.map_item(make_detail("P2", cost="30", category="Bags"), rules)

        # landed 155.31: 60% margin snaps to 299, the built-in 40% to 249
        assert shoes.variants[0].retail_local == Decimal("299")
        assert bags.variants[0].retail_local == Decimal("249")

    @pytest.mark.parametrize(
        "detail",
        [
            ["not", "a", "dict"],
            {"productNameEn": "No id anywhere"},
            {"pid": "P1", "variants": "Black-M"},
            {"pid": "P1", "variants": ["Black-M"]},
        ],
    )
    def test_malformed_payloads(self, mapper: CandidateMapper, detail: object) -> None:
        with pytest.raises(CandidateMappingError):
            mapper.map_item(detail)


class TestComputeMetrics:
    """Tests for metric aggregation."""

    def test_empty(self) -> None:
        metrics = CandidateMapper.compute_metrics([])
        assert metrics.variant_count == 0
        assert metrics.min_retail_local is None
        assert metrics.min_cost_foreign is None

    def test_ignores_non_positive_costs(self) -> None:
        variants = [
            VariantCandidate(cost_foreign=Decimal("0"), stock=3),
            VariantCandidate(cost_foreign=Decimal("8"), retail_local=Decimal("99"), stock=2),
        ]
        metrics = CandidateMapper.compute_metrics(variants)
        assert metrics.min_cost_foreign == Decimal("8")
        assert metrics.min_retail_local == Decimal("99")
        assert metrics.stock_sum == 5
