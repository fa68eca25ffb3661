"""Map raw catalog payloads into priced candidates."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from .matcher import parse_variant_label
from .models import CandidateMetrics, JobItem, VariantCandidate
from .pricing import PricingEngine, PricingRuleSource, detect_anomalies
from .shipping import ShippingCalculator

if TYPE_CHECKING:
    from .config import Settings

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


class CandidateMappingError(Exception):
    """Raised when a catalog payload cannot be mapped to a candidate."""

    pass


def to_decimal(value: Any) -> Decimal | None:
    """Parse a catalog number ("12.5", 12.5, "3.20 -- 5.60") into a Decimal.

    Price ranges yield their first (lowest) figure.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    found = _NUMBER_RE.search(str(value))
    if not found:
        return None
    try:
        return Decimal(found.group(0))
    except InvalidOperation:
        return None


def _to_int(value: Any) -> int | None:
    number = to_decimal(value)
    return int(number) if number is not None else None


def product_identifier(raw: dict[str, Any]) -> str:
    """Supplier product id from a listing or detail payload ("" if absent)."""
    return str(raw.get("pid") or raw.get("productId") or raw.get("id") or "").strip()


class CandidateMapper:
    """Turns catalog detail payloads into JobItems with per-variant economics."""

    def __init__(self, settings: Settings, pricing: PricingEngine | None = None) -> None:
        self.settings = settings
        self.pricing = pricing or PricingEngine(settings)
        self.shipping = ShippingCalculator(settings)

    def map_item(
        self,
        detail: dict[str, Any],
        rules: PricingRuleSource | None = None,
        fallback_id: str = "",
    ) -> JobItem:
        """Map one product detail payload and price every variant."""
        if not isinstance(detail, dict):
            raise CandidateMappingError(f"Expected a product object, got {type(detail).__name__}")

        product_id = product_identifier(detail) or fallback_id
        if not product_id:
            raise CandidateMappingError("Product payload has no identifier")

        name = str(detail.get("productNameEn") or detail.get("productName") or detail.get("name") or "")
        category = str(detail.get("categoryName") or detail.get("categoryId") or "")

        raw_variants = detail.get("variants")
        if raw_variants is None and isinstance(detail.get("productSku"), list):
            raw_variants = detail["productSku"]
        if not raw_variants:
            # Product without variant rows is sold as a single variant
            raw_variants = [
                {
                    "vid": product_id,
                    "variantSku": detail.get("productSku") if isinstance(detail.get("productSku"), str) else "",
                    "variantKey": "",
                    "variantSellPrice": detail.get("sellPrice"),
                    "variantWeight": detail.get("productWeight"),
                    "inventoryNum": detail.get("inventoryNum") or detail.get("stock"),
                }
            ]
        if not isinstance(raw_variants, list):
            raise CandidateMappingError(f"Variants for {product_id} are not a list")

        variants = [self.map_variant(v, category, rules) for v in raw_variants]

        return JobItem(
            supplier_product_id=product_id,
            name=name,
            category=category,
            metrics=self.compute_metrics(variants),
            variants=variants,
            raw=detail,
        )

    def map_variant(
        self,
        raw: dict[str, Any],
        category: str | None,
        rules: PricingRuleSource | None,
    ) -> VariantCandidate:
        """Map and price one variant payload."""
        if not isinstance(raw, dict):
            raise CandidateMappingError(f"Expected a variant object, got {type(raw).__name__}")
        key = str(raw.get("variantKey") or raw.get("variantNameEn") or "")
        parsed = parse_variant_label(key)
        variant = VariantCandidate(
            variant_id=str(raw.get("vid") or raw.get("variantId") or ""),
            sku=str(raw.get("variantSku") or raw.get("cjSku") or raw.get("sku") or ""),
            variant_key=key,
            size=raw.get("size") or parsed.size,
            color=raw.get("color") or parsed.color,
            cost_foreign=to_decimal(raw.get("variantSellPrice", raw.get("price"))),
            stock=max(0, _to_int(raw.get("inventoryNum", raw.get("stock"))) or 0),
            weight_grams=_to_int(raw.get("variantWeight", raw.get("weightGrams"))),
            length_cm=to_decimal(raw.get("variantLength", raw.get("lengthCm"))),
            width_cm=to_decimal(raw.get("variantWidth", raw.get("widthCm"))),
            height_cm=to_decimal(raw.get("variantHeight", raw.get("heightCm"))),
        )
        if variant.weight_grams is not None and variant.weight_grams < 0:
            variant.weight_grams = 0

        shipping = self.shipping.calculate(
            variant.weight_grams, variant.length_cm, variant.width_cm, variant.height_cm
        )
        variant.shipping_foreign = shipping.cost_foreign
        variant.billed_weight_kg = shipping.billed_weight_kg

        if variant.cost_foreign is not None and variant.cost_foreign > 0:
            quote = self.pricing.compute_retail(
                variant.cost_foreign, shipping.cost_foreign, category, rules
            )
            variant.retail_local = quote.retail_local
            variant.landed_local = quote.breakdown.landed.quantize(Decimal("0.01"))
            variant.anomalies = [a.code for a in detect_anomalies(shipping, quote)]
        return variant

    @staticmethod
    def compute_metrics(variants: list[VariantCandidate]) -> CandidateMetrics:
        """Aggregate stock and cheapest prices across variants."""
        priced = [v.retail_local for v in variants if v.retail_local is not None]
        costs = [v.cost_foreign for v in variants if v.cost_foreign is not None and v.cost_foreign > 0]
        return CandidateMetrics(
            stock_sum=sum(v.stock for v in variants),
            min_retail_local=min(priced) if priced else None,
            min_cost_foreign=min(costs) if costs else None,
            variant_count=len(variants),
            priced_variant_count=len(priced),
        )
