"""Retail pricing engine for Supplier Catalog Engine.

Converts a supplier cost in foreign currency into a localized retail price:

    base + shipping -> + VAT -> + payment fee = landed -> + margin = retail

The retail price is then rounded (ladder snap or ceiling), checked against
the rule's minimum profit, and rounded again if the floor forced an increase.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Protocol

from .models import PricingBreakdown, PricingRule, RetailQuote, RuleScope

if TYPE_CHECKING:
    from .config import Settings
    from .shipping import ShippingResult

HUNDRED = Decimal("100")
ZERO = Decimal("0")
ONE = Decimal("1")


class PricingRuleSource(Protocol):
    """Anything that can look up pricing rules."""

    def get_rule(self, category: str) -> PricingRule | None: ...

    def get_default_rule(self) -> PricingRule | None: ...


class PricingRuleSet:
    """In-memory pricing rule store."""

    def __init__(
        self,
        rules: list[PricingRule] | None = None,
        default: PricingRule | None = None,
    ) -> None:
        self._by_category: dict[str, PricingRule] = {}
        self._default = default
        for rule in rules or []:
            if rule.scope == RuleScope.DEFAULT:
                self._default = rule
            elif rule.category:
                self._by_category[rule.category.strip().lower()] = rule

    def get_rule(self, category: str) -> PricingRule | None:
        return self._by_category.get(category.strip().lower())

    def get_default_rule(self) -> PricingRule | None:
        return self._default


def smart_round(value: Decimal, targets: list[Decimal]) -> Decimal:
    """Snap up to the smallest target >= value, or the largest target."""
    for target in targets:
        if target >= value:
            return target
    return targets[-1]


def ceil_round(value: Decimal) -> Decimal:
    """Round up to the next whole unit."""
    return value.to_integral_value(rounding=ROUND_CEILING)


def _to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class PricingEngine:
    """Computes localized retail prices from supplier costs."""

    def __init__(self, settings: Settings) -> None:
        """Initialize the pricing engine."""
        self.settings = settings
        self.config = settings.pricing

    def builtin_rule(self) -> PricingRule:
        """The hardcoded fallback rule."""
        cfg = self.config
        return PricingRule(
            scope=RuleScope.BUILTIN,
            margin_percent=cfg.margin_percent,
            min_profit=cfg.min_profit,
            vat_percent=cfg.vat_percent,
            payment_fee_percent=cfg.payment_fee_percent,
            smart_rounding_enabled=cfg.smart_rounding_enabled,
            rounding_targets=list(cfg.rounding_targets),
        )

    def resolve_rule(
        self,
        category: str | None,
        rules: PricingRuleSource | None,
    ) -> PricingRule:
        """Category rule, then default rule, then built-in constants."""
        if rules is not None:
            if category:
                rule = rules.get_rule(category)
                if rule is not None:
                    return rule
            default = rules.get_default_rule()
            if default is not None:
                return default
        return self.builtin_rule()

    def round_price(self, value: Decimal, rule: PricingRule) -> Decimal:
        """Apply the rule's rounding: ladder snap when usable, else ceiling."""
        if rule.smart_rounding_enabled and rule.has_ladder:
            return smart_round(value, rule.rounding_targets)
        return ceil_round(value)

    def compute_retail(
        self,
        cost_foreign: Decimal | int | float | str,
        shipping_foreign: Decimal | int | float | str | None = None,
        category: str | None = None,
        rules: PricingRuleSource | None = None,
    ) -> RetailQuote:
        """Compute the retail price and full breakdown for one supplier cost.

        Inputs are not validated beyond defaulting a missing shipping cost.
        A cost of zero or less yields a retail price of 0; the breakdown still
        reflects the raw input.
        """
        rule = self.resolve_rule(category, rules)
        cost = _to_decimal(cost_foreign)
        if shipping_foreign is None:
            shipping = self.config.default_shipping_foreign
        else:
            shipping = _to_decimal(shipping_foreign)
        rate = self.config.exchange_rate

        base_local = cost * rate
        shipping_local = shipping * rate
        subtotal = base_local + shipping_local

        vat = subtotal * rule.vat_percent / HUNDRED
        after_vat = subtotal + vat

        payment_fee = after_vat * rule.payment_fee_percent / HUNDRED
        landed = after_vat + payment_fee

        margin = landed * rule.margin_percent / HUNDRED
        retail = landed + margin

        if cost <= ZERO:
            breakdown = PricingBreakdown(
                exchange_rate=rate,
                base_local=base_local,
                shipping_local=shipping_local,
                subtotal=subtotal,
                vat_percent=rule.vat_percent,
                vat=vat,
                after_vat=after_vat,
                payment_fee_percent=rule.payment_fee_percent,
                payment_fee=payment_fee,
                landed=landed,
                margin=margin,
                pre_floor_retail=retail,
                rounded_retail=ZERO,
            )
            return RetailQuote(
                retail_local=ZERO,
                margin_applied=rule.margin_percent,
                breakdown=breakdown,
                rule_scope=rule.scope,
                floor_applied=False,
                floor_met=False,
            )

        rounded = self.round_price(retail, rule)

        # Rounding can land under the floor, so check after rounding
        floor_applied = False
        if rounded - landed < rule.min_profit:
            floor_applied = True
            rounded = self.round_price(landed + rule.min_profit, rule)

        final = rounded.quantize(ONE, rounding=ROUND_HALF_UP)

        breakdown = PricingBreakdown(
            exchange_rate=rate,
            base_local=base_local,
            shipping_local=shipping_local,
            subtotal=subtotal,
            vat_percent=rule.vat_percent,
            vat=vat,
            after_vat=after_vat,
            payment_fee_percent=rule.payment_fee_percent,
            payment_fee=payment_fee,
            landed=landed,
            margin=margin,
            pre_floor_retail=retail,
            rounded_retail=rounded,
        )
        return RetailQuote(
            retail_local=final,
            margin_applied=rule.margin_percent,
            breakdown=breakdown,
            rule_scope=rule.scope,
            floor_applied=floor_applied,
            # A capped ladder can leave the floor unmet; flag for review
            floor_met=final - landed >= rule.min_profit,
        )

    def quote_many(
        self,
        rows: list[PriceRequest],
        rules: PricingRuleSource | None = None,
    ) -> list[tuple[str, RetailQuote]]:
        """Price a batch of rows, preserving order."""
        return [
            (
                row.key,
                self.compute_retail(row.cost_foreign, row.shipping_foreign, row.category, rules),
            )
            for row in rows
        ]


@dataclass
class PriceRequest:
    """One row of a bulk pricing request."""

    key: str
    cost_foreign: Decimal
    shipping_foreign: Decimal | None = None
    category: str | None = None


@dataclass
class PricingAnomaly:
    """Advisory pricing flag. Never changes the computed price."""

    code: str
    severity: str  # info, warn
    message: str


def detect_anomalies(shipping: ShippingResult, quote: RetailQuote) -> list[PricingAnomaly]:
    """Flag prices that deserve a second look."""
    anomalies: list[PricingAnomaly] = []
    actual = shipping.actual_weight_kg
    volumetric = shipping.volumetric_weight_kg
    billed = shipping.billed_weight_kg
    landed = quote.breakdown.landed
    retail = quote.retail_local
    shipping_local = quote.breakdown.shipping_local

    if actual > ZERO and volumetric > ZERO and volumetric / actual >= Decimal("3"):
        ratio = (volumetric / actual).quantize(Decimal("0.1"))
        anomalies.append(
            PricingAnomaly(
                "VOLUMETRIC_HEAVY",
                "warn",
                f"Volumetric weight ({volumetric}kg) is {ratio}x actual ({actual}kg)",
            )
        )
    if retail > ZERO and retail < landed * Decimal("1.05"):
        anomalies.append(
            PricingAnomaly(
                "LOW_MARGIN",
                "warn",
                f"Retail ({retail}) is too close to landed ({landed.quantize(Decimal('0.01'))})",
            )
        )
    if not quote.floor_met and retail > ZERO:
        anomalies.append(
            PricingAnomaly(
                "FLOOR_UNMET",
                "warn",
                "Rounding ladder is capped below the minimum profit floor",
            )
        )
    if retail > ZERO and shipping_local > retail * Decimal("0.6"):
        anomalies.append(
            PricingAnomaly(
                "SHIPPING_HEAVY",
                "info",
                f"Shipping ({shipping_local.quantize(Decimal('0.01'))}) is a large fraction of retail ({retail})",
            )
        )
    if billed > Decimal("5"):
        anomalies.append(
            PricingAnomaly(
                "HEAVY_PARCEL",
                "info",
                f"Billed weight is heavy ({billed}kg)",
            )
        )
    return anomalies
