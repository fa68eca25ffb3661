"""Shipping cost calculation for Supplier Catalog Engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import Settings


class WeightBasis(str, Enum):
    """Which weight the carrier bills on."""

    ACTUAL = "actual"
    VOLUMETRIC = "volumetric"


@dataclass
class ShippingResult:
    """Result of shipping cost calculation."""

    cost_foreign: Decimal
    actual_weight_kg: Decimal
    volumetric_weight_kg: Decimal
    billed_weight_kg: Decimal
    basis: WeightBasis
    extrapolated: bool = False
    notes: list[str] = field(default_factory=list)


class ShippingCalculator:
    """Calculates shipping costs from actual and volumetric weight."""

    WEIGHT_PLACES = Decimal("0.001")
    MONEY_PLACES = Decimal("0.01")

    def __init__(self, settings: Settings) -> None:
        """Initialize with settings."""
        self.settings = settings
        self.shipping_config = settings.shipping

    def volumetric_weight(
        self,
        length_cm: Decimal | None,
        width_cm: Decimal | None,
        height_cm: Decimal | None,
    ) -> Decimal:
        """L x W x H / divisor, with default parcel dimensions for missing sides."""
        cfg = self.shipping_config
        length = length_cm if length_cm is not None else cfg.default_length_cm
        width = width_cm if width_cm is not None else cfg.default_width_cm
        height = height_cm if height_cm is not None else cfg.default_height_cm
        volume = length * width * height
        return (volume / cfg.volumetric_divisor).quantize(self.WEIGHT_PLACES, ROUND_HALF_UP)

    def actual_weight(self, weight_grams: int | Decimal | None) -> Decimal:
        """Actual weight in kg, floored at the minimum billable weight."""
        cfg = self.shipping_config
        if weight_grams is None:
            return cfg.default_weight_kg
        kg = Decimal(weight_grams) / Decimal("1000")
        return max(cfg.min_billable_weight_kg, kg)

    def cost_for_weight(self, billed_kg: Decimal) -> tuple[Decimal, bool]:
        """Look up the tier price, extrapolating past the heaviest tier.

        Returns (cost, extrapolated).
        """
        tiers = self.shipping_config.tiers
        if not tiers:
            return Decimal("0"), False

        for tier in tiers:
            if billed_kg <= tier.max_weight_kg:
                return tier.cost_foreign, False

        last = tiers[-1]
        prev_kg = tiers[-2].max_weight_kg if len(tiers) > 1 else Decimal("0")
        prev_cost = tiers[-2].cost_foreign if len(tiers) > 1 else Decimal("0")
        per_kg = (last.cost_foreign - prev_cost) / max(last.max_weight_kg - prev_kg, Decimal("1"))
        extra_kg = billed_kg - last.max_weight_kg
        cost = last.cost_foreign + per_kg * extra_kg
        return cost.quantize(self.MONEY_PLACES, ROUND_HALF_UP), True

    def calculate(
        self,
        weight_grams: int | Decimal | None = None,
        length_cm: Decimal | None = None,
        width_cm: Decimal | None = None,
        height_cm: Decimal | None = None,
    ) -> ShippingResult:
        """Calculate shipping cost in the supplier's currency."""
        notes: list[str] = []
        if weight_grams is None:
            notes.append("Weight unknown, using default parcel weight")
        if None in (length_cm, width_cm, height_cm):
            notes.append("Dimensions incomplete, using default parcel size")

        actual = self.actual_weight(weight_grams)
        volumetric = self.volumetric_weight(length_cm, width_cm, height_cm)
        if volumetric > actual:
            billed, basis = volumetric, WeightBasis.VOLUMETRIC
        else:
            billed, basis = actual, WeightBasis.ACTUAL
        billed = billed.quantize(self.WEIGHT_PLACES, ROUND_HALF_UP)

        cost, extrapolated = self.cost_for_weight(billed)
        if extrapolated:
            notes.append(f"Billed weight {billed}kg exceeds the tier matrix, cost extrapolated")

        return ShippingResult(
            cost_foreign=cost,
            actual_weight_kg=actual,
            volumetric_weight_kg=volumetric,
            billed_weight_kg=billed,
            basis=basis,
            extrapolated=extrapolated,
            notes=notes,
        )
