"""Core data models for Supplier Catalog Engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from .cursors import JobParams


class JobKind(str, Enum):
    """Kinds of catalog discovery job."""

    CATALOG_FINDER = "catalog-finder"  # iterates search keywords
    CATALOG_SCANNER = "catalog-scanner"  # iterates category ids

    @classmethod
    def from_string(cls, value: str) -> "JobKind":
        """Accept either the full value or the short form ("finder", "scanner")."""
        value_lower = value.strip().lower()
        for kind in cls:
            if value_lower in (kind.value, kind.value.split("-", 1)[1]):
                return kind
        raise ValueError(f"Unknown job kind: {value}")


class JobStatus(str, Enum):
    """Job lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCESS, JobStatus.ERROR, JobStatus.CANCELED)


class UnitKind(str, Enum):
    """What a work unit searches by."""

    KEYWORD = "keyword"
    CATEGORY = "category"


@dataclass(frozen=True)
class WorkUnit:
    """One keyword or category a job pages through."""

    kind: UnitKind
    value: str


@dataclass
class JobTotals:
    """Running aggregate counts for a job."""

    candidates: int = 0
    steps: int = 0
    pages_fetched: int = 0
    pages_failed: int = 0
    details_failed: int = 0
    filtered: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "JobTotals":
        data = data or {}
        return cls(**{k: int(data.get(k, 0) or 0) for k in cls.__dataclass_fields__})


@dataclass
class Job:
    """A resumable catalog discovery task."""

    id: int | None = None
    kind: JobKind = JobKind.CATALOG_FINDER
    status: JobStatus = JobStatus.PENDING
    params: JobParams = field(default_factory=JobParams)
    totals: JobTotals = field(default_factory=JobTotals)
    created_at: datetime = field(default_factory=datetime.now)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_text: str = ""
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def units(self) -> list[WorkUnit]:
        """Keywords or category ids, depending on the job kind."""
        if self.kind == JobKind.CATALOG_SCANNER:
            return [WorkUnit(UnitKind.CATEGORY, c) for c in self.params.category_ids]
        return [WorkUnit(UnitKind.KEYWORD, k) for k in self.params.keywords]


@dataclass
class VariantCandidate:
    """One supplier variant annotated with computed economics."""

    variant_id: str = ""
    sku: str = ""
    variant_key: str = ""
    size: str | None = None
    color: str | None = None
    cost_foreign: Decimal | None = None
    shipping_foreign: Decimal | None = None
    retail_local: Decimal | None = None
    landed_local: Decimal | None = None
    billed_weight_kg: Decimal | None = None
    stock: int = 0
    weight_grams: int | None = None
    length_cm: Decimal | None = None
    width_cm: Decimal | None = None
    height_cm: Decimal | None = None
    anomalies: list[str] = field(default_factory=list)


@dataclass
class CandidateMetrics:
    """Aggregate metrics for one candidate product."""

    stock_sum: int = 0
    min_retail_local: Decimal | None = None
    min_cost_foreign: Decimal | None = None
    variant_count: int = 0
    priced_variant_count: int = 0


@dataclass
class JobItem:
    """One supplier product discovered and priced during a job."""

    id: int | None = None
    job_id: int | None = None
    supplier_product_id: str = ""
    name: str = ""
    category: str = ""
    metrics: CandidateMetrics = field(default_factory=CandidateMetrics)
    variants: list[VariantCandidate] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)


class RuleScope(str, Enum):
    """Where a pricing rule came from."""

    CATEGORY = "category"
    DEFAULT = "default"
    BUILTIN = "builtin"


@dataclass
class PricingRule:
    """Pricing rule. Percent fields hold percent numbers (40 means 40%)."""

    id: int | None = None
    scope: RuleScope = RuleScope.DEFAULT
    category: str | None = None
    margin_percent: Decimal = Decimal("40")
    min_profit: Decimal = Decimal("35")
    vat_percent: Decimal = Decimal("15")
    payment_fee_percent: Decimal = Decimal("2.9")
    smart_rounding_enabled: bool = True
    rounding_targets: list[Decimal] = field(default_factory=list)

    @property
    def has_ladder(self) -> bool:
        """True when the rounding targets can be used as a price ladder."""
        targets = self.rounding_targets
        if not targets:
            return False
        return all(a <= b for a, b in zip(targets, targets[1:]))


@dataclass
class PricingBreakdown:
    """Every intermediate of a retail price computation (local currency)."""

    exchange_rate: Decimal
    base_local: Decimal
    shipping_local: Decimal
    subtotal: Decimal
    vat_percent: Decimal
    vat: Decimal
    after_vat: Decimal
    payment_fee_percent: Decimal
    payment_fee: Decimal
    landed: Decimal
    margin: Decimal
    pre_floor_retail: Decimal
    rounded_retail: Decimal

    def to_dict(self) -> dict[str, float]:
        return {k: float(v) for k, v in asdict(self).items()}


@dataclass
class RetailQuote:
    """Result of computing a retail price."""

    retail_local: Decimal
    margin_applied: Decimal
    breakdown: PricingBreakdown
    rule_scope: RuleScope = RuleScope.BUILTIN
    floor_applied: bool = False
    floor_met: bool = True

    @property
    def profit(self) -> Decimal:
        return self.retail_local - self.breakdown.landed

    def to_dict(self) -> dict[str, Any]:
        return {
            "retail_local": float(self.retail_local),
            "margin_applied": float(self.margin_applied),
            "rule_scope": self.rule_scope.value,
            "floor_applied": self.floor_applied,
            "floor_met": self.floor_met,
            "breakdown": self.breakdown.to_dict(),
        }


class MatchStrategy(str, Enum):
    """Which matcher strategy produced a match."""

    EXACT = "exact"
    SIZE_AND_COLOR = "size_and_color"
    SIZE_ONLY = "size_only"
    COLOR_ONLY = "color_only"
    PARTIAL = "partial"
    SINGLE_VARIANT = "single_variant"


@dataclass
class SupplierVariant:
    """A supplier variant fetched live at match time."""

    variant_id: str = ""
    sku: str = ""
    variant_key: str = ""
    display_name: str = ""
    size: str | None = None
    color: str | None = None


@dataclass(frozen=True)
class VariantMatch:
    """A confident variant match."""

    variant_id: str
    sku: str
    strategy: MatchStrategy


@dataclass
class StepResult:
    """Outcome of one job step."""

    added_count: int = 0
    done: bool = False
    advanced: bool = False


@dataclass
class RunResult:
    """Outcome of running a job to completion."""

    ok: bool = True
    steps_run: int = 0
    added_count: int = 0
    status: JobStatus = JobStatus.PENDING
    error: str = ""
