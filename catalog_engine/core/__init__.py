"""Core business logic for Supplier Catalog Engine."""

from .config import Settings, get_settings
from .cursors import (
    CursorValidationError,
    FinderCursor,
    JobParams,
    ScannerCursor,
    parse_job_params,
)
from .matcher import VariantMatcher, VariantMatchError, parse_variant_label
from .models import (
    Job,
    JobItem,
    JobKind,
    JobStatus,
    MatchStrategy,
    PricingRule,
    RetailQuote,
    RuleScope,
    SupplierVariant,
    VariantMatch,
)
from .pricing import PricingEngine, PricingRuleSet
from .shipping import ShippingCalculator

__all__ = [
    "Settings",
    "get_settings",
    "CursorValidationError",
    "FinderCursor",
    "ScannerCursor",
    "JobParams",
    "parse_job_params",
    "VariantMatcher",
    "VariantMatchError",
    "parse_variant_label",
    "Job",
    "JobItem",
    "JobKind",
    "JobStatus",
    "MatchStrategy",
    "PricingRule",
    "RetailQuote",
    "RuleScope",
    "SupplierVariant",
    "VariantMatch",
    "PricingEngine",
    "PricingRuleSet",
    "ShippingCalculator",
]
