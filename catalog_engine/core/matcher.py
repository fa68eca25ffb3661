"""Variant reconciliation for Supplier Catalog Engine.

Maps a customer-facing variant label ("Black-XL", "XL / Black") back to the
supplier's variant id. Strategies are tried in order and the first confident
hit wins:

1. exact key or display name
2. parsed size and colour both agree
3. a single parsed attribute, when exactly one variant carries it
4. substring containment, when exactly one variant qualifies and it shares
   a parsed attribute with the label

Nothing confident means ``None``. The matcher never picks an arbitrary
variant from a multi-variant product.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from .models import MatchStrategy, SupplierVariant, VariantMatch

logger = logging.getLogger(__name__)

LETTER_SIZES = {
    "xxs", "2xs", "xs", "s", "m", "l", "xl", "xxl", "xxxl", "2xl", "3xl", "4xl", "5xl", "6xl",
}
SIZE_ALIASES = {"xxl": "2xl", "xxxl": "3xl", "xxs": "2xs"}
ONE_SIZE_PHRASES = ("one size", "onesize", "free size", "freesize")
ONE_SIZE = "one size"

_SPLIT_RE = re.compile(r"[\s\-/,_|]+")
_WHITESPACE_RE = re.compile(r"\s+")
_NUMERIC_SIZE_RE = re.compile(r"^\d{1,3}(\.5)?$")
# Shoe, waist and kids sizes; children's height sizes run 80-190 in steps of 5
MAX_NUMERIC_SIZE = 60
HEIGHT_SIZES = range(80, 195, 5)
_SKU_LIKE_RE = re.compile(r"^(?=.*\d)(?=.*[a-z])[a-z0-9]{6,}$")


class VariantMatchError(Exception):
    """Raised when a label cannot be resolved to exactly one supplier variant."""

    def __init__(self, label: str, candidates: int) -> None:
        super().__init__(
            f"No confident supplier variant for {label!r} among {candidates} candidate(s)"
        )
        self.label = label
        self.candidates = candidates


@dataclass(frozen=True)
class ParsedLabel:
    """Size and colour extracted from a variant label."""

    size: str | None = None
    color: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.size is None and self.color is None


def normalize(text: str | None) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text.strip().lower())


def _is_numeric_size(token: str) -> bool:
    if not _NUMERIC_SIZE_RE.match(token):
        return False
    value = float(token)
    return 0 < value <= MAX_NUMERIC_SIZE or value in HEIGHT_SIZES


def canonical_size(token: str) -> str | None:
    """Return the canonical size for a token, or None if it is not a size."""
    token = token.lower()
    if token in LETTER_SIZES:
        return SIZE_ALIASES.get(token, token)
    if _is_numeric_size(token):
        return token
    return None


def parse_variant_label(text: str | None) -> ParsedLabel:
    """Split a label into size and colour.

    The last size-like token is the size, and a letter size beats a numeric
    one. Numbers outside the size ranges ("925" silver) stay in the colour.
    Tokens that look like raw SKU codes are dropped; what remains, joined by
    spaces, is the colour.
    """
    label = normalize(text)
    if not label:
        return ParsedLabel()

    letter_size: str | None = None
    for phrase in ONE_SIZE_PHRASES:
        if phrase in label:
            letter_size = ONE_SIZE
            label = label.replace(phrase, " ")

    numeric_size: str | None = None
    color_tokens: list[str] = []
    for token in _SPLIT_RE.split(label):
        if not token:
            continue
        token_size = canonical_size(token)
        if token_size is None:
            if not _SKU_LIKE_RE.match(token):
                color_tokens.append(token)
        elif token in LETTER_SIZES:
            letter_size = token_size
        else:
            numeric_size = token_size

    color = " ".join(color_tokens) or None
    return ParsedLabel(size=letter_size or numeric_size, color=color)


def supplier_variant_from_raw(raw: dict[str, Any]) -> SupplierVariant:
    """Build a SupplierVariant from a catalog variant payload."""
    key = str(raw.get("variantKey") or raw.get("variantNameEn") or raw.get("variantName") or "")
    name = str(raw.get("variantNameEn") or raw.get("variantName") or key)
    parsed = parse_variant_label(key or name)
    return SupplierVariant(
        variant_id=str(raw.get("vid") or raw.get("variantId") or raw.get("id") or ""),
        sku=str(raw.get("variantSku") or raw.get("cjSku") or raw.get("sku") or ""),
        variant_key=key,
        display_name=name,
        size=raw.get("size") or parsed.size,
        color=raw.get("color") or parsed.color,
    )


class VariantMatcher:
    """Resolves customer variant labels to supplier variants."""

    def match(
        self,
        customer_label: str | None,
        supplier_variants: list[SupplierVariant],
    ) -> VariantMatch | None:
        """Return the confident match for a label, or None."""
        label = normalize(customer_label)
        if not label or not supplier_variants:
            return None

        for variant in supplier_variants:
            if label in (normalize(variant.variant_key), normalize(variant.display_name)):
                return self._hit(variant, MatchStrategy.EXACT)

        wanted = parse_variant_label(label)
        if wanted.is_empty:
            return None
        parsed = [(v, self._parse_variant(v)) for v in supplier_variants]

        if wanted.size and wanted.color:
            both = [v for v, p in parsed if p.size == wanted.size and p.color == wanted.color]
            if both:
                # Duplicate keys in the supplier list still point at one physical item
                return self._hit(both[0], MatchStrategy.SIZE_AND_COLOR)
        elif wanted.size:
            sized = [v for v, p in parsed if p.size == wanted.size]
            if len(sized) == 1:
                return self._hit(sized[0], MatchStrategy.SIZE_ONLY)
        elif wanted.color:
            colored = [v for v, p in parsed if p.color == wanted.color]
            if len(colored) == 1:
                return self._hit(colored[0], MatchStrategy.COLOR_ONLY)

        partial = [
            v
            for v, p in parsed
            if self._contains_either_way(label, v) and self._shares_attribute(wanted, p)
        ]
        if len(partial) == 1:
            return self._hit(partial[0], MatchStrategy.PARTIAL)

        logger.debug(f"No confident variant for {label!r} among {len(supplier_variants)} variants")
        return None

    def resolve(
        self,
        customer_label: str | None,
        supplier_variants: list[SupplierVariant],
    ) -> VariantMatch | None:
        """Like match(), plus the single-variant fallback.

        A product with exactly one supplier variant has nothing to confuse, so
        a blank or attribute-free label resolves to that variant. A label that
        names a size or colour must still agree with it.
        """
        found = self.match(customer_label, supplier_variants)
        if found is not None:
            return found
        if len(supplier_variants) == 1 and parse_variant_label(customer_label).is_empty:
            return self._hit(supplier_variants[0], MatchStrategy.SINGLE_VARIANT)
        return None

    def require_match(
        self,
        customer_label: str | None,
        supplier_variants: list[SupplierVariant],
    ) -> VariantMatch:
        """resolve() for fulfillment: no confident match is a hard stop."""
        found = self.resolve(customer_label, supplier_variants)
        if found is None:
            logger.warning(
                f"Variant unresolved for label {customer_label!r}; manual review required"
            )
            raise VariantMatchError(customer_label or "", len(supplier_variants))
        return found

    @staticmethod
    def _hit(variant: SupplierVariant, strategy: MatchStrategy) -> VariantMatch:
        return VariantMatch(variant_id=variant.variant_id, sku=variant.sku, strategy=strategy)

    @staticmethod
    def _parse_variant(variant: SupplierVariant) -> ParsedLabel:
        parsed = parse_variant_label(variant.variant_key or variant.display_name)
        size = canonical_size(variant.size) if variant.size else None
        if variant.size and normalize(variant.size) in ONE_SIZE_PHRASES:
            size = ONE_SIZE
        color = normalize(variant.color) or None
        return ParsedLabel(size=size or parsed.size, color=color or parsed.color)

    @staticmethod
    def _contains_either_way(label: str, variant: SupplierVariant) -> bool:
        for text in (normalize(variant.variant_key), normalize(variant.display_name)):
            if text and (label in text or text in label):
                return True
        return False

    @staticmethod
    def _shares_attribute(wanted: ParsedLabel, parsed: ParsedLabel) -> bool:
        """Same size, or one colour's words all appear in the other's.

        Whole words only: "tan" does not share a colour with "titanium".
        """
        if wanted.size and wanted.size == parsed.size:
            return True
        if wanted.color and parsed.color:
            wanted_words = set(wanted.color.split())
            variant_words = set(parsed.color.split())
            return wanted_words <= variant_words or variant_words <= wanted_words
        return False
