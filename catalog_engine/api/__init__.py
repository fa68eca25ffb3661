"""Supplier catalog API client for Supplier Catalog Engine."""

from .catalog import CatalogApiError, CatalogClient, CatalogRateLimitError
from .ratelimit import RateLimitTimeout, TokenBucket

__all__ = [
    "CatalogClient",
    "CatalogApiError",
    "CatalogRateLimitError",
    "TokenBucket",
    "RateLimitTimeout",
]
