"""Utility modules for Supplier Catalog Engine."""

from .export import Exporter
from .mock_data import get_mock_catalog_page, get_mock_product_detail

__all__ = [
    "Exporter",
    "get_mock_catalog_page",
    "get_mock_product_detail",
]
