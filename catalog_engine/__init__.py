"""Supplier Catalog Engine: resumable catalog jobs, retail pricing and variant matching."""

__version__ = "1.0.0"
