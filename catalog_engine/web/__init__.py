"""JSON API for Supplier Catalog Engine."""
