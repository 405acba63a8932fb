"""Catalog data model and pure helpers (versions, search, changelog rules)."""
