"""Catalog workflows built on top of a ModelRepository."""
