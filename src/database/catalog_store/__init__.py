"""App and user catalog backed by MongoDB."""

from database.catalog_store.catalog_manager import CatalogManager

__all__ = ["CatalogManager"]
