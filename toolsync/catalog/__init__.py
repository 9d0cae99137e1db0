"""
Catalog management layer.
"""

from .service import CatalogService

__all__ = ["CatalogService"]
