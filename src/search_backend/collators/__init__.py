"""Collators turn an upstream source into documents of one type."""

from search_backend.collators.base import Collator, CollatorFactory
from search_backend.collators.catalog import CATALOG_TYPE, CatalogCollatorFactory
from search_backend.collators.static import StaticCollatorFactory
from search_backend.collators.techdocs import TECHDOCS_TYPE, TechDocsCollatorFactory


__all__ = [
    "CATALOG_TYPE",
    "TECHDOCS_TYPE",
    "CatalogCollatorFactory",
    "Collator",
    "CollatorFactory",
    "StaticCollatorFactory",
    "TechDocsCollatorFactory",
]
