"""Domain layer - value objects shared by collators, engines and the scheduler."""

from .model import Document, Highlight, IndexBatch, SearchQuery, SearchResult, SearchResultSet


__all__ = [
    "Document",
    "Highlight",
    "IndexBatch",
    "SearchQuery",
    "SearchResult",
    "SearchResultSet",
]
