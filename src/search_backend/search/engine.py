"""Search engine contract shared by every backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
import logging

from search_backend.domain.model import Document, IndexBatch, SearchQuery, SearchResultSet
from search_backend.errors import IndexCommitError
from search_backend.search.analyzers import analyze_terms
from search_backend.search.query import EngineQuery, decode_page_cursor, normalize_filters, resolve_types


logger = logging.getLogger(__name__)


class SearchEngine(ABC):
    """Pluggable storage and query backend for indexed documents.

    ``index`` replaces one type's contents atomically: readers observe either
    the previous complete batch or the new one. ``translate_query`` is pure;
    ``query`` is the only read path exposed to callers.
    """

    name: str = "abstract"

    def __init__(self, *, highlight_pre_tag: str = "<mark>", highlight_post_tag: str = "</mark>") -> None:
        self.highlight_pre_tag = highlight_pre_tag
        self.highlight_post_tag = highlight_post_tag

    def translate_query(self, query: SearchQuery) -> EngineQuery:
        """Convert a backend-agnostic query into this engine's representation."""
        filters = normalize_filters(query.filters)
        return EngineQuery(
            terms=tuple(analyze_terms(query.term)),
            raw_term=query.term.strip(),
            types=resolve_types(query, filters),
            filters={key: values for key, values in filters.items() if key != "type"},
            page=decode_page_cursor(query.page_cursor),
            page_limit=query.page_limit,
        )

    async def search(self, query: SearchQuery) -> SearchResultSet:
        """Translate and run ``query`` in one step."""
        return await self.query(self.translate_query(query))

    @abstractmethod
    async def query(self, engine_query: EngineQuery) -> SearchResultSet:
        """Return one page of ranked results."""

    @abstractmethod
    async def index(self, document_type: str, batch: IndexBatch) -> None:
        """Atomically replace the index contents for ``document_type``."""

    async def close(self) -> None:
        """Release backend resources."""
        return None


def validate_batch(document_type: str, batch: IndexBatch) -> None:
    """Reject batches that would corrupt a type's index."""
    if batch.type != document_type:
        raise IndexCommitError(document_type, f"Batch type '{batch.type}' does not match '{document_type}'")
    seen: set[str] = set()
    for document in batch.documents:
        if document.type != document_type:
            raise IndexCommitError(
                document_type, f"Document '{document.id}' has type '{document.type}', expected '{document_type}'"
            )
        if document.id in seen:
            raise IndexCommitError(document_type, f"Duplicate document id '{document.id}' in batch")
        seen.add(document.id)


def matches_filters(document: Document, filters: Mapping[str, tuple[str, ...]]) -> bool:
    """Conjunctive metadata filter check; list values match any of their entries."""
    for key, accepted in filters.items():
        value = document.metadata.get(key)
        if value is None or value not in accepted:
            return False
    return True
