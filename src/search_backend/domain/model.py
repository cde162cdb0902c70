"""Domain models for indexing and search.

Following Cosmic Python principles:
- Value Objects are immutable (frozen=True)
- No infrastructure dependencies

Collators produce ``Document`` values, the scheduler groups them into an
``IndexBatch`` per cycle, and engines answer ``SearchQuery`` values with a
``SearchResultSet``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Document(BaseModel):
    """Normalized unit of indexable content produced by a collator."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    title: str = ""
    text: str = ""
    location: str = ""
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _stringify_metadata(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return {str(key): str(item) for key, item in value.items() if item is not None}


class IndexBatch(BaseModel):
    """One cycle's complete, ordered set of documents for a single type."""

    model_config = ConfigDict(frozen=True)

    type: str
    documents: tuple[Document, ...] = ()

    def __len__(self) -> int:
        return len(self.documents)


class SearchQuery(BaseModel):
    """Backend-agnostic query: free text, structured filters and pagination.

    ``filters`` is deliberately loose; each engine validates the shape in
    ``translate_query`` and rejects what it cannot express.
    """

    model_config = ConfigDict(frozen=True)

    term: str = ""
    types: list[str] | None = None
    filters: dict[str, Any] = Field(default_factory=dict)
    page_cursor: str | None = None
    page_limit: int = Field(default=25, ge=1, le=100)


class Highlight(BaseModel):
    """Highlighted fragments of a result, keyed by document field."""

    model_config = ConfigDict(frozen=True)

    pre_tag: str
    post_tag: str
    fields: dict[str, str] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """A single ranked hit."""

    model_config = ConfigDict(frozen=True)

    type: str
    document: Document
    rank: int
    score: float = 0.0
    highlight: Highlight | None = None


class SearchResultSet(BaseModel):
    """One page of ranked results plus opaque cursors to its neighbours."""

    model_config = ConfigDict(frozen=True)

    results: list[SearchResult] = Field(default_factory=list)
    next_page_cursor: str | None = None
    previous_page_cursor: str | None = None
    total: int = 0

    def to_payload(self) -> dict[str, Any]:
        """Serialize using the camelCase shape of the query endpoint."""
        return {
            "results": [
                {
                    "type": result.type,
                    "document": result.document.model_dump(),
                    "rank": result.rank,
                    "score": result.score,
                    "highlight": result.highlight.model_dump(by_alias=True) if result.highlight else None,
                }
                for result in self.results
            ],
            "nextPageCursor": self.next_page_cursor,
            "previousPageCursor": self.previous_page_cursor,
            "numberOfResults": self.total,
        }
