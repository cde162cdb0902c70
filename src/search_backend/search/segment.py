"""Immutable per-type postings segments for the embedded engine.

* ``SegmentWriter`` - accepts documents for one type and produces an
  ``IndexSegment`` with postings and field length metadata.
* ``IndexSegment`` - read-only view used for scoring and document lookup.

A segment is never mutated after ``build()``; replacing a type's index means
building a new segment and swapping the reference.
"""

from __future__ import annotations

from array import array
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from uuid import uuid4

from search_backend.domain.model import Document
from search_backend.search.analyzers import Analyzer, get_analyzer
from search_backend.search.stats import average_field_lengths, bm25, idf


DEFAULT_FIELD_BOOSTS: Mapping[str, float] = MappingProxyType({"title": 2.0, "text": 1.0})


class SegmentError(ValueError):
    """Raised when a document cannot be added to a segment."""


@dataclass(frozen=True, slots=True)
class Posting:
    """A term occurrence list within one document field."""

    doc_id: str
    positions: array

    @property
    def frequency(self) -> int:
        return len(self.positions)


@dataclass(frozen=True, slots=True)
class IndexSegment:
    """Immutable representation of one type's committed index."""

    document_type: str
    postings: Mapping[str, Mapping[str, tuple[Posting, ...]]]
    documents: Mapping[str, Document]
    field_lengths: Mapping[str, Mapping[str, int]]
    field_boosts: Mapping[str, float] = field(default_factory=lambda: DEFAULT_FIELD_BOOSTS)
    segment_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def doc_count(self) -> int:
        return len(self.documents)

    def get_document(self, doc_id: str) -> Document | None:
        return self.documents.get(doc_id)

    def get_postings(self, field_name: str, term: str) -> tuple[Posting, ...]:
        return self.postings.get(field_name, {}).get(term, ())

    def score(self, terms: list[str], *, k1: float = 1.2, b: float = 0.75) -> dict[str, float]:
        """Return BM25F scores for every document matching at least one term."""
        if not terms or not self.documents:
            return {}

        averages = average_field_lengths(self.field_lengths)
        scores: dict[str, float] = defaultdict(float)

        for field_name, boost in self.field_boosts.items():
            avg_length = averages.get(field_name)
            if avg_length is None:
                continue
            doc_lengths = self.field_lengths.get(field_name, {})
            for term in terms:
                postings = self.get_postings(field_name, term)
                if not postings:
                    continue
                weight = idf(len(postings), self.doc_count) * boost
                for posting in postings:
                    doc_length = doc_lengths.get(posting.doc_id, posting.frequency)
                    scores[posting.doc_id] += weight * bm25(posting.frequency, doc_length, avg_length, k1=k1, b=b)

        return dict(scores)


class SegmentWriter:
    """Builds an index segment from the documents of a single type."""

    def __init__(
        self,
        document_type: str,
        *,
        field_boosts: Mapping[str, float] | None = None,
        analyzer: Analyzer | None = None,
    ) -> None:
        self.document_type = document_type
        self.field_boosts = MappingProxyType(dict(field_boosts or DEFAULT_FIELD_BOOSTS))
        self._analyzer = analyzer or get_analyzer()
        self._postings: dict[str, dict[str, dict[str, list[int]]]] = defaultdict(
            lambda: defaultdict(lambda: defaultdict(list))
        )
        self._field_lengths: dict[str, dict[str, int]] = defaultdict(dict)
        self._documents: dict[str, Document] = {}

    def add_document(self, document: Document) -> str:
        if document.type != self.document_type:
            msg = f"Document '{document.id}' has type '{document.type}', expected '{self.document_type}'"
            raise SegmentError(msg)
        if document.id in self._documents:
            msg = f"Duplicate document id '{document.id}'"
            raise SegmentError(msg)

        for field_name in self.field_boosts:
            value = getattr(document, field_name, "") or ""
            tokens = self._analyzer(value)
            if not tokens:
                continue
            self._field_lengths[field_name][document.id] = len(tokens)
            for token in tokens:
                self._postings[field_name][token.text][document.id].append(token.position)

        self._documents[document.id] = document
        return document.id

    def build(self) -> IndexSegment:
        postings = {
            field_name: MappingProxyType(
                {
                    term: tuple(Posting(doc_id=doc_id, positions=array("I", positions)) for doc_id, positions in doc_map.items())
                    for term, doc_map in terms.items()
                }
            )
            for field_name, terms in self._postings.items()
        }
        return IndexSegment(
            document_type=self.document_type,
            postings=MappingProxyType(postings),
            documents=MappingProxyType(dict(self._documents)),
            field_lengths=MappingProxyType({name: MappingProxyType(dict(lengths)) for name, lengths in self._field_lengths.items()}),
            field_boosts=self.field_boosts,
        )
