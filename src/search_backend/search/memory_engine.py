"""Embedded in-process search engine.

The fallback backend when no external store is configured. Each type owns one
immutable ``IndexSegment``; ``index`` builds the replacement segment off to the
side and swaps a single dictionary entry, so a query that captured the old
segment keeps reading it undisturbed.
"""

from __future__ import annotations

import asyncio
import logging

from opentelemetry.trace import SpanKind

from search_backend.domain.model import IndexBatch, SearchResult, SearchResultSet
from search_backend.errors import IndexCommitError
from search_backend.observability import INDEX_DOC_COUNT, SEARCH_LATENCY, create_span, track_latency
from search_backend.search.engine import SearchEngine, matches_filters, validate_batch
from search_backend.search.query import EngineQuery, page_cursors
from search_backend.search.segment import IndexSegment, SegmentError, SegmentWriter
from search_backend.search.snippet import build_highlight


logger = logging.getLogger(__name__)


class InMemorySearchEngine(SearchEngine):
    """BM25F search over per-type in-memory segments."""

    name = "memory"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._segments: dict[str, IndexSegment] = {}
        self._write_lock = asyncio.Lock()

    @property
    def document_types(self) -> list[str]:
        return sorted(self._segments)

    def segment_for(self, document_type: str) -> IndexSegment | None:
        return self._segments.get(document_type)

    async def index(self, document_type: str, batch: IndexBatch) -> None:
        validate_batch(document_type, batch)
        writer = SegmentWriter(document_type)
        try:
            for document in batch.documents:
                writer.add_document(document)
        except SegmentError as exc:
            raise IndexCommitError(document_type, str(exc)) from exc
        segment = writer.build()

        async with self._write_lock:
            previous = self._segments.get(document_type)
            self._segments[document_type] = segment

        INDEX_DOC_COUNT.labels(type=document_type).set(segment.doc_count)
        logger.info(
            "Committed %d documents for type '%s' (replaced segment %s)",
            segment.doc_count,
            document_type,
            previous.segment_id if previous else None,
        )

    async def query(self, engine_query: EngineQuery) -> SearchResultSet:
        with (
            create_span(
                "search.query",
                kind=SpanKind.INTERNAL,
                attributes={"search.engine": self.name, "search.term": engine_query.raw_term[:100]},
            ) as span,
            track_latency(SEARCH_LATENCY, engine=self.name),
        ):
            # Capture the current segments once; a concurrent commit cannot leak into this query.
            snapshot = dict(self._segments)
            types = engine_query.types if engine_query.types is not None else tuple(sorted(snapshot))

            hits: list[tuple[float, str, str]] = []
            for document_type in types:
                segment = snapshot.get(document_type)
                if segment is None:
                    continue
                if engine_query.terms:
                    scored = segment.score(list(engine_query.terms)).items()
                else:
                    scored = ((doc_id, 0.0) for doc_id in segment.documents)
                for doc_id, score in scored:
                    document = segment.documents[doc_id]
                    if matches_filters(document, engine_query.filters):
                        hits.append((score, document_type, doc_id))

            if engine_query.terms:
                hits.sort(key=lambda hit: (-hit[0], hit[1], hit[2]))
            else:
                hits.sort(key=lambda hit: (hit[1], hit[2]))

            page_hits = hits[engine_query.offset : engine_query.offset + engine_query.page_limit]
            results = []
            for rank, (score, document_type, doc_id) in enumerate(page_hits, start=engine_query.offset + 1):
                document = snapshot[document_type].documents[doc_id]
                highlight = build_highlight(
                    document,
                    engine_query.terms,
                    pre_tag=self.highlight_pre_tag,
                    post_tag=self.highlight_post_tag,
                )
                results.append(
                    SearchResult(type=document_type, document=document, rank=rank, score=score, highlight=highlight)
                )

            next_cursor, previous_cursor = page_cursors(engine_query.page, engine_query.page_limit, len(hits))
            span.set_attribute("search.result_count", len(results))
            return SearchResultSet(
                results=results,
                next_page_cursor=next_cursor,
                previous_page_cursor=previous_cursor,
                total=len(hits),
            )
