"""SQLite FTS5 search engine.

The relational-store backend: a single database file holding one FTS5 table
for every type. A type is replaced inside one write transaction; with WAL
journaling, concurrent readers keep seeing the previous rows until commit.

Blocking SQLite calls run in worker threads so the event loop (and other
types' timers) never stall on disk I/O.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
import sqlite3
import threading
from typing import Any

from opentelemetry.trace import SpanKind

from search_backend.domain.model import Document, IndexBatch, SearchQuery, SearchResult, SearchResultSet
from search_backend.errors import EngineUnavailableError, IndexCommitError, QueryTranslationError
from search_backend.observability import INDEX_DOC_COUNT, SEARCH_LATENCY, create_span, track_latency
from search_backend.search.analyzers import StandardAnalyzer, analyze_terms
from search_backend.search.engine import SearchEngine, validate_batch
from search_backend.search.query import EngineQuery, page_cursors
from search_backend.search.snippet import build_highlight


logger = logging.getLogger(__name__)

_FTS_TABLE = "documents_fts"
# bm25() column weights follow the table column order: type, id, title, text, location, metadata
_BM25_WEIGHTS = "0.0, 0.0, 2.0, 1.0, 0.0, 0.0"
_MATCH_ANALYZER = StandardAnalyzer(apply_stemming=False)


def apply_read_pragmas(conn: sqlite3.Connection, *, busy_timeout_ms: int = 30000) -> None:
    """Apply read-optimized PRAGMAs."""
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute("PRAGMA query_only = 1")


def apply_write_pragmas(conn: sqlite3.Connection, *, busy_timeout_ms: int = 30000) -> None:
    """Apply write-optimized PRAGMAs; WAL keeps readers on the last committed snapshot."""
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")


def fts5_available() -> bool:
    """Return True when the linked SQLite library was compiled with FTS5."""
    conn = sqlite3.connect(":memory:")
    try:
        conn.execute("CREATE VIRTUAL TABLE probe USING fts5(body)")
        return True
    except sqlite3.OperationalError:
        return False
    finally:
        conn.close()


class SqliteSearchEngine(SearchEngine):
    """FTS5-backed engine persisting every type in one database file."""

    name = "sqlite"

    def __init__(self, db_path: str | Path, **kwargs) -> None:
        super().__init__(**kwargs)
        self.db_path = Path(db_path)
        self._write_lock = threading.Lock()
        self._initialize_schema()

    @classmethod
    def supported(cls, db_path: str | Path) -> bool:
        """Probe whether this engine can run against ``db_path``."""
        if not fts5_available():
            logger.info("SQLite library lacks FTS5; sqlite engine unsupported")
            return False
        directory = Path(db_path).expanduser().resolve().parent
        if not directory.exists():
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.info("Cannot create sqlite directory %s: %s", directory, exc)
                return False
        return os.access(directory, os.W_OK)

    def _connect(self, *, write: bool) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
        if write:
            apply_write_pragmas(conn)
        else:
            apply_read_pragmas(conn)
        return conn

    def _initialize_schema(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect(write=True)
        try:
            conn.execute(
                f"CREATE VIRTUAL TABLE IF NOT EXISTS {_FTS_TABLE} USING fts5("
                "type UNINDEXED, id UNINDEXED, title, text, location UNINDEXED, metadata UNINDEXED, "
                "tokenize = 'porter unicode61')"
            )
            conn.commit()
        finally:
            conn.close()

    # --- write path -------------------------------------------------------

    async def index(self, document_type: str, batch: IndexBatch) -> None:
        validate_batch(document_type, batch)
        count = await asyncio.to_thread(self._replace_type, document_type, batch.documents)
        INDEX_DOC_COUNT.labels(type=document_type).set(count)
        logger.info("Committed %d documents for type '%s'", count, document_type)

    def _replace_type(self, document_type: str, documents: tuple[Document, ...]) -> int:
        rows = [
            (
                document.type,
                document.id,
                document.title,
                document.text,
                document.location,
                json.dumps(document.metadata, sort_keys=True),
            )
            for document in documents
        ]
        with self._write_lock:
            conn = None
            try:
                conn = self._connect(write=True)
                conn.execute("BEGIN IMMEDIATE")
                conn.execute(f"DELETE FROM {_FTS_TABLE} WHERE type = ?", (document_type,))
                conn.executemany(
                    f"INSERT INTO {_FTS_TABLE} (type, id, title, text, location, metadata) VALUES (?, ?, ?, ?, ?, ?)",
                    rows,
                )
                conn.commit()
            except sqlite3.Error as exc:
                if conn is not None:
                    conn.rollback()
                raise IndexCommitError(document_type, f"SQLite commit failed: {exc}") from exc
            finally:
                if conn is not None:
                    conn.close()
        return len(rows)

    # --- read path --------------------------------------------------------

    def translate_query(self, query: SearchQuery) -> EngineQuery:
        base = super().translate_query(query)
        for key in base.filters:
            if '"' in key:
                raise QueryTranslationError(f"Filter key {key!r} cannot contain double quotes")
        words = analyze_terms(query.term, _MATCH_ANALYZER)
        match = " OR ".join(f'"{word}"' for word in words)
        return EngineQuery(
            terms=base.terms,
            raw_term=base.raw_term,
            types=base.types,
            filters=base.filters,
            page=base.page,
            page_limit=base.page_limit,
            native={"match": match},
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
            try:
                total, rows = await asyncio.to_thread(self._run_query, engine_query)
            except sqlite3.Error as exc:
                raise EngineUnavailableError(f"SQLite query failed: {exc}") from exc

            results = []
            for rank, row in enumerate(rows, start=engine_query.offset + 1):
                document = Document(
                    type=row[0],
                    id=row[1],
                    title=row[2] or "",
                    text=row[3] or "",
                    location=row[4] or "",
                    metadata=json.loads(row[5] or "{}"),
                )
                highlight = build_highlight(
                    document,
                    engine_query.terms,
                    pre_tag=self.highlight_pre_tag,
                    post_tag=self.highlight_post_tag,
                )
                results.append(
                    SearchResult(type=document.type, document=document, rank=rank, score=float(row[6]), highlight=highlight)
                )

            next_cursor, previous_cursor = page_cursors(engine_query.page, engine_query.page_limit, total)
            span.set_attribute("search.result_count", len(results))
            return SearchResultSet(
                results=results,
                next_page_cursor=next_cursor,
                previous_page_cursor=previous_cursor,
                total=total,
            )

    def _build_where(self, engine_query: EngineQuery) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        match = engine_query.native.get("match")
        if match:
            clauses.append(f"{_FTS_TABLE} MATCH ?")
            params.append(match)
        if engine_query.types is not None:
            placeholders = ", ".join("?" for _ in engine_query.types) or "NULL"
            clauses.append(f"type IN ({placeholders})")
            params.extend(engine_query.types)
        for key, values in engine_query.filters.items():
            placeholders = ", ".join("?" for _ in values)
            clauses.append(f"json_extract(metadata, ?) IN ({placeholders})")
            params.append(f'$."{key}"')
            params.extend(values)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def _run_query(self, engine_query: EngineQuery) -> tuple[int, list[tuple]]:
        if engine_query.terms and not engine_query.native.get("match"):
            return 0, []
        where, params = self._build_where(engine_query)
        if engine_query.native.get("match"):
            score = f"-bm25({_FTS_TABLE}, {_BM25_WEIGHTS})"
            order = "score DESC, type, id"
        else:
            score = "0.0"
            order = "type, id"
        conn = self._connect(write=False)
        try:
            # One read transaction so the count and the page come from the same snapshot.
            conn.execute("BEGIN")
            total = conn.execute(f"SELECT COUNT(*) FROM {_FTS_TABLE}{where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT type, id, title, text, location, metadata, {score} AS score "
                f"FROM {_FTS_TABLE}{where} ORDER BY {order} LIMIT ? OFFSET ?",
                [*params, engine_query.page_limit, engine_query.offset],
            ).fetchall()
            conn.commit()
        finally:
            conn.close()
        return int(total), rows
