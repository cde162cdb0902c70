"""Capability-based search engine selection."""

from __future__ import annotations

import logging

from search_backend.config import Settings
from search_backend.errors import EngineUnavailableError
from search_backend.search.elasticsearch_engine import ElasticsearchSearchEngine
from search_backend.search.engine import SearchEngine
from search_backend.search.memory_engine import InMemorySearchEngine
from search_backend.search.sqlite_engine import SqliteSearchEngine


logger = logging.getLogger(__name__)


def create_search_engine(settings: Settings) -> SearchEngine:
    """Resolve the configured engine once at startup.

    ``auto`` prefers an Elasticsearch cluster when one is configured, then a
    SQLite database with FTS5 support, and finally the in-memory engine.
    An explicit choice that cannot be honoured raises ``EngineUnavailableError``.
    """
    highlight = {"highlight_pre_tag": settings.highlight_pre_tag, "highlight_post_tag": settings.highlight_post_tag}
    choice = settings.search_engine

    if choice == "elasticsearch" or (choice == "auto" and settings.elasticsearch_url):
        engine: SearchEngine = ElasticsearchSearchEngine(
            settings.elasticsearch_url,
            index_prefix=settings.elasticsearch_index_prefix,
            username=settings.elasticsearch_username,
            password=settings.elasticsearch_password,
            timeout=settings.http_timeout,
            **highlight,
        )
    elif choice == "sqlite" or (choice == "auto" and settings.sqlite_path):
        if SqliteSearchEngine.supported(settings.sqlite_path):
            engine = SqliteSearchEngine(settings.sqlite_path, **highlight)
        elif choice == "sqlite":
            raise EngineUnavailableError(f"SQLite engine is not supported for path {settings.sqlite_path!r}")
        else:
            logger.warning("SQLite engine unsupported at %s; falling back to in-memory", settings.sqlite_path)
            engine = InMemorySearchEngine(**highlight)
    else:
        engine = InMemorySearchEngine(**highlight)

    logger.info("Selected search engine: %s (requested: %s)", engine.name, choice)
    return engine
