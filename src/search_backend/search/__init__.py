"""Search engines: analysis, storage and ranked retrieval of indexed documents."""

from search_backend.search.engine import SearchEngine
from search_backend.search.engine_factory import create_search_engine
from search_backend.search.memory_engine import InMemorySearchEngine
from search_backend.search.query import EngineQuery


__all__ = [
    "EngineQuery",
    "InMemorySearchEngine",
    "SearchEngine",
    "create_search_engine",
]
