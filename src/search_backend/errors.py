"""Error taxonomy shared by collators, engines and the scheduler."""

from __future__ import annotations


class SearchBackendError(Exception):
    """Base class for all search-backend errors."""


class CollationError(SearchBackendError):
    """Raised when a collator cannot reach or parse its upstream source."""

    def __init__(self, document_type: str, message: str) -> None:
        super().__init__(f"[{document_type}] {message}")
        self.document_type = document_type


class IndexCommitError(SearchBackendError):
    """Raised when an engine fails to commit a batch; the previous index is kept."""

    def __init__(self, document_type: str, message: str) -> None:
        super().__init__(f"[{document_type}] {message}")
        self.document_type = document_type


class QueryTranslationError(SearchBackendError, ValueError):
    """Raised when a query uses filters or cursors the engine cannot express."""


class EngineUnavailableError(SearchBackendError):
    """Raised when the search backend cannot be reached for a query."""


class DuplicateTypeError(SearchBackendError):
    """Raised when two collators are registered for the same document type."""

    def __init__(self, document_type: str) -> None:
        super().__init__(f"A collator for document type '{document_type}' is already registered")
        self.document_type = document_type


class SchedulerStateError(SearchBackendError, RuntimeError):
    """Raised on illegal scheduler lifecycle transitions."""
