"""Query translation helpers shared by all engines."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from search_backend.domain.model import SearchQuery
from search_backend.errors import QueryTranslationError


FilterScalar = str | int | float | bool
_SCALAR_TYPES = (str, int, float, bool)


@dataclass(frozen=True)
class EngineQuery:
    """Normalized query handed from ``translate_query`` to ``query``.

    Engines that need a native payload (e.g. an Elasticsearch request body)
    carry it in ``native``.
    """

    terms: tuple[str, ...]
    raw_term: str
    types: tuple[str, ...] | None
    filters: Mapping[str, tuple[str, ...]]
    page: int
    page_limit: int
    native: Mapping[str, Any] = field(default_factory=dict)

    @property
    def offset(self) -> int:
        return self.page * self.page_limit


def encode_page_cursor(page: int) -> str:
    return base64.urlsafe_b64encode(f"page:{page}".encode()).decode("ascii")


def decode_page_cursor(cursor: str | None) -> int:
    """Decode an opaque page cursor; None means the first page."""
    if not cursor:
        return 0
    try:
        decoded = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise QueryTranslationError(f"Malformed page cursor: {cursor!r}") from exc
    prefix, _, value = decoded.partition(":")
    if prefix != "page" or not value.isdigit():
        raise QueryTranslationError(f"Malformed page cursor: {cursor!r}")
    return int(value)


def normalize_filters(filters: Mapping[str, Any]) -> dict[str, tuple[str, ...]]:
    """Validate filter shapes and convert every value to a tuple of strings.

    Supported shapes are a scalar or a non-empty list of scalars. Booleans are
    rendered lower-case so they compare equal to string metadata.
    """
    normalized: dict[str, tuple[str, ...]] = {}
    for key, value in filters.items():
        if not isinstance(key, str) or not key:
            raise QueryTranslationError(f"Filter keys must be non-empty strings, got {key!r}")
        if isinstance(value, _SCALAR_TYPES):
            normalized[key] = (_scalar_to_str(value),)
            continue
        if isinstance(value, (list, tuple)):
            if not value:
                raise QueryTranslationError(f"Filter '{key}' has an empty value list")
            if not all(isinstance(item, _SCALAR_TYPES) for item in value):
                raise QueryTranslationError(f"Filter '{key}' must be a list of scalar values")
            normalized[key] = tuple(_scalar_to_str(item) for item in value)
            continue
        raise QueryTranslationError(f"Unsupported filter shape for '{key}': {type(value).__name__}")
    return normalized


def _scalar_to_str(value: FilterScalar) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def resolve_types(query: SearchQuery, filters: Mapping[str, tuple[str, ...]]) -> tuple[str, ...] | None:
    """Merge ``query.types`` with a ``type`` filter; None means all types."""
    requested = tuple(dict.fromkeys(query.types)) if query.types else None
    type_filter = filters.get("type")
    if type_filter is None:
        return requested
    if requested is None:
        return type_filter
    return tuple(value for value in requested if value in type_filter)


def page_cursors(page: int, page_limit: int, total: int) -> tuple[str | None, str | None]:
    """Return (next, previous) cursors for a page of ``total`` hits."""
    next_cursor = encode_page_cursor(page + 1) if (page + 1) * page_limit < total else None
    previous_cursor = encode_page_cursor(page - 1) if page > 0 else None
    return next_cursor, previous_cursor
