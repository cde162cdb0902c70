"""Unit tests for engine-agnostic query translation."""

import pytest

from search_backend.domain.model import SearchQuery
from search_backend.errors import QueryTranslationError
from search_backend.search.memory_engine import InMemorySearchEngine
from search_backend.search.query import (
    decode_page_cursor,
    encode_page_cursor,
    normalize_filters,
    page_cursors,
)


@pytest.fixture
def engine():
    return InMemorySearchEngine()


@pytest.mark.unit
def test_translate_analyzes_term_and_keeps_raw(engine):
    translated = engine.translate_query(SearchQuery(term="  Indexing the Payments  "))

    assert translated.terms == ("index", "payment")
    assert translated.raw_term == "Indexing the Payments"
    assert translated.types is None
    assert translated.page == 0


@pytest.mark.unit
def test_type_filter_restricts_types_and_is_removed_from_metadata_filters(engine):
    translated = engine.translate_query(
        SearchQuery(types=["catalog", "techdocs"], filters={"type": "techdocs", "owner": "team-a"})
    )

    assert translated.types == ("techdocs",)
    assert dict(translated.filters) == {"owner": ("team-a",)}


@pytest.mark.unit
def test_type_filter_alone_selects_types(engine):
    translated = engine.translate_query(SearchQuery(filters={"type": ["a", "b"]}))

    assert translated.types == ("a", "b")


@pytest.mark.unit
def test_filter_scalars_are_stringified():
    assert normalize_filters({"deprecated": False, "version": 2, "tags": ["x", 1.5]}) == {
        "deprecated": ("false",),
        "version": ("2",),
        "tags": ("x", "1.5"),
    }


@pytest.mark.unit
@pytest.mark.parametrize(
    "filters",
    [
        {"owner": {"nested": "value"}},
        {"owner": []},
        {"owner": [["a"]]},
        {"owner": None},
    ],
)
def test_unsupported_filter_shapes_raise(engine, filters):
    with pytest.raises(QueryTranslationError):
        engine.translate_query(SearchQuery(filters=filters))


@pytest.mark.unit
def test_page_cursor_round_trip_and_offset(engine):
    translated = engine.translate_query(SearchQuery(page_cursor=encode_page_cursor(3), page_limit=10))

    assert translated.page == 3
    assert translated.offset == 30


@pytest.mark.unit
@pytest.mark.parametrize("cursor", ["not base64!!", encode_page_cursor(1).replace("cGFnZ", "Zm9vO")])
def test_malformed_cursor_raises(cursor):
    with pytest.raises(QueryTranslationError, match="Malformed page cursor"):
        decode_page_cursor(cursor)


@pytest.mark.unit
def test_page_cursors_at_edges():
    assert page_cursors(0, 10, 5) == (None, None)
    next_cursor, previous_cursor = page_cursors(1, 10, 35)
    assert decode_page_cursor(next_cursor) == 2
    assert decode_page_cursor(previous_cursor) == 0
    assert page_cursors(3, 10, 35)[0] is None
