"""Unit tests for InMemorySearchEngine."""

import asyncio

import pytest

from search_backend.domain.model import IndexBatch, SearchQuery
from search_backend.errors import IndexCommitError
from search_backend.search.memory_engine import InMemorySearchEngine


async def _index(engine, document_type, documents):
    await engine.index(document_type, IndexBatch(type=document_type, documents=tuple(documents)))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_query_ranks_and_highlights(memory_engine, catalog_documents):
    await _index(memory_engine, "catalog", catalog_documents)

    result = await memory_engine.search(SearchQuery(term="payments"))

    assert [hit.document.id for hit in result.results] == ["payments", "billing-docs"]
    assert [hit.rank for hit in result.results] == [1, 2]
    assert result.results[0].score > result.results[1].score
    assert result.results[0].highlight.fields["title"] == "<mark>Payments</mark> API"
    assert result.total == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_empty_term_browses_by_type_then_id(memory_engine, document_factory):
    await _index(memory_engine, "b-type", [document_factory("z", "b-type"), document_factory("a", "b-type")])
    await _index(memory_engine, "a-type", [document_factory("m", "a-type")])

    result = await memory_engine.search(SearchQuery())

    assert [(hit.type, hit.document.id) for hit in result.results] == [("a-type", "m"), ("b-type", "a"), ("b-type", "z")]
    assert all(hit.highlight is None for hit in result.results)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_filters_are_conjunctive_with_any_of_lists(memory_engine, catalog_documents):
    await _index(memory_engine, "catalog", catalog_documents)

    result = await memory_engine.search(
        SearchQuery(filters={"owner": "team-billing", "kind": ["component", "api"]})
    )

    assert [hit.document.id for hit in result.results] == ["payments"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_types_restrict_results(memory_engine, document_factory):
    await _index(memory_engine, "catalog", [document_factory("kafka", "catalog", title="Kafka")])
    await _index(memory_engine, "techdocs", [document_factory("kafka-docs", "techdocs", title="Kafka docs")])

    result = await memory_engine.search(SearchQuery(term="kafka", types=["techdocs"]))

    assert [hit.type for hit in result.results] == ["techdocs"]
    missing = await memory_engine.search(SearchQuery(term="kafka", types=["unknown"]))
    assert missing.results == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pagination_cursors_walk_all_results(document_factory):
    engine = InMemorySearchEngine()
    await _index(engine, "catalog", [document_factory(f"doc-{i:02d}", "catalog") for i in range(5)])

    first = await engine.search(SearchQuery(page_limit=2))
    second = await engine.search(SearchQuery(page_limit=2, page_cursor=first.next_page_cursor))
    last = await engine.search(SearchQuery(page_limit=2, page_cursor=second.next_page_cursor))

    assert [hit.document.id for hit in first.results] == ["doc-00", "doc-01"]
    assert [hit.document.id for hit in second.results] == ["doc-02", "doc-03"]
    assert [hit.rank for hit in second.results] == [3, 4]
    assert [hit.document.id for hit in last.results] == ["doc-04"]
    assert first.previous_page_cursor is None
    assert last.next_page_cursor is None
    assert last.previous_page_cursor == first.next_page_cursor


@pytest.mark.unit
@pytest.mark.asyncio
async def test_index_replaces_the_whole_type(memory_engine, document_factory):
    await _index(memory_engine, "catalog", [document_factory("old", "catalog")])
    await _index(memory_engine, "catalog", [document_factory("new", "catalog")])

    result = await memory_engine.search(SearchQuery())

    assert [hit.document.id for hit in result.results] == ["new"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rejected_batch_keeps_previous_index(memory_engine, document_factory):
    await _index(memory_engine, "catalog", [document_factory("keep", "catalog")])
    previous = memory_engine.segment_for("catalog")

    with pytest.raises(IndexCommitError):
        await _index(memory_engine, "catalog", [document_factory("dup", "catalog"), document_factory("dup", "catalog")])
    with pytest.raises(IndexCommitError, match="expected 'catalog'"):
        await _index(memory_engine, "catalog", [document_factory("stray", "techdocs")])

    assert memory_engine.segment_for("catalog") is previous
    result = await memory_engine.search(SearchQuery())
    assert [hit.document.id for hit in result.results] == ["keep"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_batch_type_must_match_target(memory_engine):
    with pytest.raises(IndexCommitError, match="does not match"):
        await memory_engine.index("catalog", IndexBatch(type="techdocs"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_queries_see_complete_batches_only(memory_engine, document_factory):
    old = [document_factory(f"old-{i}", "catalog") for i in range(50)]
    new = [document_factory(f"new-{i}", "catalog") for i in range(200)]
    await _index(memory_engine, "catalog", old)

    async def observe():
        seen = set()
        for _ in range(20):
            result = await memory_engine.search(SearchQuery(page_limit=100))
            seen.add(result.total)
            await asyncio.sleep(0)
        return seen

    observed, _ = await asyncio.gather(observe(), _index(memory_engine, "catalog", new))

    assert observed <= {50, 200}
    assert memory_engine.document_types == ["catalog"]
