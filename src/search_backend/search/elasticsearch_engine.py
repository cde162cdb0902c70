"""Elasticsearch-backed search engine.

Each type is served through an alias ``{prefix}{type}``. A commit writes the
batch into a brand new concrete index, then moves the alias onto it in a single
``_aliases`` call, so searches flip from the old batch to the new one without
ever seeing a half-loaded index.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any
import uuid

import httpx
import orjson
from opentelemetry.trace import SpanKind

from search_backend.domain.model import Document, Highlight, IndexBatch, SearchQuery, SearchResult, SearchResultSet
from search_backend.errors import EngineUnavailableError, IndexCommitError
from search_backend.observability import INDEX_DOC_COUNT, SEARCH_LATENCY, create_span, track_latency
from search_backend.search.engine import SearchEngine, validate_batch
from search_backend.search.query import EngineQuery, page_cursors


logger = logging.getLogger(__name__)

INDEX_MAPPINGS: dict[str, Any] = {
    "dynamic_templates": [
        {"metadata_as_keywords": {"path_match": "metadata.*", "mapping": {"type": "keyword"}}},
    ],
    "properties": {
        "type": {"type": "keyword"},
        "id": {"type": "keyword"},
        "title": {"type": "text", "analyzer": "english"},
        "text": {"type": "text", "analyzer": "english"},
        "location": {"type": "keyword", "index": False},
        "metadata": {"type": "object", "dynamic": True},
    },
}
_SEARCH_PARAMS = {"ignore_unavailable": "true", "allow_no_indices": "true"}


class ElasticsearchSearchEngine(SearchEngine):
    """Alias-swapping engine talking to Elasticsearch over its REST API."""

    name = "elasticsearch"

    def __init__(
        self,
        base_url: str,
        *,
        index_prefix: str = "search-",
        username: str = "",
        password: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.index_prefix = index_prefix
        self._owns_client = client is None
        if client is None:
            auth = httpx.BasicAuth(username, password) if username else None
            client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, auth=auth)
        self._client = client

    def alias_for(self, document_type: str) -> str:
        return f"{self.index_prefix}{document_type}"

    def _new_index_name(self, document_type: str) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        return f"{self.alias_for(document_type)}__{stamp}-{uuid.uuid4().hex[:8]}"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- write path -------------------------------------------------------

    async def index(self, document_type: str, batch: IndexBatch) -> None:
        validate_batch(document_type, batch)
        alias = self.alias_for(document_type)
        new_index = self._new_index_name(document_type)

        try:
            await self._request("PUT", f"/{new_index}", json={"mappings": INDEX_MAPPINGS})
        except (httpx.HTTPError, _ResponseError) as exc:
            raise IndexCommitError(document_type, f"Could not create index {new_index}: {exc}") from exc

        try:
            if batch.documents:
                await self._bulk_load(new_index, batch.documents)
            await self._request("POST", f"/{new_index}/_refresh")
            previous = await self._indices_behind_alias(alias)
            actions: list[dict[str, Any]] = [{"remove": {"index": name, "alias": alias}} for name in previous]
            actions.append({"add": {"index": new_index, "alias": alias}})
            await self._request("POST", "/_aliases", json={"actions": actions})
        except (httpx.HTTPError, _ResponseError) as exc:
            await self._delete_index_quietly(new_index)
            raise IndexCommitError(document_type, f"Commit to {new_index} failed: {exc}") from exc

        for name in previous:
            await self._delete_index_quietly(name)

        INDEX_DOC_COUNT.labels(type=document_type).set(len(batch))
        logger.info("Committed %d documents for type '%s' into %s", len(batch), document_type, new_index)

    async def _bulk_load(self, index_name: str, documents: tuple[Document, ...]) -> None:
        lines: list[bytes] = []
        for document in documents:
            lines.append(orjson.dumps({"index": {"_index": index_name, "_id": document.id}}))
            lines.append(orjson.dumps(document.model_dump()))
        body = b"\n".join(lines) + b"\n"
        response = await self._request(
            "POST", "/_bulk", content=body, headers={"Content-Type": "application/x-ndjson"}
        )
        if response.json().get("errors"):
            raise _ResponseError("bulk request reported item errors")

    async def _indices_behind_alias(self, alias: str) -> list[str]:
        response = await self._client.get(f"/_alias/{alias}")
        if response.status_code == 404:
            return []
        _raise_for_status(response)
        return sorted(response.json())

    async def _delete_index_quietly(self, index_name: str) -> None:
        try:
            response = await self._client.delete(f"/{index_name}")
            if response.status_code >= 400 and response.status_code != 404:
                logger.warning("Failed to delete index %s: HTTP %d", index_name, response.status_code)
        except httpx.HTTPError as exc:
            logger.warning("Failed to delete index %s: %s", index_name, exc)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, url, **kwargs)
        _raise_for_status(response)
        return response

    # --- read path --------------------------------------------------------

    def translate_query(self, query: SearchQuery) -> EngineQuery:
        base = super().translate_query(query)
        return EngineQuery(
            terms=base.terms,
            raw_term=base.raw_term,
            types=base.types,
            filters=base.filters,
            page=base.page,
            page_limit=base.page_limit,
            native={"body": self._build_body(base)},
        )

    def _build_body(self, base: EngineQuery) -> dict[str, Any]:
        if base.terms:
            must: dict[str, Any] = {
                "multi_match": {"query": base.raw_term, "fields": ["title^2", "text"], "operator": "or"}
            }
            sort: list[Any] = ["_score", {"type": "asc"}, {"id": "asc"}]
        else:
            must = {"match_all": {}}
            sort = [{"type": "asc"}, {"id": "asc"}]
        filters = [{"terms": {f"metadata.{key}": list(values)}} for key, values in base.filters.items()]
        return {
            "query": {"bool": {"must": [must], "filter": filters}},
            "from": base.offset,
            "size": base.page_limit,
            "sort": sort,
            "track_total_hits": True,
            "highlight": {
                "pre_tags": [self.highlight_pre_tag],
                "post_tags": [self.highlight_post_tag],
                "fields": {"title": {"number_of_fragments": 0}, "text": {"fragment_size": 240, "number_of_fragments": 1}},
            },
        }

    async def _live_aliases(self) -> list[str]:
        """Names of the committed type aliases; concrete indices are excluded."""
        try:
            response = await self._client.get(f"/_alias/{self.index_prefix}*")
        except httpx.HTTPError as exc:
            raise EngineUnavailableError(f"Elasticsearch unreachable: {exc}") from exc
        if response.status_code == 404:
            return []
        if response.status_code >= 400:
            raise EngineUnavailableError(f"Elasticsearch alias lookup failed: HTTP {response.status_code}")
        aliases = {
            alias
            for entry in response.json().values()
            for alias in entry.get("aliases", {})
            if alias.startswith(self.index_prefix)
        }
        return sorted(aliases)

    async def query(self, engine_query: EngineQuery) -> SearchResultSet:
        with (
            create_span(
                "search.query",
                kind=SpanKind.CLIENT,
                attributes={"search.engine": self.name, "search.term": engine_query.raw_term[:100]},
            ) as span,
            track_latency(SEARCH_LATENCY, engine=self.name),
        ):
            body = engine_query.native.get("body") or self._build_body(engine_query)
            if engine_query.types is None:
                aliases = await self._live_aliases()
            else:
                aliases = [self.alias_for(document_type) for document_type in engine_query.types]
            if not aliases:
                return SearchResultSet(results=[], total=0)
            target = ",".join(aliases)
            try:
                response = await self._client.post(f"/{target}/_search", params=_SEARCH_PARAMS, json=body)
            except httpx.HTTPError as exc:
                raise EngineUnavailableError(f"Elasticsearch unreachable: {exc}") from exc
            if response.status_code == 404:
                return SearchResultSet(results=[], total=0)
            if response.status_code >= 400:
                raise EngineUnavailableError(f"Elasticsearch search failed: HTTP {response.status_code}")

            payload = response.json()
            hits = payload.get("hits", {})
            total = _total_hits(hits.get("total"))
            results = []
            for rank, hit in enumerate(hits.get("hits", []), start=engine_query.offset + 1):
                document = Document.model_validate(hit["_source"])
                results.append(
                    SearchResult(
                        type=document.type,
                        document=document,
                        rank=rank,
                        score=float(hit.get("_score") or 0.0),
                        highlight=self._highlight_from(hit.get("highlight")),
                    )
                )

            next_cursor, previous_cursor = page_cursors(engine_query.page, engine_query.page_limit, total)
            span.set_attribute("search.result_count", len(results))
            return SearchResultSet(
                results=results,
                next_page_cursor=next_cursor,
                previous_page_cursor=previous_cursor,
                total=total,
            )

    def _highlight_from(self, fragments: dict[str, list[str]] | None) -> Highlight | None:
        if not fragments:
            return None
        fields = {name: " ... ".join(parts) for name, parts in fragments.items() if parts}
        if not fields:
            return None
        return Highlight(pre_tag=self.highlight_pre_tag, post_tag=self.highlight_post_tag, fields=fields)


class _ResponseError(Exception):
    pass


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code >= 400:
        raise _ResponseError(f"HTTP {response.status_code} from {response.request.method} {response.request.url.path}")


def _total_hits(total: Any) -> int:
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)
