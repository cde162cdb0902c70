"""TechDocs collator: indexes the MkDocs search index of every documented entity.

Entities opt in through the ``backstage.io/techdocs-ref`` annotation. For each
one the generated ``search_index.json`` is fetched from the tech-docs service
and every section in it becomes a document.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from search_backend.collators.base import build_client, entity_metadata, entity_ref, iter_catalog_entities
from search_backend.domain.model import Document
from search_backend.errors import CollationError


logger = logging.getLogger(__name__)

TECHDOCS_TYPE = "techdocs"
TECHDOCS_ANNOTATION = "backstage.io/techdocs-ref"


def has_techdocs(entity: dict[str, Any]) -> bool:
    annotations = entity["metadata"].get("annotations")
    return isinstance(annotations, dict) and bool(annotations.get(TECHDOCS_ANNOTATION))


def search_index_to_documents(entity: dict[str, Any], index: Any) -> list[Document]:
    """Convert one MkDocs search index into documents for ``entity``."""
    namespace, kind, name = entity_ref(entity)
    if not isinstance(index, dict) or not isinstance(index.get("docs"), list):
        raise CollationError(TECHDOCS_TYPE, f"Malformed search index for {kind}:{namespace}/{name}")
    metadata = entity_metadata(entity)
    documents = []
    for entry in index["docs"]:
        if not isinstance(entry, dict) or not isinstance(entry.get("location"), str):
            raise CollationError(TECHDOCS_TYPE, f"Malformed search index entry for {kind}:{namespace}/{name}")
        location = entry["location"]
        try:
            document = Document(
                id=f"{namespace}/{kind}/{name}/{location}",
                type=TECHDOCS_TYPE,
                title=entry.get("title") or "",
                text=entry.get("text") or "",
                location=f"/docs/{namespace}/{kind}/{name}/{location}",
                metadata=metadata,
            )
        except ValidationError as exc:
            raise CollationError(
                TECHDOCS_TYPE, f"Invalid search index entry {location!r} for {kind}:{namespace}/{name}: {exc}"
            ) from exc
        documents.append(document)
    return documents


class TechDocsCollator:
    def __init__(
        self,
        catalog_url: str,
        techdocs_url: str,
        *,
        headers: dict[str, str] | None = None,
        page_size: int = 500,
        parallelism: int = 10,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.catalog_url = catalog_url
        self.techdocs_url = techdocs_url
        self.headers = headers or {}
        self.page_size = page_size
        self.parallelism = max(1, parallelism)
        self.timeout = timeout
        self.transport = transport

    async def _fetch_entity_docs(
        self, client: httpx.AsyncClient, entity: dict[str, Any], semaphore: asyncio.Semaphore
    ) -> list[Document]:
        namespace, kind, name = entity_ref(entity)
        url = f"/static/docs/{namespace}/{kind}/{name}/search/search_index.json"
        async with semaphore:
            try:
                response = await client.get(url)
            except httpx.HTTPError as exc:
                raise CollationError(TECHDOCS_TYPE, f"Request to {url} failed: {exc}") from exc
        if response.status_code == 404:
            logger.info("No tech-docs search index for %s:%s/%s, skipping", kind, namespace, name)
            return []
        if response.status_code >= 400:
            raise CollationError(TECHDOCS_TYPE, f"Request to {url} returned HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise CollationError(TECHDOCS_TYPE, f"Search index at {url} is not valid JSON") from exc
        return search_index_to_documents(entity, payload)

    async def produce_documents(self) -> AsyncIterator[Document]:
        async with build_client(
            self.catalog_url, headers=self.headers, timeout=self.timeout, transport=self.transport
        ) as catalog:
            entities = [
                entity
                async for entity in iter_catalog_entities(catalog, TECHDOCS_TYPE, page_size=self.page_size)
                if has_techdocs(entity)
            ]
        logger.debug("Found %d entities with tech-docs", len(entities))

        semaphore = asyncio.Semaphore(self.parallelism)
        async with build_client(
            self.techdocs_url, headers=self.headers, timeout=self.timeout, transport=self.transport
        ) as techdocs:
            try:
                # The first failed fetch cancels the others before the client closes.
                async with asyncio.TaskGroup() as group:
                    fetches = [
                        group.create_task(self._fetch_entity_docs(techdocs, entity, semaphore)) for entity in entities
                    ]
            except ExceptionGroup as failed:
                raise failed.exceptions[0]
        for fetch in fetches:
            for document in fetch.result():
                yield document


class TechDocsCollatorFactory:
    type = TECHDOCS_TYPE

    def __init__(
        self,
        catalog_url: str,
        techdocs_url: str,
        *,
        headers: dict[str, str] | None = None,
        page_size: int = 500,
        parallelism: int = 10,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.catalog_url = catalog_url
        self.techdocs_url = techdocs_url
        self.headers = headers
        self.page_size = page_size
        self.parallelism = parallelism
        self.timeout = timeout
        self.transport = transport

    def get_collator(self) -> TechDocsCollator:
        return TechDocsCollator(
            self.catalog_url,
            self.techdocs_url,
            headers=self.headers,
            page_size=self.page_size,
            parallelism=self.parallelism,
            timeout=self.timeout,
            transport=self.transport,
        )
