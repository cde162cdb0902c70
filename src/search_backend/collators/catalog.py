"""Catalog collator: one document per software-catalog entity."""

from __future__ import annotations

from collections.abc import AsyncIterator
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from search_backend.collators.base import build_client, entity_metadata, entity_ref, iter_catalog_entities
from search_backend.domain.model import Document
from search_backend.errors import CollationError


logger = logging.getLogger(__name__)

CATALOG_TYPE = "software-catalog"


def entity_to_document(entity: dict[str, Any]) -> Document:
    namespace, kind, name = entity_ref(entity)
    metadata = entity["metadata"]
    try:
        return Document(
            id=f"{kind}:{namespace}/{name}",
            type=CATALOG_TYPE,
            title=metadata.get("title") or metadata["name"],
            text=metadata.get("description") or "",
            location=f"/catalog/{namespace}/{kind}/{name}",
            metadata={key: value for key, value in entity_metadata(entity).items() if key != "name"},
        )
    except ValidationError as exc:
        raise CollationError(CATALOG_TYPE, f"Invalid catalog entity {kind}:{namespace}/{name}: {exc}") from exc


class CatalogCollator:
    def __init__(
        self,
        catalog_url: str,
        *,
        headers: dict[str, str] | None = None,
        page_size: int = 500,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.catalog_url = catalog_url
        self.headers = headers or {}
        self.page_size = page_size
        self.timeout = timeout
        self.transport = transport

    async def produce_documents(self) -> AsyncIterator[Document]:
        count = 0
        async with build_client(
            self.catalog_url, headers=self.headers, timeout=self.timeout, transport=self.transport
        ) as client:
            async for entity in iter_catalog_entities(client, CATALOG_TYPE, page_size=self.page_size):
                count += 1
                yield entity_to_document(entity)
        logger.debug("Catalog collator produced %d documents", count)


class CatalogCollatorFactory:
    type = CATALOG_TYPE

    def __init__(
        self,
        catalog_url: str,
        *,
        headers: dict[str, str] | None = None,
        page_size: int = 500,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.catalog_url = catalog_url
        self.headers = headers
        self.page_size = page_size
        self.timeout = timeout
        self.transport = transport

    def get_collator(self) -> CatalogCollator:
        return CatalogCollator(
            self.catalog_url,
            headers=self.headers,
            page_size=self.page_size,
            timeout=self.timeout,
            transport=self.transport,
        )
