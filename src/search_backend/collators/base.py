"""Collator contracts and the HTTP plumbing shared by service-backed collators."""

from __future__ import annotations

from collections.abc import AsyncIterator
import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from search_backend.domain.model import Document
from search_backend.errors import CollationError


logger = logging.getLogger(__name__)


@runtime_checkable
class Collator(Protocol):
    """Produces the complete document set for one type.

    Every call to ``produce_documents`` starts a fresh, finite traversal of
    the source. Source failures surface as ``CollationError``.
    """

    def produce_documents(self) -> AsyncIterator[Document]: ...  # pragma: no cover - interface definition


@runtime_checkable
class CollatorFactory(Protocol):
    """Declares a document type and builds one collator per index build."""

    type: str

    def get_collator(self) -> Collator: ...  # pragma: no cover - interface definition


def build_client(
    base_url: str,
    *,
    headers: dict[str, str] | None = None,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        headers={"Accept": "application/json", **(headers or {})},
        timeout=timeout,
        follow_redirects=True,
        transport=transport,
    )


async def get_json(client: httpx.AsyncClient, url: str, document_type: str, **params: Any) -> Any:
    """GET ``url`` and decode JSON, mapping every failure to ``CollationError``."""
    try:
        response = await client.get(url, params=params or None)
    except httpx.HTTPError as exc:
        raise CollationError(document_type, f"Request to {url} failed: {exc}") from exc
    if response.status_code >= 400:
        raise CollationError(document_type, f"Request to {url} returned HTTP {response.status_code}")
    try:
        return response.json()
    except ValueError as exc:
        raise CollationError(document_type, f"Response from {url} is not valid JSON") from exc


async def iter_catalog_entities(
    client: httpx.AsyncClient, document_type: str, *, page_size: int
) -> AsyncIterator[dict[str, Any]]:
    """Page through ``/entities`` until a short page is returned."""
    offset = 0
    while True:
        page = await get_json(client, "/entities", document_type, offset=offset, limit=page_size)
        if not isinstance(page, list):
            raise CollationError(document_type, "Catalog response is not a list of entities")
        for entity in page:
            if not _is_entity(entity):
                raise CollationError(document_type, f"Malformed catalog entity at offset {offset}")
            yield entity
        if len(page) < page_size:
            return
        offset += len(page)


def _is_entity(entity: Any) -> bool:
    if not isinstance(entity, dict) or not isinstance(entity.get("kind"), str):
        return False
    metadata = entity.get("metadata")
    if not isinstance(metadata, dict) or not isinstance(metadata.get("name"), str):
        return False
    return isinstance(metadata.get("namespace"), (str, type(None)))


def entity_ref(entity: dict[str, Any]) -> tuple[str, str, str]:
    """Return the lower-cased ``(namespace, kind, name)`` triple of an entity."""
    metadata = entity["metadata"]
    namespace = metadata.get("namespace") or "default"
    return namespace.lower(), entity["kind"].lower(), metadata["name"].lower()


def entity_metadata(entity: dict[str, Any]) -> dict[str, str]:
    namespace, kind, name = entity_ref(entity)
    spec = entity.get("spec") if isinstance(entity.get("spec"), dict) else {}
    metadata = {"kind": kind, "namespace": namespace, "name": name}
    for key in ("lifecycle", "owner"):
        value = spec.get(key)
        if value:
            metadata[key] = str(value)
    return metadata
