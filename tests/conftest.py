"""Shared test fixtures and configuration."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable

import pytest

from search_backend.domain.model import Document
from search_backend.search.memory_engine import InMemorySearchEngine


# Environment variables read by Settings; cleared so a developer's shell never leaks into tests
SETTINGS_ENV = (
    "SEARCH_ENGINE",
    "SQLITE_PATH",
    "ELASTICSEARCH_URL",
    "ELASTICSEARCH_INDEX_PREFIX",
    "ELASTICSEARCH_USERNAME",
    "ELASTICSEARCH_PASSWORD",
    "DEFAULT_REFRESH_INTERVAL_SECONDS",
    "CATALOG_REFRESH_INTERVAL_SECONDS",
    "TECHDOCS_REFRESH_INTERVAL_SECONDS",
    "SCHEDULER_START_DELAY_SECONDS",
    "CYCLE_TIMEOUT_SECONDS",
    "SHUTDOWN_DRAIN_TIMEOUT_SECONDS",
    "CATALOG_URL",
    "TECHDOCS_URL",
    "BACKEND_TOKEN",
    "PAGE_LIMIT_DEFAULT",
    "LOG_LEVEL",
    "LOG_JSON",
    "OTLP_ENDPOINT",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Run every test without settings from the environment or a stray .env file."""
    for key in SETTINGS_ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


def make_document(doc_id: str, document_type: str = "catalog", **fields) -> Document:
    """Build a document with readable defaults."""
    fields.setdefault("title", doc_id.title())
    fields.setdefault("text", f"Body of {doc_id}")
    fields.setdefault("location", f"/{document_type}/{doc_id}")
    return Document(id=doc_id, type=document_type, **fields)


class ListCollator:
    """Collator yielding a fixed list; counts how often it was invoked."""

    def __init__(self, documents: Iterable[Document]) -> None:
        self.documents = list(documents)
        self.calls = 0

    async def produce_documents(self) -> AsyncIterator[Document]:
        self.calls += 1
        for document in self.documents:
            yield document


class ListCollatorFactory:
    def __init__(self, document_type: str, documents: Iterable[Document]) -> None:
        self.type = document_type
        self.documents = list(documents)
        self.created: list[ListCollator] = []

    def get_collator(self) -> ListCollator:
        collator = ListCollator(self.documents)
        self.created.append(collator)
        return collator


@pytest.fixture
def memory_engine() -> InMemorySearchEngine:
    return InMemorySearchEngine()


@pytest.fixture
def catalog_documents() -> list[Document]:
    return [
        make_document(
            "payments",
            title="Payments API",
            text="Processes card payments and refunds for checkout.",
            metadata={"kind": "component", "owner": "team-billing", "lifecycle": "production"},
        ),
        make_document(
            "inventory",
            title="Inventory Tracker",
            text="Tracks stock levels across warehouses.",
            metadata={"kind": "component", "owner": "team-supply", "lifecycle": "experimental"},
        ),
        make_document(
            "billing-docs",
            title="Billing Handbook",
            text="How billing runs monthly invoices. Payments are reconciled nightly.",
            metadata={"kind": "system", "owner": "team-billing", "lifecycle": "production"},
        ),
    ]


@pytest.fixture
def document_factory():
    """Expose ``make_document`` to tests."""
    return make_document


@pytest.fixture
def collator_factory():
    """Return a builder for ``ListCollatorFactory`` instances."""
    return ListCollatorFactory
