"""Collator over a fixed set of documents."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable

from search_backend.domain.model import Document


class StaticCollator:
    def __init__(self, documents: Iterable[Document]) -> None:
        self._documents = tuple(documents)

    async def produce_documents(self) -> AsyncIterator[Document]:
        for document in self._documents:
            yield document


class StaticCollatorFactory:
    """Serves the same documents on every cycle; handy for local setups."""

    def __init__(self, document_type: str, documents: Iterable[Document]) -> None:
        self.type = document_type
        self._documents = tuple(documents)

    def get_collator(self) -> StaticCollator:
        return StaticCollator(self._documents)
