"""Per-task correlation state shared by logs and spans.

Each asyncio task inherits a copy of the correlation dict, so a refresh loop
tagged with its document type keeps the tag across awaits without leaking it
into other types' loops.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING
from uuid import uuid4


if TYPE_CHECKING:
    from collections.abc import Iterator

_correlation: ContextVar[dict[str, str] | None] = ContextVar("search_backend_correlation", default=None)


def get_trace_context() -> dict[str, str]:
    """Return the correlation ids for the current task, minting a trace id on first use."""
    ctx = _correlation.get()
    if ctx is None or not ctx.get("trace_id"):
        trace_id = uuid4().hex
        ctx = {"trace_id": trace_id, "span_id": trace_id[:16]}
        _correlation.set(ctx)
    return ctx


def update_span_id(span_id: str) -> None:
    _correlation.set({**get_trace_context(), "span_id": span_id})


def current_document_type() -> str | None:
    ctx = _correlation.get()
    return ctx.get("document_type") if ctx else None


@contextmanager
def document_type_context(document_type: str) -> Iterator[None]:
    """Tag every log record and span opened inside the block with ``document_type``."""
    token = _correlation.set({**get_trace_context(), "document_type": document_type})
    try:
        yield
    finally:
        _correlation.reset(token)
