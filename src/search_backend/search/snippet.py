"""Highlight extraction for search results.

Matched terms are located by running the query analyzer over each field, so
stemmed query terms mark their surface forms ("indexing" for "index"). Long
text fields are trimmed to a window around the first match, preferring
sentence boundaries.
"""

from __future__ import annotations

from collections.abc import Collection
import re

from search_backend.domain.model import Document, Highlight
from search_backend.search.analyzers import Analyzer, Token, get_analyzer


SENTENCE_END_PATTERN = re.compile(r"[.!?]\s+")
HIGHLIGHT_FIELDS = ("title", "text")


def find_sentence_start(text: str, position: int, max_lookback: int = 120) -> int:
    """Return the start of the sentence containing ``position`` (bounded lookback)."""
    if position <= 0:
        return 0
    start_search = max(0, position - max_lookback)
    matches = list(SENTENCE_END_PATTERN.finditer(text, start_search, position))
    if matches:
        return matches[-1].end()
    if start_search == 0:
        return 0
    space = text.find(" ", start_search, position)
    return space + 1 if space != -1 else start_search


def find_sentence_end(text: str, position: int, max_lookahead: int = 160) -> int:
    """Return the end of the sentence containing ``position`` (bounded lookahead)."""
    end_search = min(len(text), position + max_lookahead)
    match = SENTENCE_END_PATTERN.search(text, position, end_search)
    if match:
        return match.start() + 1
    if end_search >= len(text):
        return len(text)
    space = text.rfind(" ", position, end_search)
    return space if space != -1 else end_search


def _matching_tokens(text: str, terms: Collection[str], analyzer: Analyzer) -> list[Token]:
    return [token for token in analyzer(text) if token.text in terms]


def _wrap(text: str, tokens: list[Token], pre_tag: str, post_tag: str, offset: int = 0) -> str:
    parts: list[str] = []
    cursor = offset
    for token in tokens:
        parts.append(text[cursor : token.start_char])
        parts.append(f"{pre_tag}{text[token.start_char : token.end_char]}{post_tag}")
        cursor = token.end_char
    return "".join(parts)


def highlight_field(
    text: str,
    terms: Collection[str],
    *,
    pre_tag: str,
    post_tag: str,
    max_chars: int | None = None,
    analyzer: Analyzer | None = None,
) -> str | None:
    """Return ``text`` with matched terms wrapped, or None when nothing matched."""
    if not text or not terms:
        return None
    matches = _matching_tokens(text, terms, analyzer or get_analyzer())
    if not matches:
        return None

    start, end = 0, len(text)
    if max_chars is not None and len(text) > max_chars:
        start = find_sentence_start(text, matches[0].start_char)
        end = min(find_sentence_end(text, matches[0].end_char), start + max_chars)
        end = max(end, matches[0].end_char)
        matches = [token for token in matches if token.start_char >= start and token.end_char <= end]

    fragment = _wrap(text, matches, pre_tag, post_tag, offset=start) + text[matches[-1].end_char : end]
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(text) else ""
    return f"{prefix}{fragment}{suffix}"


def build_highlight(
    document: Document,
    terms: Collection[str],
    *,
    pre_tag: str,
    post_tag: str,
    max_chars: int = 240,
) -> Highlight | None:
    """Build a ``Highlight`` over the title and text of ``document``."""
    analyzer = get_analyzer()
    fields: dict[str, str] = {}
    for field_name in HIGHLIGHT_FIELDS:
        value = getattr(document, field_name)
        limit = max_chars if field_name == "text" else None
        highlighted = highlight_field(
            value, terms, pre_tag=pre_tag, post_tag=post_tag, max_chars=limit, analyzer=analyzer
        )
        if highlighted is not None:
            fields[field_name] = highlighted
    if not fields:
        return None
    return Highlight(pre_tag=pre_tag, post_tag=post_tag, fields=fields)
