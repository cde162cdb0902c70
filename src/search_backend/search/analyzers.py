"""Text analysis shared by the embedded engine and highlighting.

A regex tokenizer feeds a chain of token filters (lowercase, stop words,
light English stemming). Documents and query terms go through the same chain
so their terms line up; tokens keep character offsets into the source text so
highlighting can mark the surface form.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, replace
import re
from typing import Protocol


@dataclass
class Token:
    text: str
    position: int
    start_char: int
    end_char: int


class Analyzer(Protocol):
    def __call__(self, text: str) -> list[Token]: ...


TokenFilter = Callable[[Iterable[Token]], Iterator[Token]]

WORD_PATTERN = re.compile(r"[\w']+", re.UNICODE)

DEFAULT_STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "if", "in", "into", "is",
        "it", "no", "not", "of", "on", "or", "such", "that", "the", "their", "then", "there",
        "these", "they", "this", "to", "was", "will", "with",
    }
)  # fmt: skip


def tokenize(text: str) -> Iterator[Token]:
    for position, match in enumerate(WORD_PATTERN.finditer(text)):
        yield Token(text=match.group(0), position=position, start_char=match.start(), end_char=match.end())


def lowercase(tokens: Iterable[Token]) -> Iterator[Token]:
    for token in tokens:
        yield token if token.text.islower() else replace(token, text=token.text.lower())


def stopword_filter(stopwords: Iterable[str]) -> TokenFilter:
    blocked = frozenset(word.lower() for word in stopwords)

    def drop_stopwords(tokens: Iterable[Token]) -> Iterator[Token]:
        return (token for token in tokens if token.text not in blocked)

    return drop_stopwords


# Derivational endings, tried longest first; at most one applies.
_SUFFIX_RULES: tuple[tuple[str, str], ...] = (
    ("ization", "ize"),
    ("ational", "ate"),
    ("fulness", "ful"),
    ("iveness", "ive"),
    ("tional", "tion"),
    ("ation", "ate"),
    ("ness", ""),
    ("ingly", ""),
    ("edly", ""),
    ("ing", ""),
    ("ed", ""),
    ("ly", ""),
)
_MIN_STEM = 3


def _strip_plural(word: str) -> str:
    if word.endswith("ies") and len(word) > 4:
        return word[:-3] + "y"
    if word.endswith(("sses", "xes", "zes", "ches", "shes")):
        return word[:-2]
    if word.endswith("s") and not word.endswith(("ss", "us", "is")) and len(word) > _MIN_STEM:
        return word[:-1]
    return word


def stem(word: str) -> str:
    """Light English stemmer: strip a plural, then at most one suffix.

    >>> stem("indexing"), stem("payments"), stem("normalization")
    ('index', 'payment', 'normalize')
    """
    word = _strip_plural(word)
    for suffix, replacement in _SUFFIX_RULES:
        if word.endswith(suffix) and len(word) - len(suffix) >= _MIN_STEM:
            return word[: -len(suffix)] + replacement
    return word


def stem_tokens(tokens: Iterable[Token]) -> Iterator[Token]:
    for token in tokens:
        yield replace(token, text=stem(token.text))


class StandardAnalyzer:
    """Tokenize, lowercase, drop stop words and optionally stem.

    Positions are renumbered after filtering so phrase-adjacent terms stay
    adjacent once stop words are gone.
    """

    def __init__(self, *, stopwords: Iterable[str] | None = None, apply_stemming: bool = True) -> None:
        self.filters: list[TokenFilter] = [
            lowercase,
            stopword_filter(DEFAULT_STOPWORDS if stopwords is None else stopwords),
        ]
        if apply_stemming:
            self.filters.append(stem_tokens)

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = tokenize(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return [replace(token, position=position) for position, token in enumerate(stream)]


_ANALYZERS: dict[str, Callable[[], Analyzer]] = {
    "default": StandardAnalyzer,
    "english-nostem": lambda: StandardAnalyzer(apply_stemming=False),
}


def get_analyzer(name: str | None = None) -> Analyzer:
    key = (name or "default").lower()
    try:
        return _ANALYZERS[key]()
    except KeyError:
        raise ValueError(f"Unknown analyzer '{name}'. Available: {sorted(_ANALYZERS)}") from None


def analyze_terms(text: str, analyzer: Analyzer | None = None) -> list[str]:
    """Return the distinct analyzed terms of ``text`` in first-seen order."""
    return list(dict.fromkeys(token.text for token in (analyzer or get_analyzer())(text) if token.text))
