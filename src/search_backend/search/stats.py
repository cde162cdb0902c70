"""BM25 scoring primitives used by the embedded engine."""

from __future__ import annotations

from collections.abc import Mapping
import math


# Documents longer than this multiple of the average are scored as if they were this long.
MAX_LENGTH_RATIO = 4.0


def average_field_lengths(field_lengths: Mapping[str, Mapping[str, int]]) -> dict[str, float]:
    """Average token count per field over the documents that have the field."""
    averages: dict[str, float] = {}
    for field_name, lengths in field_lengths.items():
        averages[field_name] = sum(lengths.values()) / len(lengths) if lengths else 0.0
    return averages


def idf(doc_freq: int, total_docs: int) -> float:
    """Lucene-style BM25 IDF; strictly positive even for terms in every document."""
    if total_docs <= 0 or doc_freq <= 0:
        return 0.0
    doc_freq = min(doc_freq, total_docs)
    return math.log(1.0 + (total_docs - doc_freq + 0.5) / (doc_freq + 0.5))


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Saturated, length-normalized term frequency (the BM25 weight without IDF)."""
    if tf <= 0:
        return 0.0
    length_ratio = min(doc_length / avg_doc_length, MAX_LENGTH_RATIO) if avg_doc_length > 0 else 1.0
    return tf * (k1 + 1) / (tf + k1 * (1 - b + b * length_ratio))
