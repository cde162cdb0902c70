"""Unit tests for analyzers, segments and highlighting."""

import pytest

from search_backend.domain.model import Document
from search_backend.search.analyzers import (
    StandardAnalyzer,
    analyze_terms,
    get_analyzer,
    stem,
)
from search_backend.search.segment import DEFAULT_FIELD_BOOSTS, IndexSegment, SegmentError, SegmentWriter
from search_backend.search.snippet import build_highlight, highlight_field


@pytest.mark.unit
class TestAnalyzers:
    def test_standard_analyzer_lowercases_drops_stopwords_and_stems(self):
        tokens = StandardAnalyzer()("The Indexing of Documents")

        assert [token.text for token in tokens] == ["index", "document"]
        assert [token.position for token in tokens] == [0, 1]

    def test_offsets_point_at_surface_form(self):
        text = "Fast Indexing"
        token = StandardAnalyzer()(text)[1]

        assert text[token.start_char : token.end_char] == "Indexing"

    def test_nostem_analyzer_keeps_suffixes(self):
        assert analyze_terms("indexing documents", get_analyzer("english-nostem")) == ["indexing", "documents"]

    def test_custom_stopwords_replace_defaults(self):
        assert analyze_terms("the billing handbook", StandardAnalyzer(stopwords={"handbook"}, apply_stemming=False)) == [
            "the",
            "billing",
        ]

    def test_analyze_terms_deduplicates_in_first_seen_order(self):
        assert analyze_terms("payments payment refunds") == ["payment", "refund"]

    def test_unknown_analyzer_raises(self):
        with pytest.raises(ValueError, match="Unknown analyzer"):
            get_analyzer("klingon")

    @pytest.mark.parametrize(
        ("word", "expected"),
        [("indexing", "index"), ("normalization", "normalize"), ("go", "go"), ("as", "as")],
    )
    def test_stem(self, word, expected):
        assert stem(word) == expected


def _doc(doc_id, title="", text="", document_type="catalog"):
    return Document(id=doc_id, type=document_type, title=title, text=text)


@pytest.mark.unit
class TestSegment:
    def test_writer_rejects_foreign_type(self):
        writer = SegmentWriter("catalog")

        with pytest.raises(SegmentError, match="expected 'catalog'"):
            writer.add_document(_doc("a", document_type="techdocs"))

    def test_writer_rejects_duplicate_ids(self):
        writer = SegmentWriter("catalog")
        writer.add_document(_doc("a", title="one"))

        with pytest.raises(SegmentError, match="Duplicate"):
            writer.add_document(_doc("a", title="two"))

    def test_built_segment_exposes_documents_and_postings(self):
        writer = SegmentWriter("catalog")
        writer.add_document(_doc("a", title="Payments", text="card payments"))
        segment = writer.build()

        assert segment.doc_count == 1
        assert segment.get_document("a").title == "Payments"
        postings = segment.get_postings("text", "payment")
        assert len(postings) == 1
        assert postings[0].frequency == 1
        assert segment.get_postings("text", "missing") == ()

    def test_title_matches_outrank_text_matches(self):
        writer = SegmentWriter("catalog")
        writer.add_document(_doc("title-hit", title="Kafka", text="streaming platform"))
        writer.add_document(_doc("text-hit", title="Platform", text="uses kafka for streaming"))
        scores = writer.build().score(["kafka"])

        assert scores["title-hit"] > scores["text-hit"] > 0

    def test_score_ignores_unmatched_documents(self):
        writer = SegmentWriter("catalog")
        writer.add_document(_doc("a", title="alpha"))
        writer.add_document(_doc("b", title="beta"))

        assert set(writer.build().score(["alpha"])) == {"a"}
        assert writer.build().score([]) == {}

    def test_segment_defaults_to_title_and_text_boosts(self):
        segment = IndexSegment(document_type="catalog", postings={}, documents={}, field_lengths={})

        assert segment.field_boosts == DEFAULT_FIELD_BOOSTS
        assert segment.score(["anything"]) == {}


@pytest.mark.unit
class TestHighlight:
    def test_highlight_wraps_surface_forms(self):
        result = highlight_field("Indexing made easy", ["index"], pre_tag="<b>", post_tag="</b>")

        assert result == "<b>Indexing</b> made easy"

    def test_highlight_returns_none_without_match(self):
        assert highlight_field("nothing here", ["kafka"], pre_tag="<b>", post_tag="</b>") is None

    def test_long_text_is_trimmed_around_first_match(self):
        text = "Filler sentence. " * 30 + "The kafka cluster is here. " + "Trailing words. " * 30
        result = highlight_field(text, ["kafka"], pre_tag="[", post_tag="]", max_chars=80)

        assert "[kafka]" in result
        assert result.startswith("...")
        assert result.endswith("...")
        assert len(result) < len(text)

    def test_build_highlight_covers_title_and_text(self):
        document = _doc("a", title="Kafka guide", text="Run kafka locally")
        highlight = build_highlight(document, ["kafka"], pre_tag="<mark>", post_tag="</mark>")

        assert highlight.fields == {
            "title": "<mark>Kafka</mark> guide",
            "text": "Run <mark>kafka</mark> locally",
        }

    def test_build_highlight_none_when_no_terms(self):
        assert build_highlight(_doc("a", title="Kafka"), [], pre_tag="<mark>", post_tag="</mark>") is None
