"""Unit tests for app/core/advanced_query.py."""

from datetime import timedelta

import pytest

from app.core.advanced_query import AdvancedMatcher, parse_advanced_query, sort_hits
from app.core.errors import ValidationError
from app.core.indexer import index_document
from app.core.search import SearchHit
from app.models.schemas import UsageStats
from tests.conftest import BASE_TIME, make_document

matcher = AdvancedMatcher()


def _doc(doc_id: str, title: str, content: str, days: int = 0):
    return index_document(make_document(
        doc_id, title, content, created_at=BASE_TIME + timedelta(days=days),
    ))


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseAdvancedQuery:
    def test_plain_terms_are_and(self):
        parsed = parse_advanced_query("machine learning")
        assert parsed.and_terms == ["machine", "learning"]
        assert parsed.or_terms == []

    def test_quoted_phrase(self):
        parsed = parse_advanced_query('"Neural Network" training')
        assert parsed.phrases == ["neural network"]
        assert parsed.and_terms == ["training"]

    def test_or_groups_both_sides(self):
        parsed = parse_advanced_query("python OR java")
        assert parsed.and_terms == []
        assert parsed.or_terms == ["python", "java"]

    def test_not_excludes(self):
        parsed = parse_advanced_query("learning NOT biology")
        assert parsed.and_terms == ["learning"]
        assert parsed.not_terms == ["biology"]

    def test_lowercase_operators_are_terms(self):
        parsed = parse_advanced_query("cats or dogs")
        assert parsed.and_terms == ["cats", "or", "dogs"]

    def test_only_negative_terms_rejected(self):
        with pytest.raises(ValidationError):
            parse_advanced_query("NOT biology")

    def test_mixed(self):
        parsed = parse_advanced_query('machine "neural network" OR deep NOT biology')
        assert parsed.phrases == ["neural network"]
        assert parsed.or_terms == ["machine", "deep"]
        assert parsed.not_terms == ["biology"]


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class TestAdvancedMatcher:
    def test_and_requires_every_term(self):
        document = _doc("a" * 24, "T", "machine learning basics")
        assert matcher.evaluate(document, parse_advanced_query("machine learning")) is not None
        assert matcher.evaluate(document, parse_advanced_query("machine biology")) is None

    def test_and_term_may_match_fuzzily(self):
        document = _doc("a" * 24, "T", "machine learning algorithms")
        score, details = matcher.evaluate(document, parse_advanced_query("algoritms"))
        assert details[0].match_type == "fuzzy"
        assert details[0].matched == "algorithms"
        assert score > 0

    def test_phrase_must_appear_verbatim(self):
        document = _doc("a" * 24, "T", "networks of neural cells")
        assert matcher.evaluate(document, parse_advanced_query('"neural networks"')) is None
        score, _ = matcher.evaluate(document, parse_advanced_query('"neural cells"'))
        assert score == 2.0

    def test_or_needs_one_match(self):
        document = _doc("a" * 24, "T", "python tutorial")
        score, _ = matcher.evaluate(document, parse_advanced_query("python OR java"))
        assert score == pytest.approx(0.8)
        other = _doc("b" * 24, "T", "rust tutorial")
        assert matcher.evaluate(other, parse_advanced_query("python OR java")) is None

    def test_not_excludes_document(self):
        document = _doc("a" * 24, "T", "learning biology")
        assert matcher.evaluate(document, parse_advanced_query("learning NOT biology")) is None

    def test_match_filters_candidates(self):
        keep = _doc("a" * 24, "T", "machine learning")
        drop = _doc("b" * 24, "T", "machine biology")
        hits = matcher.match(parse_advanced_query("machine NOT biology"), [keep, drop])
        assert [h.document.id for h in hits] == ["a" * 24]
        assert hits[0].strategy == "advanced"


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


class TestSortHits:
    @pytest.fixture
    def hits(self) -> list[SearchHit]:
        a = _doc("a" * 24, "Beta", "x", days=0)
        b = _doc("b" * 24, "alpha", "x", days=2)
        c = _doc("c" * 24, "Gamma", "x", days=1).model_copy(
            update={"usage": UsageStats(quiz_generated=3)},
        )
        return [SearchHit(a, 2.0, "advanced"), SearchHit(b, 1.0, "advanced"), SearchHit(c, 1.0, "advanced")]

    def test_relevance_desc_with_recency_tiebreak(self, hits):
        assert [h.document.id for h in sort_hits(hits, "relevance", "desc")] == ["a" * 24, "b" * 24, "c" * 24]

    def test_date_asc(self, hits):
        assert [h.document.id for h in sort_hits(hits, "date", "asc")] == ["a" * 24, "c" * 24, "b" * 24]

    def test_title_is_case_insensitive(self, hits):
        assert [h.document.title for h in sort_hits(hits, "title", "asc")] == ["alpha", "Beta", "Gamma"]

    def test_usage_desc(self, hits):
        assert sort_hits(hits, "usage", "desc")[0].document.id == "c" * 24

    def test_unknown_field(self, hits):
        with pytest.raises(ValidationError):
            sort_hits(hits, "popularity", "desc")
