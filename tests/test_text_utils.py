"""Unit tests for app/utils/text_utils.py."""

import pytest

from app.utils.text_utils import (
    bounded_edit_distance,
    clean_text,
    content_hash,
    count_words,
    create_snippet,
    extract_terms,
    has_content_changed,
    highlight_terms,
    normalize,
    query_terms,
    similarity,
    split_into_chunks,
    term_frequency,
)


# ---------------------------------------------------------------------------
# normalize
# ---------------------------------------------------------------------------


class TestNormalize:
    def test_lowercases(self):
        assert normalize("Machine LEARNING") == "machine learning"

    def test_strips_vietnamese_diacritics(self):
        assert normalize("Học máy") == "hoc may"

    def test_maps_d_with_stroke(self):
        assert normalize("Đại học") == "dai hoc"

    def test_replaces_punctuation_with_spaces(self):
        assert normalize("deep-learning, (neural) nets!") == "deep learning neural nets"

    def test_keeps_decimal_numbers(self):
        assert normalize("Version 3.14 released") == "version 3.14 released"

    def test_collapses_whitespace(self):
        assert normalize("  a   b \n\t c ") == "a b c"

    def test_empty_and_none(self):
        assert normalize("") == ""
        assert normalize(None) == ""

    def test_idempotent(self):
        once = normalize("Trí tuệ nhân tạo: AI!")
        assert normalize(once) == once


# ---------------------------------------------------------------------------
# Terms
# ---------------------------------------------------------------------------


class TestExtractTerms:
    def test_distinct_terms(self):
        assert extract_terms("data data science") == ["data", "science"]

    def test_drops_short_tokens(self):
        assert extract_terms("a bc def", min_length=2) == ["bc", "def"]

    def test_respects_min_length(self):
        assert extract_terms("a bc def", min_length=3) == ["def"]

    def test_empty(self):
        assert extract_terms("") == []


class TestQueryTerms:
    def test_regular_query(self):
        assert query_terms("Neural Networks") == ["neural", "networks"]

    def test_short_only_query_falls_back_to_tokens(self):
        assert query_terms("c", min_length=2) == ["c"]


class TestTermFrequency:
    def test_counts_occurrences(self):
        assert term_frequency("data Data science") == {"data": 2, "science": 1}


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


class TestContentHash:
    def test_deterministic(self):
        assert content_hash("hello") == content_hash("hello")

    def test_differs_for_different_text(self):
        assert content_hash("hello") != content_hash("hello!")

    def test_changed_without_previous_hash(self):
        assert has_content_changed("hello", None) is True

    def test_unchanged(self):
        assert has_content_changed("hello", content_hash("hello")) is False


# ---------------------------------------------------------------------------
# clean_text / count_words
# ---------------------------------------------------------------------------


class TestCleanText:
    def test_removes_control_characters(self):
        result = clean_text("a\x00b\x01c")
        assert result == "abc"

    def test_keeps_paragraph_breaks(self):
        assert clean_text("first  \n\nsecond") == "first\n\nsecond"

    def test_normalizes_crlf(self):
        assert clean_text("a\r\nb") == "a\nb"

    def test_empty(self):
        assert clean_text("") == ""
        assert clean_text(None) == ""


class TestCountWords:
    def test_normal_text(self):
        assert count_words("hello world foo bar") == 4

    def test_whitespace_only(self):
        assert count_words("   ") == 0


# ---------------------------------------------------------------------------
# split_into_chunks
# ---------------------------------------------------------------------------


class TestSplitIntoChunks:
    def test_empty_text(self):
        assert split_into_chunks("", 10) == []
        assert split_into_chunks("   ", 10) == []

    def test_short_text_single_chunk(self):
        assert split_into_chunks("One sentence. Two sentence.", 50) == [
            "One sentence. Two sentence."
        ]

    def test_sentences_are_not_split(self):
        text = "One two three. Four five six. Seven eight nine."
        chunks = split_into_chunks(text, 6)
        assert chunks == ["One two three. Four five six.", "Seven eight nine."]

    def test_long_sentence_is_force_split(self):
        text = " ".join(f"w{i}" for i in range(25))
        chunks = split_into_chunks(text, 10)
        assert [len(c.split()) for c in chunks] == [10, 10, 5]

    def test_no_words_lost_or_duplicated(self):
        text = "Alpha beta. Gamma delta epsilon.\n\nZeta eta theta. Iota kappa."
        chunks = split_into_chunks(text, 4)
        assert " ".join(chunks).split() == text.split()

    def test_paragraph_break_flushes_half_full_chunk(self):
        text = "One two three.\n\nFour five."
        assert split_into_chunks(text, 6) == ["One two three.", "Four five."]

    def test_deterministic(self):
        text = "A b c. D e f. G h i. " * 20
        assert split_into_chunks(text, 7) == split_into_chunks(text, 7)

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            split_into_chunks("text", 0)


# ---------------------------------------------------------------------------
# Fuzzy matching
# ---------------------------------------------------------------------------


class TestBoundedEditDistance:
    def test_identical(self):
        assert bounded_edit_distance("learning", "learning", 2) == 0

    def test_single_substitution(self):
        assert bounded_edit_distance("learning", "learnong", 2) == 1

    def test_insertion_and_deletion(self):
        assert bounded_edit_distance("network", "networks", 2) == 1
        assert bounded_edit_distance("networks", "netwrks", 2) == 1

    def test_caps_at_bound(self):
        assert bounded_edit_distance("abc", "xyzabcxyz", 2) == 3
        assert bounded_edit_distance("kitten", "sitting", 2) == 3


class TestSimilarity:
    def test_identical(self):
        assert similarity("data", "data") == 1.0

    def test_transposition_costs_two_edits(self):
        assert similarity("learnign", "learning") == pytest.approx(1 - 2 / 8)

    def test_beyond_bound_is_zero(self):
        assert similarity("apple", "orange") == 0.0

    def test_empty(self):
        assert similarity("", "data") == 0.0


# ---------------------------------------------------------------------------
# Highlighting
# ---------------------------------------------------------------------------


class TestHighlightTerms:
    def test_wraps_matches(self):
        assert highlight_terms("Machine learning", ["learning"]) == "Machine <mark>learning</mark>"

    def test_case_insensitive(self):
        assert highlight_terms("Machine", ["machine"]) == "<mark>Machine</mark>"

    def test_escapes_html(self):
        result = highlight_terms("<b>data</b>", ["data"])
        assert "<b>" not in result
        assert "<mark>data</mark>" in result

    def test_no_terms(self):
        assert highlight_terms("plain text", []) == "plain text"


class TestCreateSnippet:
    def test_short_text_returned_whole(self):
        assert create_snippet("Neural nets", ["neural"]) == "<mark>Neural</mark> nets"

    def test_long_text_centred_on_match(self):
        text = "filler " * 100 + "target word " + "filler " * 100
        snippet = create_snippet(text, ["target"], length=100)
        assert snippet.startswith("...")
        assert snippet.endswith("...")
        assert "<mark>target</mark>" in snippet

    def test_empty_text(self):
        assert create_snippet("", ["x"]) == ""
