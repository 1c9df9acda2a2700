"""
Tests for text normalization and similarity.
"""

import pytest

from pactwise_memory.encoding.text import (
    content_similarity,
    cosine_similarity,
    extract_keywords,
    extract_patterns,
    jaccard_similarity,
    merge_unique_sentences,
    normalize,
    query_relevance,
    word_overlap,
)


class TestNormalize:
    """Tests for normalization."""

    def test_lowercases_and_strips_punctuation(self):
        assert normalize("Vendor X: 30-day   notice!") == "vendor x 30 day notice"

    def test_empty(self):
        assert normalize("   ") == ""


class TestJaccardSimilarity:
    """Tests for token-set similarity."""

    def test_identical_after_normalization(self):
        assert jaccard_similarity("Net 30 terms.", "net 30 terms") == 1.0

    def test_near_duplicate_passes_dedup_threshold(self):
        score = jaccard_similarity(
            "vendor X requires 30-day notice",
            "Vendor X requires a 30-day notice",
        )
        assert score == pytest.approx(6 / 7)
        assert score >= 0.8

    def test_unrelated_text_stays_low(self):
        score = jaccard_similarity(
            "vendor X requires 30-day notice",
            "vendor Y prefers email invoices",
        )
        assert score < 0.2

    def test_empty_side(self):
        assert jaccard_similarity("", "anything") == 0.0


class TestEmbeddingSimilarity:
    """Tests for cosine similarity."""

    def test_parallel_vectors(self):
        assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_mismatched_shapes(self):
        assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_content_similarity_prefers_embeddings(self):
        score = content_similarity("alpha", "omega", [1.0, 0.0], [1.0, 0.0])
        assert score == pytest.approx(1.0)

    def test_content_similarity_falls_back_to_tokens(self):
        assert content_similarity("net 30 terms", "net 30 terms", [1.0, 0.0], None) == 1.0


class TestKeywordsAndRelevance:
    """Tests for keyword extraction and query scoring."""

    def test_keywords_skip_short_and_stop_words(self):
        keywords = extract_keywords("The vendor requires notice and the vendor agrees")
        assert keywords[0] == "vendor"
        assert "the" not in keywords
        assert "and" not in keywords

    def test_query_relevance_counts_keyword_hits(self):
        score = query_relevance("vendor notice period", "Vendor X requires 30-day notice")
        assert score == pytest.approx(2 / 3)

    def test_query_relevance_uses_stored_keywords(self):
        score = query_relevance("renewal", "auto renews yearly", keywords=["renewal"])
        assert score == 1.0

    def test_query_relevance_no_match(self):
        assert query_relevance("invoice", "vendor requires notice") == 0.0

    def test_word_overlap(self):
        assert word_overlap("contract renewal", "renewal of the contract for vendor") == 1.0


class TestPatterns:
    """Tests for recurring bigram detection."""

    def test_needs_two_texts(self):
        assert extract_patterns(["notice period notice period"]) == []

    def test_recurring_bigram(self):
        patterns = extract_patterns([
            "vendor X notice period is 30 days",
            "notice period for vendor X",
            "invoices monthly",
        ])
        assert "notice period" in patterns


class TestMergeUniqueSentences:
    """Tests for summary merging."""

    def test_skips_existing_sentences(self):
        merged = merge_unique_sentences(
            "Vendor X requires notice.",
            ["vendor x requires notice.", "Payment is net 30."],
        )
        assert merged == "Vendor X requires notice. Payment is net 30."
