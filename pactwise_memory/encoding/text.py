"""
Text normalization and similarity.

Used for deduplication during consolidation, for linking working memory
items, and for query relevance during retrieval. Matching follows a
normalize-then-score pattern: lowercase, strip punctuation, then compare
token sets (or embeddings when both sides carry one).
"""

import re
from collections import Counter
from typing import Sequence

import numpy as np


STOPWORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
        "be", "have", "has", "had", "do", "does", "did", "will", "would",
        "could", "should", "may", "might", "must", "can", "this", "that",
        "these", "those", "i", "you", "he", "she", "it", "we", "they", "what",
        "which", "who", "when", "where", "why", "how", "all", "each", "every",
        "both", "few", "more", "most", "other", "some", "such", "only", "own",
        "same", "than", "too", "very", "just", "also", "about", "into", "then",
        "there", "their", "them", "your", "our", "its", "not", "any",
    }
)

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def normalize(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    text = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    return normalize(text).split()


def extract_keywords(text: str, max_keywords: int = 10) -> list[str]:
    """Most frequent non-stopword terms longer than three characters."""
    words = [w for w in tokenize(text) if len(w) > 3 and w not in STOPWORDS]
    return [word for word, _ in Counter(words).most_common(max_keywords)]


def jaccard_similarity(text1: str, text2: str) -> float:
    """Token-set overlap of two normalized texts."""
    norm1 = normalize(text1)
    norm2 = normalize(text2)
    if norm1 and norm1 == norm2:
        return 1.0

    words1 = set(norm1.split())
    words2 = set(norm2.split())
    if not words1 or not words2:
        return 0.0

    intersection = len(words1 & words2)
    union = len(words1 | words2)
    return intersection / union if union > 0 else 0.0


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def content_similarity(
    text1: str,
    text2: str,
    embedding1: Sequence[float] | None = None,
    embedding2: Sequence[float] | None = None,
) -> float:
    """Embedding similarity when both sides have one, token overlap otherwise."""
    if embedding1 is not None and embedding2 is not None:
        return max(0.0, cosine_similarity(embedding1, embedding2))
    return jaccard_similarity(text1, text2)


def word_overlap(text1: str, text2: str) -> float:
    """Shared words as a fraction of the smaller text's vocabulary."""
    words1 = set(tokenize(text1))
    words2 = set(tokenize(text2))
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / min(len(words1), len(words2))


def query_relevance(
    query: str,
    content: str,
    keywords: Sequence[str] = (),
) -> float:
    """
    How well ``content`` answers ``query``, in [0, 1].

    Scores the share of the query's keywords found in the content or its
    keyword list; queries made only of short or stop words fall back to
    token overlap.
    """
    query_terms = set(extract_keywords(query, max_keywords=50))
    if not query_terms:
        return jaccard_similarity(query, content)

    vocabulary = set(tokenize(content)) | {k.lower() for k in keywords}
    hits = len(query_terms & vocabulary)
    return hits / len(query_terms)


def extract_patterns(texts: Sequence[str], min_count: int | None = None) -> list[str]:
    """
    Recurring word bigrams across a set of texts.

    A bigram counts once per text. It is a pattern when it recurs in at
    least ``min_count`` texts (default: min(3, half the texts)).
    """
    if len(texts) < 2:
        return []
    if min_count is None:
        min_count = max(2, min(3, len(texts) // 2))

    counts: Counter[str] = Counter()
    for text in texts:
        words = [w for w in tokenize(text) if w not in STOPWORDS]
        bigrams = {f"{a} {b}" for a, b in zip(words, words[1:])}
        counts.update(bigrams)

    return [bigram for bigram, count in counts.most_common() if count >= min_count]


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(text.strip()) if s.strip()]


def merge_unique_sentences(base: str, additions: Sequence[str]) -> str:
    """Append sentences from ``additions`` not already present in ``base``."""
    sentences = split_sentences(base)
    seen = {normalize(s) for s in sentences}
    for text in additions:
        for sentence in split_sentences(text):
            key = normalize(sentence)
            if key and key not in seen:
                seen.add(key)
                sentences.append(sentence)
    return " ".join(sentences)
