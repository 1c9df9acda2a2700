"""
Encoding module for memory text processing.

Provides:
- Normalization and keyword extraction
- Token and embedding similarity
- Pattern extraction and sentence merging
"""

from pactwise_memory.encoding.text import (
    STOPWORDS,
    content_similarity,
    cosine_similarity,
    extract_keywords,
    extract_patterns,
    jaccard_similarity,
    merge_unique_sentences,
    normalize,
    query_relevance,
    split_sentences,
    tokenize,
    word_overlap,
)

__all__ = [
    "STOPWORDS",
    "content_similarity",
    "cosine_similarity",
    "extract_keywords",
    "extract_patterns",
    "jaccard_similarity",
    "merge_unique_sentences",
    "normalize",
    "query_relevance",
    "split_sentences",
    "tokenize",
    "word_overlap",
]
