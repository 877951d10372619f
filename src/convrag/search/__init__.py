"""Keyword, vector and hybrid search."""

from convrag.search.conversations import ConversationSimilarityEngine
from convrag.search.hybrid import HybridSearchEngine
from convrag.search.similarity import cosine_similarity, mean_vector, top_k

__all__ = [
    "ConversationSimilarityEngine",
    "HybridSearchEngine",
    "cosine_similarity",
    "mean_vector",
    "top_k",
]
