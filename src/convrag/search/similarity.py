"""Vector similarity primitives.

Brute-force cosine similarity over in-memory vectors. Inputs of mismatched
length, zero magnitude or non-finite values score 0.0 rather than raising, so
a single bad vector never aborts a search.
"""

from collections.abc import Hashable, Iterable, Sequence
from typing import Any, TypeVar

import numpy as np

K = TypeVar("K", bound=Hashable)


def cosine_similarity(a: Any, b: Any) -> float:
    """Cosine similarity of two vectors.

    Returns:
        A value in [-1, 1], or 0.0 if the vectors differ in length, either is
        empty or has zero magnitude, or the result is not finite.
    """
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.size == 0 or va.shape != vb.shape:
        return 0.0

    with np.errstate(all="ignore"):
        norm_a = np.linalg.norm(va)
        norm_b = np.linalg.norm(vb)
        if norm_a == 0 or norm_b == 0 or not np.isfinite(norm_a * norm_b):
            return 0.0
        score = float(np.dot(va, vb) / (norm_a * norm_b))

    if not np.isfinite(score):
        return 0.0
    # Rounding can push identical vectors just past 1.0
    return max(-1.0, min(1.0, score))


def top_k(query: Any, candidates: Iterable[tuple[K, Any]], k: int) -> list[tuple[K, float]]:
    """Score every candidate against the query and keep the best k.

    Args:
        query: Query vector.
        candidates: (key, vector) pairs.
        k: Number of results to keep.

    Returns:
        (key, score) pairs sorted by descending score. Negative scores are
        kept; ties keep candidate order.
    """
    if k <= 0:
        return []
    scored = [(key, cosine_similarity(query, vector)) for key, vector in candidates]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:k]


def mean_vector(vectors: Sequence[Any]) -> np.ndarray | None:
    """Component-wise mean of equal-length vectors, or None for no vectors."""
    if len(vectors) == 0:
        return None
    stacked = np.vstack([np.asarray(v, dtype=np.float32) for v in vectors])
    return stacked.mean(axis=0).astype(np.float32)
