"""Vector similarity helpers."""

from __future__ import annotations

import math
from collections.abc import Sequence


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors.

    Returns a value clamped to [0.0, 1.0] to absorb floating point error
    (e.g. 1.0000000000000002) and to treat opposed vectors as unrelated.

    Args:
        vec1: First vector.
        vec2: Second vector.

    Returns:
        Cosine similarity score between 0.0 and 1.0.
    """
    dot_product = sum(a * b for a, b in zip(vec1, vec2, strict=True))
    norm1 = math.sqrt(sum(a * a for a in vec1))
    norm2 = math.sqrt(sum(b * b for b in vec2))
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return max(0.0, min(1.0, dot_product / (norm1 * norm2)))


def pairwise_similarity(vectors: Sequence[Sequence[float]]) -> list[list[float]]:
    """Symmetric matrix of cosine similarities, computed once per pair.

    The diagonal is 1.0 for non-zero vectors.
    """
    size = len(vectors)
    matrix = [[0.0] * size for _ in range(size)]
    for i in range(size):
        matrix[i][i] = 1.0 if any(vectors[i]) else 0.0
        for j in range(i + 1, size):
            score = cosine_similarity(vectors[i], vectors[j])
            matrix[i][j] = score
            matrix[j][i] = score
    return matrix
