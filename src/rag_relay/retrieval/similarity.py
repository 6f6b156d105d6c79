"""Vector similarity scoring."""

from __future__ import annotations

from collections.abc import Sequence
from math import sqrt

from rag_relay.errors import DimensionMismatchError

_EPSILON = 1e-12
MIN_SCORE = -1.0


def cosine_similarity(
    a: Sequence[float] | None, b: Sequence[float] | None
) -> float:
    """Cosine similarity of two equal-length vectors.

    A missing or empty vector scores ``-1.0`` so it ranks below any real
    match. Vectors of different lengths raise ``DimensionMismatchError``.
    """

    if not a or not b:
        return MIN_SCORE
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b, strict=True):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    return dot / (sqrt(norm_a) * sqrt(norm_b) + _EPSILON)
