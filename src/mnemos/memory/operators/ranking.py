"""Similarity scoring and ranking comparators.

Pure functions over plain vectors and Memory records; no storage access.
"""

from __future__ import annotations

import math
from typing import Sequence

from src.mnemos.memory.models import Memory


DEFAULT_TIE_BAND = 0.1


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 for empty or zero-norm vectors.

    A shorter vector is padded with zeros.
    """
    if not vec_a or not vec_b:
        return 0.0

    dot = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return dot / (norm_a * norm_b)


def compare_relevance(
    sim_a: float,
    last_a: float,
    sim_b: float,
    last_b: float,
    tie_band: float = DEFAULT_TIE_BAND,
) -> int:
    """Two-key comparator: negative when ``a`` ranks before ``b``.

    Similarity descending, except scores within ``tie_band`` of each other
    count as tied and fall through to ``last_accessed`` descending.
    """
    if abs(sim_a - sim_b) > tie_band:
        return -1 if sim_a > sim_b else 1
    if last_a == last_b:
        return 0
    return -1 if last_a > last_b else 1


def rank_by_relevance(
    query_vector: Sequence[float],
    memories: list[Memory],
    tie_band: float = DEFAULT_TIE_BAND,
) -> list[Memory]:
    """Order memories by similarity to the query with recency tie-breaks.

    The tie band makes the comparator non-transitive, so a plain sort can
    leave adjacent pairs out of order. Linear insertion from the tail keeps
    every adjacent pair consistent with ``compare_relevance``.
    """
    scored = [
        (cosine_similarity(query_vector, m.embedding), m.metadata.last_accessed, m)
        for m in memories
    ]

    ranked: list[tuple[float, float, Memory]] = []
    for item in scored:
        pos = len(ranked)
        while pos > 0:
            prev = ranked[pos - 1]
            if compare_relevance(prev[0], prev[1], item[0], item[1], tie_band) <= 0:
                break
            pos -= 1
        ranked.insert(pos, item)

    return [m for _, _, m in ranked]


def sort_by_recency(memories: list[Memory]) -> list[Memory]:
    """Most recently touched first."""
    return sorted(memories, key=lambda m: m.metadata.last_accessed, reverse=True)
