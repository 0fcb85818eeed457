"""Core operators for the mnemos memory system."""

from src.mnemos.memory.operators.encoder import Encoder, EncoderConfig
from src.mnemos.memory.operators.oracle import MemoryOracle, LLMOracle
from src.mnemos.memory.operators.ranking import (
    cosine_similarity,
    compare_relevance,
    rank_by_relevance,
    sort_by_recency,
)
from src.mnemos.memory.operators.salience import (
    TrivialityConfig,
    is_trivial,
    strip_speaker,
)

__all__ = [
    "Encoder",
    "EncoderConfig",
    "MemoryOracle",
    "LLMOracle",
    "cosine_similarity",
    "compare_relevance",
    "rank_by_relevance",
    "sort_by_recency",
    "TrivialityConfig",
    "is_trivial",
    "strip_speaker",
]
