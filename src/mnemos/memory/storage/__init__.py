"""Storage layer for the mnemos memory system."""

from src.mnemos.memory.storage.base import VectorStore, matches_filter
from src.mnemos.memory.storage.in_memory import InMemoryVectorStore, InMemoryConfig
from src.mnemos.memory.storage.milvus import MilvusVectorStore, MilvusConfig, build_filter_expr

__all__ = [
    "VectorStore",
    "matches_filter",
    "InMemoryVectorStore",
    "InMemoryConfig",
    "MilvusVectorStore",
    "MilvusConfig",
    "build_filter_expr",
]
