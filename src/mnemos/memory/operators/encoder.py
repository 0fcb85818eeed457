"""Encoder - Generates embedding vectors for memory content.

Uses the Ollama Python library by default; LiteLLM embeddings can be
selected for hosted models (e.g. text-embedding-3-small).
"""

from __future__ import annotations

import logging
from typing import Callable, Awaitable
from dataclasses import dataclass

import ollama
from litellm import aembedding

from src.mnemos.errors import EmbeddingError


logger = logging.getLogger(__name__)


@dataclass
class EncoderConfig:
    """Configuration for the Encoder module."""
    provider: str = "ollama"            # "ollama" | "litellm"
    embedding_model: str = "bge-m3:latest"
    embedding_dim: int = 1024
    ollama_host: str | None = None      # None = default localhost:11434
    timeout: float = 60.0
    max_content_length: int = 8000


class Encoder:
    """Maps text to a fixed-length vector.

    Every returned vector has exactly ``config.embedding_dim`` entries;
    anything else (including service failure) raises EmbeddingError.
    """

    def __init__(self, config: EncoderConfig | None = None):
        self.config = config or EncoderConfig()
        self._client: ollama.AsyncClient | None = None

        # Optional external embedding callback (overrides the provider)
        self._embed_callback: Callable[[str], Awaitable[list[float]]] | None = None

    def set_embed_callback(self, callback: Callable[[str], Awaitable[list[float]]]) -> None:
        """Set external embedding callback."""
        self._embed_callback = callback

    async def close(self) -> None:
        """Close the underlying HTTP connection pool, if a client was created."""
        client, self._client = self._client, None
        if client is not None:
            await client._client.aclose()

    async def embed(self, content: str) -> list[float]:
        """Embed content.

        Raises:
            EmbeddingError: service unavailable or wrong dimensionality.
        """
        truncated = content[:self.config.max_content_length]

        try:
            if self._embed_callback:
                vector = await self._embed_callback(truncated)
            elif self.config.provider == "litellm":
                vector = await self._litellm_embed(truncated)
            else:
                vector = await self._ollama_embed(truncated)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"{self.config.provider} embedding failed: {e}") from e

        if not vector:
            raise EmbeddingError("Embedding service returned an empty vector")

        if len(vector) != self.config.embedding_dim:
            raise EmbeddingError(
                f"Embedding has {len(vector)} dimensions, store expects {self.config.embedding_dim}"
            )

        return [float(v) for v in vector]

    async def _ollama_embed(self, content: str) -> list[float]:
        """Single embedding via Ollama."""
        if self._client is None:
            self._client = ollama.AsyncClient(
                host=self.config.ollama_host,
                timeout=self.config.timeout
            )

        response = await self._client.embed(
            model=self.config.embedding_model,
            input=content
        )

        if response and "embeddings" in response and response["embeddings"]:
            return list(response["embeddings"][0])

        return []

    async def _litellm_embed(self, content: str) -> list[float]:
        """Single embedding via LiteLLM."""
        response = await aembedding(
            model=self.config.embedding_model,
            input=[content],
            timeout=self.config.timeout,
        )

        if response and response.data:
            item = response.data[0]
            return list(item["embedding"] if isinstance(item, dict) else item.embedding)

        return []

    def get_embedding_dim(self) -> int:
        return self.config.embedding_dim

    def get_provider_info(self) -> dict:
        return {
            "provider": self.config.provider,
            "model": self.config.embedding_model,
            "dimension": self.config.embedding_dim,
            "host": self.config.ollama_host or "localhost:11434",
        }
